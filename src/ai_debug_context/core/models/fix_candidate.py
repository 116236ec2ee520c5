from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class FixCategory(str, Enum):
    """Kind of remediation a fix candidate performs."""

    IMPORT = "import"
    ASSERTION = "assertion"
    MOCK = "mock"
    TYPE = "type"
    OTHER = "other"


class ConfirmChoice(str, Enum):
    """Answer to an Apply/Skip/Cancel confirmation prompt."""

    APPLY = "apply"
    SKIP = "skip"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Position:
    """Zero-based line/character position inside a document."""

    line: int
    character: int


@dataclass(frozen=True)
class TextEdit:
    """Replace the text between ``start`` and ``end`` with ``new_text``.

    An insertion is an edit whose start equals its end.
    """

    start: Position
    end: Position
    new_text: str

    @classmethod
    def insert(cls, position: Position, text: str) -> "TextEdit":
        return cls(start=position, end=position, new_text=text)

    @classmethod
    def replace(cls, start: Position, end: Position, text: str) -> "TextEdit":
        return cls(start=start, end=end, new_text=text)


@dataclass
class FixCandidate:
    """A proposed, not-yet-applied remediation.

    An empty ``edits`` list makes this a command-based fix: applying it runs
    ``command`` instead of rewriting ``target_file``. A candidate with neither
    edits nor a command is advisory only.
    """

    id: str
    title: str
    description: str
    target_file: str
    confidence: float
    category: FixCategory = FixCategory.OTHER
    edits: List[TextEdit] = field(default_factory=list)
    command: Optional[str] = None

    @property
    def is_command_based(self) -> bool:
        return not self.edits

    @property
    def is_advisory(self) -> bool:
        return not self.edits and not self.command


@dataclass
class FailedFix:
    """A candidate that could not be applied, with the causing error message."""

    fix: FixCandidate
    error: str


@dataclass
class FixResult:
    """Three disjoint, ordered partitions of an applied batch."""

    applied: List[FixCandidate] = field(default_factory=list)
    failed: List[FailedFix] = field(default_factory=list)
    skipped: List[FixCandidate] = field(default_factory=list)


def position_at(text: str, offset: int) -> Position:
    """Convert a character offset into a zero-based line/character position."""
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line=line, character=offset - line_start)


def offset_at(text: str, position: Position) -> int:
    """
    Convert a line/character position into a character offset.

    Raises:
        ValueError: If the position lies outside ``text``.
    """
    if position.line < 0 or position.character < 0:
        raise ValueError(f"Negative position: {position}")
    line_start = 0
    for _ in range(position.line):
        newline = text.find("\n", line_start)
        if newline == -1:
            raise ValueError(f"Line {position.line} is past the end of the document")
        line_start = newline + 1
    line_end = text.find("\n", line_start)
    if line_end == -1:
        line_end = len(text)
    if line_start + position.character > line_end:
        raise ValueError(f"Character {position.character} is past the end of line {position.line}")
    return line_start + position.character
