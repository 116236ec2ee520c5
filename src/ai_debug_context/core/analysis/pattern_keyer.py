"""
Canonical pattern keys for error messages.

Two messages that differ only in their numeric, quoted-string or path payload
normalize to the same text, which lets outcomes recorded for one occurrence of a
failure apply to the next.
"""

import re
from typing import List, Pattern, Tuple, Union

from ..models import ErrorType

# Applied in order; each substitution sees the output of the previous one.
_SUBSTITUTIONS: List[Tuple[Pattern, str]] = [
    (re.compile(r"\d+"), "number"),
    (re.compile(r"'[^']*'|\"[^\"]*\"|`[^`]*`"), "string"),
    (re.compile(r"(?:[\w.\-@]+)?(?:/[\w.\-@]+)+/?"), "path"),
    (re.compile(r"(?:[a-z]:)?(?:\\[\w.\-@]+)+"), "path"),
    (re.compile(r"\b[a-z_$][\w$]*(?:\.[a-z_$][\w$]*)*\s*\([^()]*\)"), "function"),
    (re.compile(r"\s+"), " "),
]


def normalize(message: str) -> str:
    """Reduce an error message to its canonical, payload-free form."""
    text = (message or "").lower()
    for pattern, replacement in _SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text.strip()


def pattern_key(error_type: Union[ErrorType, str], message: str) -> str:
    """Learning-store key: ``<errorType>:<normalized message>``."""
    value = error_type.value if isinstance(error_type, ErrorType) else str(error_type)
    return f"{value}:{normalize(message)}"


class PatternKeyer:
    """Object wrapper so the keyer can be injected and substituted in tests."""

    def normalize(self, message: str) -> str:
        return normalize(message)

    def pattern_key(self, error_type: Union[ErrorType, str], message: str) -> str:
        return pattern_key(error_type, message)
