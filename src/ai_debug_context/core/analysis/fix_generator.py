"""
Fix candidate generation.

FixGenerator dispatches a classified failure to the strategies registered for
its error type, appends suggestions learned from earlier outcomes and returns
the candidates ranked by confidence.
"""

import abc
import logging
import re
from typing import Dict, List, Optional, Sequence

from ..errors import DocumentLoadError
from ..models import (
    ErrorType,
    FixCandidate,
    FixCategory,
    Position,
    TestFailure,
    TextEdit,
    position_at,
)
from ..protocols import DocumentProvider
from ...utils.config_types import FixSettings

logger = logging.getLogger(__name__)

IMPORT_CONFIDENCE = 0.8
TEST_GLOBAL_CONFIDENCE = 0.9
RELATIVE_IMPORT_CONFIDENCE = 0.6
TOBE_CONFIDENCE = 0.7
ASYNC_EXPECT_CONFIDENCE = 0.6
SNAPSHOT_CONFIDENCE = 0.8

TEST_FRAMEWORK_GLOBALS = (
    "describe",
    "it",
    "test",
    "expect",
    "beforeEach",
    "afterEach",
    "beforeAll",
    "afterAll",
    "jest",
)

COMMON_IMPORTS: Dict[str, str] = {
    "react": "import React from 'react';",
    "lodash": "import _ from 'lodash';",
    "jest": "import { jest } from '@jest/globals';",
    "testing-library/react": "import { render, screen } from '@testing-library/react';",
    "@testing-library/react": "import { render, screen } from '@testing-library/react';",
    "testing-library/jest-dom": "import '@testing-library/jest-dom';",
    "@testing-library/jest-dom": "import '@testing-library/jest-dom';",
}

_IMPORT_LINE = re.compile(r"^\s*import\b.*$", re.MULTILINE)
_PRIMITIVE = re.compile(
    r"^(?:-?\d+(?:\.\d+)?|\".*\"|'.*'|true|false|null|undefined|NaN)$"
)


def _import_position(source_text: Optional[str]) -> Position:
    """Insert below the last import in the leading import block, else at the top."""
    if not source_text:
        return Position(0, 0)
    last_import_line = -1
    for index, line in enumerate(source_text.splitlines()):
        stripped = line.strip()
        if _IMPORT_LINE.match(line):
            last_import_line = index
        elif stripped and not stripped.startswith(("//", "/*", "*", "'use", '"use')):
            break
    return Position(last_import_line + 1, 0)


def _identifier_for(module_name: str) -> str:
    base = module_name.rstrip("/").split("/")[-1] or "module"
    parts = [p for p in re.split(r"[^A-Za-z0-9_$]+", base) if p]
    if not parts:
        return "module"
    name = parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])
    return name if not name[0].isdigit() else f"_{name}"


class FixStrategy(abc.ABC):
    """Produces candidates for one family of failures."""

    category: FixCategory = FixCategory.OTHER

    @abc.abstractmethod
    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        """Return zero or more candidates; never raise for a non-matching failure."""


class ImportFixStrategy(FixStrategy):
    """Adds a missing module import or a test-framework global import."""

    category = FixCategory.IMPORT

    missing_module_pattern = re.compile(
        r"module.*not found|cannot find module|cannot resolve module", re.IGNORECASE
    )
    module_name_pattern = re.compile(r"module\s+['\"`]([^'\"`]+)['\"`]", re.IGNORECASE)
    undefined_name_pattern = re.compile(r"(\w+) is not defined", re.IGNORECASE)

    def __init__(self, relative_extensions: Sequence[str] = (".ts", ".tsx", ".js", ".jsx")):
        self.relative_extensions = list(relative_extensions)

    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        message = failure.error_message
        position = _import_position(source_text)
        candidates: List[FixCandidate] = []

        if self.missing_module_pattern.search(message):
            module_match = self.module_name_pattern.search(message)
            if module_match:
                candidates.extend(
                    self._module_imports(module_match.group(1), failure, position)
                )

        undefined_match = self.undefined_name_pattern.search(message)
        if undefined_match and undefined_match.group(1) in TEST_FRAMEWORK_GLOBALS:
            name = undefined_match.group(1)
            candidates.append(
                self._candidate(
                    f"import-test-{name}",
                    f"Add {name} import",
                    f"Import {name} from Jest globals",
                    f"import {{ {name} }} from '@jest/globals';",
                    failure,
                    position,
                    TEST_GLOBAL_CONFIDENCE,
                )
            )

        # An import already present in the file is not a fix.
        if source_text:
            candidates = [
                c for c in candidates if c.edits[0].new_text.strip() not in source_text
            ]
        return candidates

    def _module_imports(
        self, module_name: str, failure: TestFailure, position: Position
    ) -> List[FixCandidate]:
        if module_name.startswith(("./", "../")):
            identifier = _identifier_for(module_name)
            return [
                self._candidate(
                    f"import-relative-{module_name}{ext}",
                    f"Add import for {module_name}{ext}",
                    f"Import from relative path {module_name}{ext}",
                    f"import * as {identifier} from '{module_name}{ext}';",
                    failure,
                    position,
                    RELATIVE_IMPORT_CONFIDENCE,
                )
                for ext in self.relative_extensions
            ]

        statement = COMMON_IMPORTS.get(
            module_name, f"import {_identifier_for(module_name)} from '{module_name}';"
        )
        return [
            self._candidate(
                f"import-{module_name}",
                f"Add import for {module_name}",
                f"Import the {module_name} module",
                statement,
                failure,
                position,
                IMPORT_CONFIDENCE,
            )
        ]

    def _candidate(
        self,
        fix_id: str,
        title: str,
        description: str,
        statement: str,
        failure: TestFailure,
        position: Position,
        confidence: float,
    ) -> FixCandidate:
        return FixCandidate(
            id=fix_id,
            title=title,
            description=description,
            target_file=failure.test_file,
            confidence=confidence,
            category=self.category,
            edits=[TextEdit.insert(position, statement + "\n")],
        )


class AssertionFixStrategy(FixStrategy):
    """Rewrites deep-equality on primitives and un-awaited async expectations."""

    category = FixCategory.ASSERTION

    to_equal_pattern = re.compile(r"toEqual", re.IGNORECASE)
    expected_value_pattern = re.compile(r"^\s*Expected:\s*(.+?)\s*$", re.MULTILINE)
    received_value_pattern = re.compile(r"^\s*Received:\s*(.+?)\s*$", re.MULTILINE)
    unresolved_promise_pattern = re.compile(
        r"promise.*received.*not.*resolved", re.IGNORECASE
    )

    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        # Both fixes locate their edits in the source; without it there is
        # nothing concrete to propose.
        if not source_text:
            return []

        candidates: List[FixCandidate] = []
        if self._is_primitive_deep_equality(failure.error_message):
            fix = self._to_be_fix(failure, source_text)
            if fix:
                candidates.append(fix)
        if self.unresolved_promise_pattern.search(failure.error_message):
            candidates.extend(self._async_expectation_fixes(failure, source_text))
        return candidates

    def _is_primitive_deep_equality(self, message: str) -> bool:
        if not self.to_equal_pattern.search(message):
            return False
        for pattern in (self.expected_value_pattern, self.received_value_pattern):
            match = pattern.search(message)
            if match and not _PRIMITIVE.match(match.group(1)):
                return False
        return True

    def _to_be_fix(self, failure: TestFailure, source_text: str) -> Optional[FixCandidate]:
        edits = []
        for match in re.finditer(r"\.toEqual\(", source_text):
            start = match.start()
            edits.append(
                TextEdit.replace(
                    position_at(source_text, start),
                    position_at(source_text, start + len(".toEqual")),
                    ".toBe",
                )
            )
        if not edits:
            return None
        return FixCandidate(
            id="fix-tobe-vs-toequal",
            title="Replace toEqual with toBe for primitive values",
            description="Use toBe() for primitive value comparisons instead of toEqual()",
            target_file=failure.test_file,
            confidence=TOBE_CONFIDENCE,
            category=self.category,
            edits=edits,
        )

    def _async_expectation_fixes(
        self, failure: TestFailure, source_text: str
    ) -> List[FixCandidate]:
        candidates = []
        for match in re.finditer(r"\bexpect\(", source_text):
            start = match.start()
            if source_text[:start].rstrip(" \t").endswith("await"):
                continue
            candidates.append(
                FixCandidate(
                    id=f"fix-async-expect-{start}",
                    title="Add await to async expectation",
                    description="Add await keyword before expect() for async operations",
                    target_file=failure.test_file,
                    confidence=ASYNC_EXPECT_CONFIDENCE,
                    category=self.category,
                    edits=[TextEdit.insert(position_at(source_text, start), "await ")],
                )
            )
        return candidates


class SnapshotFixStrategy(FixStrategy):
    """Re-runs the tests with snapshot updating instead of editing text."""

    snapshot_pattern = re.compile(r"snapshot.*mismatch|snapshot.*failed", re.IGNORECASE)

    def __init__(self, command: str = "npm test -- --updateSnapshot"):
        self.command = command

    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        if not self.snapshot_pattern.search(failure.error_message):
            return []
        return [
            FixCandidate(
                id="fix-snapshot-update",
                title="Update test snapshots",
                description="Run the test command with snapshot updating enabled",
                target_file=failure.test_file,
                confidence=SNAPSHOT_CONFIDENCE,
                category=FixCategory.OTHER,
                command=self.command,
            )
        ]


class MockFixStrategy(FixStrategy):
    """No mock remediation is inferred; proposing a guess would be worse than nothing."""

    category = FixCategory.MOCK

    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        return []


class TypeFixStrategy(FixStrategy):
    """No type remediation is inferred; see MockFixStrategy."""

    category = FixCategory.TYPE

    def generate(
        self, failure: TestFailure, source_text: Optional[str]
    ) -> List[FixCandidate]:
        return []


class FixGenerator:
    """
    Produces confidence-ranked fix candidates for classified failures.

    Candidates from the strategies registered for the failure's type come first,
    followed by any learned suggestions; the result is then stably sorted by
    descending confidence.
    """

    def __init__(
        self,
        settings: Optional[FixSettings] = None,
        learning_store=None,
        document_provider: Optional[DocumentProvider] = None,
    ):
        self.settings = settings or FixSettings()
        self.learning_store = learning_store
        self.document_provider = document_provider
        self._init_strategies()

    def _init_strategies(self) -> None:
        imports = ImportFixStrategy(self.settings.relative_import_extensions)
        assertions = AssertionFixStrategy()
        snapshots = SnapshotFixStrategy(self.settings.snapshot_update_command)
        self.strategies: Dict[ErrorType, List[FixStrategy]] = {
            ErrorType.MISSING_IMPORT: [imports],
            ErrorType.ASSERTION_MISMATCH: [assertions, snapshots],
            ErrorType.MOCK_ASSERTION: [MockFixStrategy()],
            ErrorType.TYPE_ERROR: [TypeFixStrategy()],
            ErrorType.NULL_REFERENCE: [],
            ErrorType.TEST_TIMEOUT: [],
            # ReferenceErrors, snapshot failures and unresolved promise
            # expectations are not classified.
            ErrorType.UNKNOWN: [imports, assertions, snapshots],
        }

    def generate_fixes(
        self, failure: TestFailure, source_text: Optional[str] = None
    ) -> List[FixCandidate]:
        """
        Generate ranked fix candidates for a classified failure.

        Args:
            failure: A failure already tagged by FailureClassifier.
            source_text: Text of ``failure.test_file``. Loaded through the
                document provider when omitted and a provider is configured.

        Returns:
            Candidates sorted by descending confidence. Empty when the target
            document exists but cannot be loaded.
        """
        if source_text is None:
            try:
                source_text = self._load_source(failure)
            except DocumentLoadError as e:
                logger.warning(
                    f"Could not load {failure.test_file} for '{failure.test_name}': {e}"
                )
                return []

        candidates: List[FixCandidate] = []
        for strategy in self.strategies.get(failure.error_type, []):
            try:
                candidates.extend(strategy.generate(failure, source_text))
            except Exception as e:
                logger.error(
                    f"{type(strategy).__name__} failed for '{failure.test_name}': {e}"
                )

        if self.learning_store is not None:
            candidates.extend(self.learning_store.generate_learned_suggestions(failure))

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        logger.debug(
            f"Generated {len(candidates)} fix candidate(s) for '{failure.test_name}'"
        )
        return candidates

    def _load_source(self, failure: TestFailure) -> Optional[str]:
        if self.document_provider is None:
            return None
        if not failure.test_file or failure.test_file == "unknown":
            return None
        return self.document_provider.load(failure.test_file)
