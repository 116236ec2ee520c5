import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence

from ..models import ErrorType, TestFailure

logger = logging.getLogger(__name__)

MAX_NAMES_PER_TYPE = 3

UNKNOWN_SUGGESTION = (
    "Review the error message and stack trace for clues about the root cause."
)


@dataclass(frozen=True)
class Rule:
    """A classification rule: a message predicate tagged with its error type."""

    predicate: Pattern
    error_type: ErrorType
    suggestion: str

    def matches(self, message: str) -> bool:
        return bool(self.predicate.search(message))


def _rule(pattern: str, error_type: ErrorType, suggestion: str) -> Rule:
    return Rule(re.compile(pattern, re.IGNORECASE), error_type, suggestion)


# Most specific first: several messages satisfy more than one loose pattern.
DEFAULT_RULES: List[Rule] = [
    _rule(
        r"expect.*toEqual.*expected|expected.*but received|toEqual.*received"
        r"|expect\(received\)\.to(?:Be|StrictEqual)\(expected\)",
        ErrorType.ASSERTION_MISMATCH,
        "Check the expected vs actual values. Consider if the test expectation is "
        "correct or if the implementation needs updating.",
    ),
    _rule(
        r"cannot read propert(?:y|ies).*of (?:undefined|null)",
        ErrorType.NULL_REFERENCE,
        "Add null checks or ensure the object is properly initialized before "
        "accessing properties.",
    ),
    _rule(
        r"module.*not found|cannot find module",
        ErrorType.MISSING_IMPORT,
        "Check the import path and ensure the module is installed or the path is "
        "correct.",
    ),
    _rule(
        r"timeout.*exceeded",
        ErrorType.TEST_TIMEOUT,
        "Increase test timeout or optimize async operations. Check for infinite "
        "loops or slow operations.",
    ),
    _rule(
        r"expected.*to (?:be|have been) called.*times|toHaveBeenCalledTimes",
        ErrorType.MOCK_ASSERTION,
        "Verify mock expectations match actual implementation behavior. Check if the "
        "mocked function is called correctly.",
    ),
    _rule(
        r"type.*is not assignable to type",
        ErrorType.TYPE_ERROR,
        "Fix TypeScript type mismatch. Check variable types and function signatures.",
    ),
]


class FailureClassifier:
    """
    Tags each failure with an error type and an initial suggestion.

    Rules are evaluated in list order and the first match wins; a message that
    matches nothing is classified as ``unknown``.
    """

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self.rules: List[Rule] = list(DEFAULT_RULES if rules is None else rules)

    def match_rule(self, message: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.matches(message):
                return rule
        return None

    def analyze_failure(self, failure: TestFailure) -> TestFailure:
        """Populate ``error_type`` and ``suggestion`` in place and return the failure."""
        rule = self.match_rule(failure.error_message or "")
        if rule:
            failure.error_type = rule.error_type
            failure.suggestion = rule.suggestion
        else:
            failure.error_type = ErrorType.UNKNOWN
            failure.suggestion = UNKNOWN_SUGGESTION
        logger.debug(f"Classified '{failure.test_name}' as {failure.error_type.value}")
        return failure

    def analyze_failures(self, failures: List[TestFailure]) -> List[TestFailure]:
        return [self.analyze_failure(failure) for failure in failures]

    def ensure_classified(self, failure: TestFailure) -> TestFailure:
        # analyze_failure always sets a suggestion, so an unknown failure
        # without one has never been through a classifier.
        if failure.error_type is ErrorType.UNKNOWN and failure.suggestion is None:
            return self.analyze_failure(failure)
        return failure

    def group_failures_by_type(
        self, failures: List[TestFailure]
    ) -> Dict[ErrorType, List[TestFailure]]:
        """
        Group failures by their classified type.

        Groups appear in order of first occurrence and keep input order within
        each group.
        """
        groups: Dict[ErrorType, List[TestFailure]] = {}
        for failure in failures:
            self.ensure_classified(failure)
            groups.setdefault(failure.error_type, []).append(failure)
        return groups

    def create_failure_summary(self, failures: List[TestFailure]) -> str:
        """Human-readable overview, one section per error type."""
        if not failures:
            return "No test failures to analyze."

        lines = [f"Found {len(failures)} test failure(s):"]
        for error_type, group in self.group_failures_by_type(failures).items():
            plural = "s" if len(group) > 1 else ""
            lines.append(f"\n**{error_type.value}** ({len(group)} failure{plural}):")
            for failure in group[:MAX_NAMES_PER_TYPE]:
                lines.append(f"  • {failure.test_name}")
                if failure.suggestion:
                    lines.append(f"    {failure.suggestion}")
            if len(group) > MAX_NAMES_PER_TYPE:
                lines.append(f"  ... and {len(group) - MAX_NAMES_PER_TYPE} more")

        return "\n".join(lines)
