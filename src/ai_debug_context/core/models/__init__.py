from .fix_candidate import (
    ConfirmChoice,
    FailedFix,
    FixCandidate,
    FixCategory,
    FixResult,
    Position,
    TextEdit,
    offset_at,
    position_at,
)
from .fix_pattern import FixFeedback, FixPattern, LearningStats, UserRating
from .test_failure import (
    ErrorType,
    SourceLocation,
    TestFailure,
    TestResultSummary,
    parse_timestamp,
)

__all__ = [
    "ConfirmChoice",
    "ErrorType",
    "FailedFix",
    "FixCandidate",
    "FixCategory",
    "FixFeedback",
    "FixPattern",
    "FixResult",
    "LearningStats",
    "Position",
    "SourceLocation",
    "TestFailure",
    "TestResultSummary",
    "TextEdit",
    "UserRating",
    "offset_at",
    "parse_timestamp",
    "position_at",
]
