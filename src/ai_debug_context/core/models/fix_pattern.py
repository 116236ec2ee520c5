from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .test_failure import ErrorType, parse_timestamp


class UserRating(str, Enum):
    """Optional user verdict attached to a recorded fix attempt."""

    HELPFUL = "helpful"
    PARTIALLY_HELPFUL = "partially_helpful"
    UNHELPFUL = "unhelpful"


@dataclass(frozen=True)
class FixFeedback:
    """One recorded outcome; folded into a FixPattern, never stored on its own."""

    success: bool
    applied_fix: str
    user_rating: Optional[UserRating] = None
    notes: Optional[str] = None


@dataclass
class FixPattern:
    """Learned statistics for one canonical error signature."""

    id: str
    error_pattern: str
    error_type: ErrorType
    successful_fixes: List[str] = field(default_factory=list)
    failed_fixes: List[str] = field(default_factory=list)
    success_rate: float = 0.0
    total_attempts: int = 0
    confidence: float = 0.0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    successes: int = 0
    user_ratings: Dict[str, int] = field(default_factory=dict)

    @property
    def failures(self) -> int:
        return self.total_attempts - self.successes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "errorPattern": self.error_pattern,
            "errorType": self.error_type.value,
            "successfulFixes": list(self.successful_fixes),
            "failedFixes": list(self.failed_fixes),
            "successRate": self.success_rate,
            "totalAttempts": self.total_attempts,
            "successes": self.successes,
            "confidence": self.confidence,
            "lastUpdated": self.last_updated.isoformat(),
            "userRatings": dict(self.user_ratings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FixPattern":
        total_attempts = int(data.get("totalAttempts", 0))
        success_rate = float(data.get("successRate", 0.0))
        successes = data.get("successes")
        if successes is None:
            # Older documents only stored the rate.
            successes = round(success_rate * total_attempts)
        last_updated = data.get("lastUpdated")
        return cls(
            id=str(data["id"]),
            error_pattern=data.get("errorPattern", ""),
            error_type=ErrorType.from_value(data.get("errorType", "unknown")),
            successful_fixes=list(data.get("successfulFixes") or []),
            failed_fixes=list(data.get("failedFixes") or []),
            success_rate=success_rate,
            total_attempts=total_attempts,
            confidence=float(data.get("confidence", 0.0)),
            last_updated=(
                parse_timestamp(last_updated)
                if last_updated
                else datetime.now(timezone.utc)
            ),
            successes=int(successes),
            user_ratings=dict(data.get("userRatings") or {}),
        )


@dataclass
class LearningStats:
    total_patterns: int = 0
    reliable_patterns: int = 0
    total_attempts: int = 0
    average_success_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPatterns": self.total_patterns,
            "reliablePatterns": self.reliable_patterns,
            "totalAttempts": self.total_attempts,
            "averageSuccessRate": self.average_success_rate,
        }
