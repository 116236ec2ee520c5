"""
Durable table of fix outcomes keyed by failure signature.

The in-memory table is the source of truth for the lifetime of the store and
is written back to a single JSON document after every mutation. Storage
problems are logged and never raised: learning is best-effort.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..analysis.pattern_keyer import PatternKeyer
from ..errors import ParseError, StorageError, make_excerpt
from ..models import (
    ErrorType,
    FixCandidate,
    FixCategory,
    FixFeedback,
    FixPattern,
    LearningStats,
    TestFailure,
    UserRating,
)
from ...utils.config_types import LearningSettings

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0.0"
SUMMARY_LENGTH = 50


def calculate_confidence(success_rate: float, total_attempts: int) -> float:
    """Success rate plus an evidence bonus of up to 0.3, capped at 1.0."""
    if total_attempts <= 0:
        return 0.0
    return min(success_rate + min(total_attempts / 10, 0.3), 1.0)


def summarize_fix(description: str) -> str:
    if len(description) <= SUMMARY_LENGTH:
        return description
    return description[: SUMMARY_LENGTH - 3] + "..."


def _dedupe_and_cap(items: List[str], limit: int) -> List[str]:
    unique = list(dict.fromkeys(items))
    return unique[-limit:]


class LearningStore:
    """
    Single-writer store of FixPattern statistics.

    Callers must serialise mutating calls against one instance themselves.
    """

    def __init__(
        self,
        storage_file: Union[str, Path],
        settings: Optional[LearningSettings] = None,
        keyer: Optional[PatternKeyer] = None,
    ):
        self.storage_file = Path(storage_file)
        self.settings = settings or LearningSettings()
        self.keyer = keyer or PatternKeyer()
        self._patterns: Dict[str, FixPattern] = {}
        self._load_patterns()

    def __len__(self) -> int:
        return len(self._patterns)

    @property
    def patterns(self) -> Dict[str, FixPattern]:
        """Read-only view of the pattern table, keyed by pattern key."""
        return dict(self._patterns)

    def get_pattern(self, message: str, error_type: ErrorType) -> Optional[FixPattern]:
        return self._patterns.get(self.keyer.pattern_key(error_type, message))

    def is_reliable(self, pattern: FixPattern) -> bool:
        return (
            pattern.total_attempts >= self.settings.min_attempts
            and pattern.success_rate >= self.settings.min_success_rate
        )

    def record_fix_attempt(
        self,
        failure: TestFailure,
        applied_fix: Union[FixCandidate, str],
        success: bool,
        user_rating: Optional[UserRating] = None,
        notes: Optional[str] = None,
    ) -> FixPattern:
        """
        Fold one fix outcome into the pattern for ``failure``'s signature.

        Args:
            failure: The classified failure the fix was applied to.
            applied_fix: The applied candidate, or a free-text description of a
                manual fix.
            success: Whether the fix resolved the failure.
            user_rating: Optional user verdict on the fix.
            notes: Optional free-text notes.

        Returns:
            The updated pattern.
        """
        description = (
            applied_fix.description
            if isinstance(applied_fix, FixCandidate)
            else str(applied_fix)
        )
        feedback = FixFeedback(
            success=success,
            applied_fix=description,
            user_rating=user_rating,
            notes=notes,
        )
        pattern = self._process_feedback(failure, feedback)
        logger.info(
            f"Recorded {'successful' if success else 'failed'} fix attempt for: "
            f"{failure.test_name}"
        )
        return pattern

    def _process_feedback(self, failure: TestFailure, feedback: FixFeedback) -> FixPattern:
        key = self.keyer.pattern_key(failure.error_type, failure.error_message)
        pattern = self._patterns.get(key)
        if pattern is None:
            pattern = FixPattern(
                id=uuid.uuid4().hex[:12],
                error_pattern=self.keyer.normalize(failure.error_message),
                error_type=failure.error_type,
            )
            self._patterns[key] = pattern

        limit = self.settings.max_fix_history
        if feedback.success:
            pattern.successes += 1
            pattern.successful_fixes = _dedupe_and_cap(
                pattern.successful_fixes + [feedback.applied_fix], limit
            )
        else:
            pattern.failed_fixes = _dedupe_and_cap(
                pattern.failed_fixes + [feedback.applied_fix], limit
            )
        if feedback.user_rating is not None:
            rating = UserRating(feedback.user_rating).value
            pattern.user_ratings[rating] = pattern.user_ratings.get(rating, 0) + 1

        pattern.total_attempts += 1
        pattern.success_rate = pattern.successes / pattern.total_attempts
        pattern.confidence = calculate_confidence(
            pattern.success_rate, pattern.total_attempts
        )
        pattern.last_updated = datetime.now(timezone.utc)

        self._save_patterns()
        return pattern

    def get_best_fix(self, message: str, error_type: ErrorType) -> Optional[FixPattern]:
        """Return the stored pattern for this signature only if it is reliable."""
        pattern = self.get_pattern(message, error_type)
        if pattern is not None and self.is_reliable(pattern):
            return pattern
        return None

    def generate_learned_suggestions(self, failure: TestFailure) -> List[FixCandidate]:
        """Advisory candidates built from a reliable pattern's successful fixes."""
        pattern = self.get_best_fix(failure.error_message, failure.error_type)
        if pattern is None:
            return []

        suggestions = []
        top = pattern.successful_fixes[: self.settings.max_learned_suggestions]
        for index, description in enumerate(top, start=1):
            suggestions.append(
                FixCandidate(
                    id=f"learned-{pattern.id}-{index}",
                    title=f"Learned fix: {summarize_fix(description)}",
                    description=description,
                    target_file=failure.test_file,
                    confidence=pattern.confidence,
                    category=FixCategory.OTHER,
                )
            )
        return suggestions

    def get_learning_stats(self) -> LearningStats:
        patterns = list(self._patterns.values())
        if not patterns:
            return LearningStats()
        return LearningStats(
            total_patterns=len(patterns),
            reliable_patterns=sum(1 for p in patterns if self.is_reliable(p)),
            total_attempts=sum(p.total_attempts for p in patterns),
            average_success_rate=sum(p.success_rate for p in patterns) / len(patterns),
        )

    def get_most_reliable_patterns(self, limit: int = 10) -> List[FixPattern]:
        """Patterns with enough attempts, ranked by success rate times attempts."""
        candidates = [
            p
            for p in self._patterns.values()
            if p.total_attempts >= self.settings.min_attempts
        ]
        candidates.sort(key=lambda p: p.success_rate * p.total_attempts, reverse=True)
        return candidates[:limit]

    def get_patterns_needing_data(self) -> List[FixPattern]:
        """Patterns still below the attempt threshold, fewest attempts first."""
        needing = [
            p
            for p in self._patterns.values()
            if p.total_attempts < self.settings.min_attempts
        ]
        return sorted(needing, key=lambda p: p.total_attempts)

    def export_learning_data(self) -> str:
        data = self._document()
        data["exportDate"] = datetime.now(timezone.utc).isoformat()
        data["stats"] = self.get_learning_stats().to_dict()
        return json.dumps(data, indent=2)

    def import_learning_data(self, json_data: str) -> int:
        """
        Replace the whole table with previously exported data.

        Returns:
            The number of imported patterns.

        Raises:
            ParseError: If ``json_data`` is not a valid export document.
        """
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Failed to import learning data: {e}",
                excerpt=make_excerpt(json_data),
                original_exception=e,
            ) from e

        if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
            raise ParseError(
                "Learning data must be an object with a 'patterns' list",
                excerpt=make_excerpt(json_data),
            )

        patterns = self._patterns_from_entries(data["patterns"], json_data)
        self._patterns = patterns
        self._save_patterns()
        logger.info(f"Imported {len(patterns)} learning patterns")
        return len(patterns)

    def clear_learning_data(self) -> None:
        self._patterns.clear()
        self._save_patterns()
        logger.info("Cleared all learning data")

    def _patterns_from_entries(self, entries: List[Any], raw: Any) -> Dict[str, FixPattern]:
        patterns: Dict[str, FixPattern] = {}
        for entry in entries:
            if (
                not isinstance(entry, (list, tuple))
                or len(entry) != 2
                or not isinstance(entry[0], str)
                or not isinstance(entry[1], dict)
            ):
                raise ParseError(
                    "Each pattern entry must be a [key, pattern] pair",
                    excerpt=make_excerpt(entry),
                )
            key, pattern_data = entry
            try:
                patterns[key] = FixPattern.from_dict(pattern_data)
            except (KeyError, TypeError, ValueError) as e:
                raise ParseError(
                    f"Invalid pattern '{key}': {e}",
                    excerpt=make_excerpt(raw),
                    original_exception=e,
                ) from e
        return patterns

    def _document(self) -> Dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "patterns": [[key, p.to_dict()] for key, p in self._patterns.items()],
            "lastSaved": datetime.now(timezone.utc).isoformat(),
        }

    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not self.storage_file.exists():
            return None
        try:
            with open(self.storage_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                f"Could not read learning store {self.storage_file}",
                original_exception=e,
            ) from e

    def _load_patterns(self) -> None:
        try:
            data = self._read_document()
            if data is None:
                logger.debug("No learning store found, starting with empty learning data")
                return
            if not isinstance(data, dict):
                raise StorageError(f"Unexpected learning store layout: {type(data).__name__}")
            self._patterns = self._patterns_from_entries(data.get("patterns") or [], data)
            logger.info(f"Loaded {len(self._patterns)} learned patterns")
        except (StorageError, ParseError) as e:
            self._patterns = {}
            logger.warning(f"Starting with empty learning data: {e}")

    def _save_patterns(self) -> None:
        temp_file = self.storage_file.with_name(self.storage_file.name + ".tmp")
        try:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self._document(), f, indent=2)
            os.replace(temp_file, self.storage_file)
        except (OSError, TypeError, ValueError) as e:
            error = StorageError(
                f"Failed to save patterns to {self.storage_file}", original_exception=e
            )
            logger.error(str(error))
