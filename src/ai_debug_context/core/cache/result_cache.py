"""
Content-hash cache of test run results.

An entry for a test file stays valid while the file and the files it imports
relatively are unchanged and the entry is younger than ``max_age_seconds``.
The cache never runs tests itself; callers pass the function that does.
"""

import hashlib
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..errors import StorageError
from ..models import TestResultSummary
from ...utils.config_types import CacheSettings

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0.0"
LOW_HIT_RATE = 0.3
HIGH_HIT_RATE = 0.8
NEAR_CAPACITY = 0.9

DEFAULT_DEPENDENCY_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

_IMPORT_FROM = re.compile(r"""import.*from\s+['"`]([^'"`]+)['"`]""")


def file_hash(path: Union[str, Path]) -> str:
    """md5 of the file's content, or an empty string when it cannot be read."""
    try:
        return hashlib.md5(Path(path).read_bytes()).hexdigest()
    except OSError as e:
        logger.debug(f"Could not hash {path}: {e}")
        return ""


@dataclass
class CacheEntry:
    file_hash: str
    summary: TestResultSummary
    duration_ms: float
    dependency_hashes: List[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileHash": self.file_hash,
            "dependencyHashes": list(self.dependency_hashes),
            "result": self.summary.to_dict(),
            "durationMs": self.duration_ms,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            file_hash=data["fileHash"],
            summary=TestResultSummary.from_dict(data["result"]),
            duration_ms=float(data.get("durationMs", 0)),
            dependency_hashes=list(data.get("dependencyHashes") or []),
            timestamp=float(data["timestamp"]),
        )


@dataclass
class CacheStats:
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    time_saved_ms: float = 0.0
    entries_count: int = 0

    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.cache_hits / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "hitRate": self.hit_rate,
            "timeSavedMs": self.time_saved_ms,
            "entriesCount": self.entries_count,
        }


class ResultCache:
    """
    Caches TestResultSummary values per test file.

    Args:
        storage_file: JSON file the cache is persisted to.
        settings: Cache limits; a disabled cache always runs ``run_fn``.
        extensions: Extensions tried when resolving extensionless relative imports.
    """

    def __init__(
        self,
        storage_file: Union[str, Path],
        settings: Optional[CacheSettings] = None,
        extensions: Sequence[str] = DEFAULT_DEPENDENCY_EXTENSIONS,
    ):
        self.storage_file = Path(storage_file)
        self.settings = settings or CacheSettings()
        self.extensions = list(extensions)
        self._entries: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        if self.settings.enabled:
            self._load_cache()

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_run(
        self, test_file: Union[str, Path], run_fn: Callable[[], TestResultSummary]
    ) -> Tuple[TestResultSummary, bool]:
        """
        Return the cached summary for ``test_file`` or run the tests and cache them.

        Returns:
            ``(summary, from_cache)``.
        """
        if not self.settings.enabled:
            return run_fn(), False

        key = self._key(test_file)
        self._stats.total_requests += 1
        entry = self.get_cached(test_file)
        if entry is not None:
            self._stats.cache_hits += 1
            self._stats.time_saved_ms += entry.duration_ms
            logger.info(f"Using cached results for {key}")
            return entry.summary, True

        self._stats.cache_misses += 1
        start = time.perf_counter()
        summary = run_fn()
        duration_ms = (time.perf_counter() - start) * 1000
        self.cache_result(test_file, summary, duration_ms)
        return summary, False

    def get_cached(self, test_file: Union[str, Path]) -> Optional[CacheEntry]:
        """The entry for ``test_file`` if it is still valid, else None (and drops it)."""
        key = self._key(test_file)
        entry = self._entries.get(key)
        if entry is None:
            return None

        reason = self._invalid_reason(test_file, entry)
        if reason:
            logger.debug(f"Cache entry for {key} invalid: {reason}")
            del self._entries[key]
            return None
        return entry

    def cache_result(
        self,
        test_file: Union[str, Path],
        summary: TestResultSummary,
        duration_ms: float,
    ) -> None:
        if not self.settings.enabled:
            return
        current_hash = file_hash(test_file)
        if not current_hash:
            logger.debug(f"Not caching results for unreadable test file {test_file}")
            return

        self._entries[self._key(test_file)] = CacheEntry(
            file_hash=current_hash,
            summary=summary,
            duration_ms=duration_ms,
            dependency_hashes=self._dependency_hashes(test_file),
        )
        self._evict_oldest()
        self._save_cache()

    def invalidate(self, test_file: Union[str, Path]) -> bool:
        removed = self._entries.pop(self._key(test_file), None) is not None
        if removed:
            self._save_cache()
        return removed

    def invalidate_dependents(self, source_file: Union[str, Path]) -> int:
        """
        Drop every entry whose test file imports ``source_file`` relatively.

        Returns:
            Number of entries removed.
        """
        target = Path(source_file).resolve()
        stale = [
            key
            for key in self._entries
            if target in self.find_dependencies(key) or Path(key).resolve() == target
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info(f"Invalidated {len(stale)} cached result(s) depending on {source_file}")
            self._save_cache()
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self._stats = CacheStats()
        self._save_cache()

    def stats(self) -> CacheStats:
        self._stats.entries_count = len(self._entries)
        return self._stats

    def effectiveness(self) -> Dict[str, Any]:
        """Hit rate, minutes saved and tuning recommendations."""
        stats = self.stats()
        recommendations = []
        if stats.total_requests and stats.hit_rate < LOW_HIT_RATE:
            recommendations.append("Consider including more dependencies in cache key")
            recommendations.append(
                "Tests may be changing too frequently for effective caching"
            )
        if stats.hit_rate > HIGH_HIT_RATE:
            recommendations.append(
                "Cache is very effective - consider increasing max entries"
            )
        if stats.entries_count > self.settings.max_entries * NEAR_CAPACITY:
            recommendations.append(
                "Cache is near capacity - consider increasing max entries or reducing max age"
            )
        return {
            "hitRate": stats.hit_rate,
            "timeSavedMinutes": round(stats.time_saved_ms / 60000, 2),
            "recommendations": recommendations,
        }

    def find_dependencies(self, test_file: Union[str, Path]) -> List[Path]:
        """Resolve the relative imports of ``test_file`` to existing files."""
        path = Path(test_file)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {test_file} for dependencies: {e}")
            return []

        dependencies = []
        for line in content.splitlines():
            match = _IMPORT_FROM.search(line)
            if not match or not match.group(1).startswith("."):
                continue
            resolved = self._resolve_import(path.parent, match.group(1))
            if resolved is not None and resolved not in dependencies:
                dependencies.append(resolved)
        return dependencies

    def _resolve_import(self, base: Path, module: str) -> Optional[Path]:
        candidate = (base / module).resolve()
        if candidate.is_file():
            return candidate
        for ext in self.extensions:
            with_ext = candidate.with_name(candidate.name + ext)
            if with_ext.is_file():
                return with_ext
        return None

    def _dependency_hashes(self, test_file: Union[str, Path]) -> List[str]:
        if not self.settings.include_dependencies:
            return []
        hashes = [file_hash(dep) for dep in self.find_dependencies(test_file)]
        return sorted(h for h in hashes if h)

    def _invalid_reason(self, test_file: Union[str, Path], entry: CacheEntry) -> str:
        if time.time() - entry.timestamp > self.settings.max_age_seconds:
            return "expired"
        current_hash = file_hash(test_file)
        if not current_hash or current_hash != entry.file_hash:
            return "test file changed"
        if self._dependency_hashes(test_file) != entry.dependency_hashes:
            return "dependencies changed"
        return ""

    def _evict_oldest(self) -> None:
        overflow = len(self._entries) - self.settings.max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._entries, key=lambda k: self._entries[k].timestamp)
        for key in oldest[:overflow]:
            del self._entries[key]
        logger.debug(f"Evicted {overflow} oldest cache entries")

    @staticmethod
    def _key(test_file: Union[str, Path]) -> str:
        return str(Path(test_file))

    def _load_cache(self) -> None:
        if not self.storage_file.exists():
            return
        try:
            try:
                with open(self.storage_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                entries = {
                    key: CacheEntry.from_dict(entry) for key, entry in data["cache"]
                }
            except (OSError, ValueError, KeyError, TypeError) as e:
                raise StorageError(
                    f"Could not read result cache {self.storage_file}",
                    original_exception=e,
                ) from e
        except StorageError as e:
            logger.warning(f"Starting with an empty result cache: {e}")
            return

        now = time.time()
        self._entries = {
            key: entry
            for key, entry in entries.items()
            if now - entry.timestamp <= self.settings.max_age_seconds
        }
        stats = data.get("stats") or {}
        self._stats = CacheStats(
            total_requests=int(stats.get("totalRequests", 0)),
            cache_hits=int(stats.get("cacheHits", 0)),
            cache_misses=int(stats.get("cacheMisses", 0)),
            time_saved_ms=float(stats.get("timeSavedMs", 0)),
        )
        logger.debug(f"Loaded {len(self._entries)} cached test result(s)")

    def _save_cache(self) -> None:
        if not self.settings.enabled:
            return
        document = {
            "version": CACHE_VERSION,
            "cache": [[key, entry.to_dict()] for key, entry in self._entries.items()],
            "stats": self.stats().to_dict(),
            "lastSaved": datetime.now(timezone.utc).isoformat(),
        }
        temp_file = self.storage_file.with_name(self.storage_file.name + ".tmp")
        try:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(temp_file, self.storage_file)
        except (OSError, TypeError, ValueError) as e:
            error = StorageError(
                f"Failed to save result cache to {self.storage_file}", original_exception=e
            )
            logger.error(str(error))
