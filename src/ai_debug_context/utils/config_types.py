# This file defines the structure of configuration objects using Pydantic.
# It helps avoid circular dependencies by separating the type definition from its usage.

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_ERROR_TYPE_VALUES = {
    "assertion_mismatch",
    "null_reference",
    "missing_import",
    "test_timeout",
    "mock_assertion",
    "type_error",
    "unknown",
}

DEFAULT_TYPE_PRIORITY: Dict[str, int] = {
    "assertion_mismatch": 1,
    "type_error": 2,
    "null_reference": 3,
    "missing_import": 4,
    "mock_assertion": 5,
    "test_timeout": 6,
    "unknown": 7,
}


# --- Learning Settings Model ---
class LearningSettings(BaseModel):
    """Thresholds and storage for the fix-outcome learning store."""

    min_attempts: int = Field(default=3, ge=1)  # Attempts before a pattern is trusted
    min_success_rate: float = Field(default=0.6, ge=0.0, le=1.0)
    max_fix_history: int = Field(default=10, gt=0)  # Unique fixes kept per list
    max_learned_suggestions: int = Field(default=3, ge=0)
    storage_file: str = "fix-patterns.json"


# --- Fix Generation Settings Model ---
class FixSettings(BaseModel):
    """Settings for fix candidate generation."""

    snapshot_update_command: str = "npm test -- --updateSnapshot"
    relative_import_extensions: List[str] = Field(
        default_factory=lambda: [".ts", ".tsx", ".js", ".jsx"]
    )

    @field_validator("relative_import_extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        """Validate that extensions start with a dot."""
        if v and not all(ext.startswith(".") for ext in v):
            raise ValueError(
                "relative_import_extensions must be file extensions starting with '.'"
            )
        return v


# --- Escalation Settings Model ---
class EscalationSettings(BaseModel):
    """Settings for handing failures to an external AI assistant."""

    max_failures: int = Field(default=3, gt=0)  # Failures escalated per call
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_context_lines: int = Field(default=10, gt=0)  # Stack frames per document
    include_source_code: bool = True
    source_excerpt_radius: int = Field(default=10, ge=0)  # Lines around the failure
    type_priority: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_TYPE_PRIORITY)
    )
    handoff_file: str = "handoff.md"

    @field_validator("type_priority")
    @classmethod
    def validate_type_priority(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Validate that every key names a known error type."""
        unknown_keys = set(v) - _ERROR_TYPE_VALUES
        if unknown_keys:
            raise ValueError(
                f"Unknown error types in type_priority: {sorted(unknown_keys)}"
            )
        return v


# --- Result Cache Settings Model ---
class CacheSettings(BaseModel):
    """Settings for the content-hash test result cache."""

    enabled: bool = True
    max_entries: int = Field(default=1000, gt=0)
    max_age_seconds: int = Field(default=24 * 60 * 60, gt=0)
    include_dependencies: bool = True
    storage_file: str = "test-cache.json"


# --- Main Settings Model ---
class Settings(BaseModel):
    """Configuration settings for the AI debug context engine."""

    # Path settings
    workspace_root: Path = Field(default_factory=Path.cwd)
    storage_dir: str = ".ai-debug-context"  # Relative to workspace_root

    # Logging settings
    log_level: str = "INFO"  # Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_file: Optional[str] = None
    structured_logging: bool = False

    # Component sections
    learning: LearningSettings = Field(default_factory=LearningSettings)
    fixes: FixSettings = Field(default_factory=FixSettings)
    escalation: EscalationSettings = Field(default_factory=EscalationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    # Backward compatibility properties
    debug: bool = False  # Enable debug mode

    @property
    def storage_path(self) -> Path:
        """Directory holding all workspace-local state."""
        return self.workspace_root / self.storage_dir

    @field_validator("workspace_root", mode="before")
    @classmethod
    def ensure_workspace_root_is_path(cls, v: Any) -> Path:
        """Ensure workspace_root is a Path object, defaulting to CWD if None."""
        if v is None:
            return Path.cwd()
        return Path(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize the log level."""
        normalized = v.upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Invalid log_level: '{v}'")
        return normalized

    @model_validator(mode="after")
    def sync_debug_and_log_level(self) -> "Settings":
        """Synchronize debug flag and log_level."""
        if self.debug and self.log_level != "DEBUG":
            self.log_level = "DEBUG"
        elif self.log_level == "DEBUG" and not self.debug:
            self.debug = True
        return self
