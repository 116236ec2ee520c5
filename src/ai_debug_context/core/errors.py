"""
Centralized error handling module for ai_debug_context.

This module defines the exception hierarchy used by the analysis engine. Only
structurally invalid input (``ParseError``) is meant to reach callers; the other
errors are raised internally and contained to the single item they concern
(one fix candidate, one document, one learning-store flush).
"""

from typing import Any, Dict, Optional

EXCERPT_LENGTH = 200


def make_excerpt(raw: Any, limit: int = EXCERPT_LENGTH) -> str:
    """Return a short, single-line excerpt of unparsable input for error messages."""
    text = raw if isinstance(raw, str) else repr(raw)
    text = " ".join(text.split())
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


class BaseError(Exception):
    """Base class for all custom exceptions in the application."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize the BaseError.

        Args:
            message: The primary error message.
            error_code: A unique code for this error type (e.g., 'PARSE_001').
            context: A dictionary of contextual information related to the error.
            original_exception: The original exception that was caught and wrapped.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        """Create a string representation of the error."""
        parts = []
        if self.error_code:
            parts.append(f"[{self.error_code}]")
        parts.append(self.message)

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"Context: ({context_str})")

        if self.original_exception:
            parts.append(
                f"--> Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
            )

        return " ".join(parts)


class AIDebugContextError(BaseError):
    """Base exception class for all ai_debug_context errors."""

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message or "An error occurred during test failure analysis",
            error_code=error_code,
            context=context,
            original_exception=original_exception,
        )


class ConfigurationError(AIDebugContextError):
    """Error related to configuration issues."""

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message or "Invalid configuration specified",
            error_code="CONFIG_001",
            context=context,
            original_exception=original_exception,
        )


class ParseError(AIDebugContextError):
    """Structured test-run input (or imported learning data) is not well-formed."""

    def __init__(
        self,
        message: Optional[str] = None,
        excerpt: str = "",
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.excerpt = excerpt
        merged = dict(context or {})
        if excerpt:
            merged.setdefault("excerpt", excerpt)
        super().__init__(
            message or "Failed to parse structured test report",
            error_code="PARSE_001",
            context=merged,
            original_exception=original_exception,
        )


class DocumentLoadError(AIDebugContextError):
    """A target document could not be read."""

    def __init__(
        self,
        message: Optional[str] = None,
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.path = path
        merged = dict(context or {})
        if path:
            merged.setdefault("path", path)
        super().__init__(
            message or "Could not load document",
            error_code="DOC_001",
            context=merged,
            original_exception=original_exception,
        )


class ApplyError(AIDebugContextError):
    """Applying a fix candidate (edit, save or command launch) failed."""

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message or "Failed to apply fix",
            error_code="APPLY_001",
            context=context,
            original_exception=original_exception,
        )


class StorageError(AIDebugContextError):
    """Reading or writing a workspace-local store failed."""

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message or "Storage operation failed",
            error_code="STORAGE_001",
            context=context,
            original_exception=original_exception,
        )


class EscalationTimeoutError(AIDebugContextError):
    """The assistant hand-off did not answer before its deadline."""

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message or "Assistant hand-off exceeded its deadline",
            error_code="ESCALATE_001",
            context=context,
            original_exception=original_exception,
        )
