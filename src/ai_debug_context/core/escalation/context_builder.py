"""
Markdown context documents for hand-off to an AI assistant.

Both documents are deterministic: the same input always renders the same text.
"""

import logging
from typing import List, Optional

from ..analysis.failure_classifier import FailureClassifier
from ..models import TestFailure, TestResultSummary
from ...utils.config_types import EscalationSettings

logger = logging.getLogger(__name__)

BATCH_EXAMPLES_PER_TYPE = 2

SINGLE_FAILURE_REQUEST = [
    "## Request",
    "Please analyze this test failure and provide:",
    "1. **Root cause** analysis",
    "2. **Specific code changes** to fix the issue",
    "3. **Working code examples** with proper syntax",
    "4. **Best practices** to prevent similar issues",
    "",
    "**Focus on actionable solutions that can be immediately implemented.**",
]

BATCH_REQUEST = [
    "## Request",
    "Please analyze these test failures and provide:",
    "1. **Priority order** for fixing (which to tackle first)",
    "2. **Common patterns** you notice across failures",
    "3. **Specific fixes** for the most critical issues",
    "4. **Refactoring suggestions** to prevent similar issues",
    "",
    "**Focus on solutions that will have the biggest impact on test reliability.**",
]


def source_excerpt(source_text: str, line_number: Optional[int], radius: int = 10) -> str:
    """Lines within ``radius`` of the 1-based ``line_number`` (whole text if unknown)."""
    lines = source_text.splitlines()
    if not line_number:
        return "\n".join(lines)
    start = max(0, line_number - 1 - radius)
    end = min(len(lines), line_number + radius)
    return "\n".join(lines[start:end])


class ContextBuilder:
    """Renders single-failure and batch context documents."""

    def __init__(
        self,
        settings: Optional[EscalationSettings] = None,
        classifier: Optional[FailureClassifier] = None,
    ):
        self.settings = settings or EscalationSettings()
        self.classifier = classifier or FailureClassifier()

    def build_single_failure_context(
        self,
        failure: TestFailure,
        source_text: Optional[str] = None,
        include_source_code: Optional[bool] = None,
        max_context_lines: Optional[int] = None,
    ) -> str:
        """
        Render the context document for one failure.

        Args:
            failure: The classified failure.
            source_text: Source excerpt to embed, already trimmed by the caller.
            include_source_code: Embed ``source_text``; defaults to the setting.
            max_context_lines: Stack frames to keep; defaults to the setting.
        """
        if include_source_code is None:
            include_source_code = self.settings.include_source_code
        if max_context_lines is None:
            max_context_lines = self.settings.max_context_lines

        sections: List[str] = [
            "# Test Failure Analysis & Fix Request",
            "",
            "## Test Information",
            f"**Test Name**: {failure.test_name}",
            f"**Test File**: {failure.test_file}",
            f"**Error Type**: {failure.error_type.value}",
        ]
        if failure.source_file:
            location = failure.source_file
            if failure.line_number:
                location += f":{failure.line_number}"
            sections.append(f"**Source Location**: {location}")
        sections.extend(["", "## Error Details", "```", failure.error_message, "```", ""])

        if failure.stack_trace:
            sections.extend(
                ["## Stack Trace", "```", *failure.stack_trace[:max_context_lines], "```", ""]
            )

        if source_text and include_source_code:
            sections.extend(["## Source Code Context", "```typescript", source_text, "```", ""])

        if failure.suggestion:
            sections.extend(["## Pattern-Based Suggestion", failure.suggestion, ""])

        sections.extend(SINGLE_FAILURE_REQUEST)
        return "\n".join(sections)

    def build_batch_context(self, summary: TestResultSummary) -> str:
        """Render the context document summarising a whole run, grouped by error type."""
        sections: List[str] = [
            "# Batch Test Failure Analysis",
            "",
            "## Test Results Summary",
            f"- **Total Tests**: {summary.total_tests}",
            f"- **Passed**: {summary.passed_tests}",
            f"- **Failed**: {summary.failed_tests}",
            f"- **Skipped**: {summary.skipped_tests}",
            f"- **Duration**: {summary.duration}ms",
            "",
            "## Failure Analysis by Type",
            "",
        ]

        groups = self.classifier.group_failures_by_type(summary.failures)
        for error_type, failures in groups.items():
            sections.extend([f"### {error_type.value} ({len(failures)} failures)", ""])
            for failure in failures[:BATCH_EXAMPLES_PER_TYPE]:
                sections.extend(
                    [f"**{failure.test_name}**", "```", failure.error_message, "```", ""]
                )
            if len(failures) > BATCH_EXAMPLES_PER_TYPE:
                remaining = len(failures) - BATCH_EXAMPLES_PER_TYPE
                sections.extend([f"... and {remaining} more similar failures", ""])

        sections.extend(BATCH_REQUEST)
        return "\n".join(sections)
