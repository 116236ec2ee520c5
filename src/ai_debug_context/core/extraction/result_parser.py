"""
Parser for raw test-run output.

This module turns either a structured JSON test report (Jest ``--json`` shape)
or free-form console output into TestFailure records and a TestResultSummary.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Pattern, Tuple, Union

from ..errors import ParseError, make_excerpt
from ..models import ErrorType, SourceLocation, TestFailure, TestResultSummary

logger = logging.getLogger(__name__)

# Frames from dependencies, test files or the runner's own internals never
# point at the code under test.
DEFAULT_EXCLUDED_FRAME_PATTERNS: Tuple[str, ...] = (
    "node_modules",
    ".spec.",
    ".test.",
    "node:internal",
    "internal/",
    "jest-circus",
    "jest-jasmine",
    "<anonymous>",
)


class ResultParser:
    """
    Converts test-runner output into structured failure records.

    Structured input that is not well-formed raises ParseError. Free-form input
    never raises; unrecognised text simply yields no failures.
    """

    def __init__(
        self, excluded_frame_patterns: Iterable[str] = DEFAULT_EXCLUDED_FRAME_PATTERNS
    ):
        self.excluded_frame_patterns = tuple(excluded_frame_patterns)

        self.failure_marker_pattern: Pattern = re.compile(r"^\s*(?:✕|×|FAIL)\s+(.+)$")
        self.error_line_pattern: Pattern = re.compile(
            r"^\s*(?:Error|TypeError|ReferenceError|AssertionError|SyntaxError|RangeError):\s*(.+)$"
        )
        self.frame_patterns: List[Pattern] = [
            re.compile(r"at .* \((.+):(\d+):(\d+)\)"),
            re.compile(r"at (.+):(\d+):(\d+)$"),
        ]

    def parse_structured(self, report: Union[str, bytes, Dict[str, Any]]) -> TestResultSummary:
        """
        Parse a structured test report.

        Args:
            report: The JSON text of the report, or the already-decoded mapping.

        Returns:
            TestResultSummary whose failures are all still ``unknown``.

        Raises:
            ParseError: If the report is not valid JSON or has the wrong shape.
        """
        data = self._decode(report)

        totals = {
            key: self._count(data, key, report)
            for key in (
                "numTotalTests",
                "numPassedTests",
                "numFailedTests",
                "numPendingTests",
            )
        }

        test_results = data.get("testResults") or []
        if not isinstance(test_results, list):
            raise ParseError(
                "'testResults' must be a list", excerpt=make_excerpt(report)
            )

        failures: List[TestFailure] = []
        for test_result in test_results:
            if not isinstance(test_result, dict):
                raise ParseError(
                    "Each entry of 'testResults' must be an object",
                    excerpt=make_excerpt(test_result),
                )
            if test_result.get("status") == "failed":
                failures.extend(self._parse_test_result(test_result))

        summary = TestResultSummary(
            total_tests=totals["numTotalTests"],
            passed_tests=totals["numPassedTests"],
            failed_tests=totals["numFailedTests"],
            skipped_tests=totals["numPendingTests"],
            duration=self._duration(data),
            timestamp=datetime.now(timezone.utc),
            failures=failures,
        )
        logger.debug(
            f"Parsed structured report: {summary.total_tests} tests, "
            f"{len(failures)} failure record(s)"
        )
        return summary

    def parse_freeform(self, text: str, default_file: str = "unknown") -> List[TestFailure]:
        """
        Scan console output for failed tests.

        A failure is a marker line (``✕ name``, ``× name`` or ``FAIL name``) followed
        by an error line and optional ``at ...`` stack frames. A blank line ends the
        stack; the next marker ends the failure. Markers with no error line are
        dropped.
        """
        failures: List[TestFailure] = []
        if not text:
            return failures

        current_test = ""
        current_error = ""
        current_stack: List[str] = []
        in_stack = False

        for line in text.splitlines():
            marker = self.failure_marker_pattern.match(line)
            if marker:
                if current_test and current_error:
                    failures.append(
                        self._create_failure(
                            current_test, default_file, current_error, current_stack
                        )
                    )
                current_test = marker.group(1).strip()
                current_error = ""
                current_stack = []
                in_stack = False
                continue

            error = self.error_line_pattern.match(line)
            if error:
                current_error = error.group(1).strip()
                in_stack = True
                continue

            stripped = line.strip()
            if in_stack and stripped.startswith("at "):
                current_stack.append(stripped)
            elif in_stack and not stripped:
                in_stack = False

        if current_test and current_error:
            failures.append(
                self._create_failure(current_test, default_file, current_error, current_stack)
            )

        logger.debug(f"Parsed {len(failures)} failure(s) from free-form output")
        return failures

    def extract_source_location(self, stack_trace: List[str]) -> SourceLocation:
        """
        Return the location of the first frame outside vendor and test code.

        Entries may hold several lines (a full failure message); each line is
        examined in order.
        """
        for entry in stack_trace:
            for frame in entry.splitlines():
                match = None
                for pattern in self.frame_patterns:
                    match = pattern.search(frame)
                    if match:
                        break
                if not match:
                    continue

                file_path, line, column = match.groups()
                if any(excluded in file_path for excluded in self.excluded_frame_patterns):
                    continue
                return SourceLocation(file=file_path, line=int(line), column=int(column))

        return SourceLocation()

    def _decode(self, report: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(report, dict):
            return report
        if isinstance(report, (str, bytes)):
            try:
                data = json.loads(report)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ParseError(
                    f"Failed to parse test report: {e}",
                    excerpt=make_excerpt(report),
                    original_exception=e,
                ) from e
            if not isinstance(data, dict):
                raise ParseError(
                    "Test report must be a JSON object", excerpt=make_excerpt(report)
                )
            return data
        raise ParseError(
            f"Unsupported report type: {type(report).__name__}",
            excerpt=make_excerpt(report),
        )

    @staticmethod
    def _count(data: Dict[str, Any], key: str, report: Any) -> int:
        value = data.get(key)
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ParseError(
                f"'{key}' must be a non-negative number", excerpt=make_excerpt(report)
            )
        return int(value)

    @staticmethod
    def _duration(data: Dict[str, Any]) -> int:
        start, end = data.get("startTime"), data.get("endTime")
        if isinstance(start, (int, float)) and isinstance(end, (int, float)):
            return max(int(end - start), 0)
        return 0

    def _parse_test_result(self, test_result: Dict[str, Any]) -> List[TestFailure]:
        test_file = test_result.get("name") or "unknown"
        assertions = test_result.get("assertionResults") or []
        if not isinstance(assertions, list):
            raise ParseError(
                "'assertionResults' must be a list", excerpt=make_excerpt(test_result)
            )

        failures = []
        for assertion in assertions:
            if not isinstance(assertion, dict) or assertion.get("status") != "failed":
                continue
            messages = [str(m) for m in assertion.get("failureMessages") or []]
            failures.append(
                self._create_failure(
                    assertion.get("title") or assertion.get("fullName") or "Unknown test",
                    test_file,
                    messages[0] if messages else "Test failed",
                    messages,
                )
            )
        return failures

    def _create_failure(
        self,
        test_name: str,
        test_file: str,
        error_message: str,
        stack_trace: List[str],
    ) -> TestFailure:
        location = self.extract_source_location(stack_trace)
        return TestFailure(
            test_name=test_name,
            test_file=test_file,
            error_message=error_message,
            error_type=ErrorType.UNKNOWN,
            stack_trace=list(stack_trace),
            source_file=location.file,
            line_number=location.line,
            column_number=location.column,
        )
