"""Pytest configuration for the ai_debug_context tests."""

import os
from typing import Dict, List, Optional

import pytest

from ai_debug_context.core.errors import ApplyError, DocumentLoadError
from ai_debug_context.core.models import ErrorType, TestFailure

ASSERTION_MESSAGE = (
    "Error: expect(received).toEqual(expected) // deep equality\n\n"
    "Expected: 3\nReceived: 2\n"
    "    at Object.<anonymous> (/repo/src/math.test.ts:8:17)\n"
    "    at add (/repo/src/math.ts:3:10)"
)
NULL_REFERENCE_MESSAGE = (
    "TypeError: Cannot read property 'length' of undefined\n"
    "    at countItems (/repo/src/list.ts:12:20)\n"
    "    at Object.<anonymous> (/repo/src/list.test.ts:5:12)"
)


class InMemoryDocumentProvider:
    """DocumentProvider double holding documents in a dict."""

    def __init__(self, documents: Optional[Dict[str, str]] = None):
        self.documents = dict(documents or {})
        self.saves: List[str] = []
        self.fail_saves = False

    def load(self, path: str) -> str:
        if path not in self.documents:
            raise DocumentLoadError(f"No such document: {path}", path=path)
        return self.documents[path]

    def save(self, path: str, text: str) -> None:
        if self.fail_saves:
            raise ApplyError(f"Read-only document: {path}")
        self.documents[path] = text
        self.saves.append(path)


class RecordingCommandSink:
    def __init__(self):
        self.commands: List[str] = []

    def run(self, command: str) -> None:
        self.commands.append(command)


class RecordingHandoffSink:
    def __init__(self):
        self.delivered: List[str] = []

    def deliver(self, context: str) -> None:
        self.delivered.append(context)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep host configuration out of every test."""
    for name in list(os.environ):
        if name.startswith("AI_DEBUG_CONTEXT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def sample_report() -> dict:
    """Structured report with three tests, two of them failing."""
    return {
        "numTotalTests": 3,
        "numPassedTests": 1,
        "numFailedTests": 2,
        "numPendingTests": 0,
        "startTime": 1000,
        "endTime": 1750,
        "testResults": [
            {
                "name": "src/math.test.ts",
                "status": "failed",
                "assertionResults": [
                    {"title": "adds numbers", "status": "passed", "failureMessages": []},
                    {
                        "title": "adds negative numbers",
                        "status": "failed",
                        "failureMessages": [ASSERTION_MESSAGE],
                    },
                ],
            },
            {
                "name": "src/list.test.ts",
                "status": "failed",
                "assertionResults": [
                    {
                        "title": "counts items",
                        "status": "failed",
                        "failureMessages": [NULL_REFERENCE_MESSAGE],
                    }
                ],
            },
        ],
    }


@pytest.fixture
def make_failure():
    """Factory for TestFailure records."""

    def _make(
        message: str = "expect(received).toBe(expected)",
        error_type: ErrorType = ErrorType.UNKNOWN,
        test_name: str = "does something",
        test_file: str = "src/example.test.ts",
    ) -> TestFailure:
        return TestFailure(
            test_name=test_name,
            test_file=test_file,
            error_message=message,
            error_type=error_type,
        )

    return _make


@pytest.fixture
def documents() -> InMemoryDocumentProvider:
    return InMemoryDocumentProvider()


@pytest.fixture
def command_sink() -> RecordingCommandSink:
    return RecordingCommandSink()


@pytest.fixture
def handoff_sink() -> RecordingHandoffSink:
    return RecordingHandoffSink()
