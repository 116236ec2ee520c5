"""Tests for the core data models."""

from datetime import datetime, timezone

import pytest

from ai_debug_context.core.models import (
    ErrorType,
    FixCandidate,
    FixPattern,
    Position,
    TestFailure,
    TestResultSummary,
    offset_at,
    parse_timestamp,
    position_at,
)


class TestPositions:
    TEXT = "first\nsecond line\n\nlast"

    @pytest.mark.parametrize(
        "offset, expected",
        [(0, Position(0, 0)), (5, Position(0, 5)), (6, Position(1, 0)), (18, Position(2, 0))],
    )
    def test_position_at(self, offset, expected):
        assert position_at(self.TEXT, offset) == expected

    def test_position_at_clamps(self):
        assert position_at(self.TEXT, 999) == Position(3, 4)
        assert position_at(self.TEXT, -3) == Position(0, 0)

    def test_offset_at_inverts_position_at(self):
        for offset in range(len(self.TEXT) + 1):
            assert offset_at(self.TEXT, position_at(self.TEXT, offset)) == offset

    @pytest.mark.parametrize(
        "position", [Position(9, 0), Position(0, 6), Position(-1, 0), Position(2, 1)]
    )
    def test_offset_at_rejects_outside_positions(self, position):
        with pytest.raises(ValueError):
            offset_at(self.TEXT, position)


class TestFixCandidateKinds:
    def make(self, **kwargs):
        return FixCandidate(
            id="c", title="t", description="d", target_file="a.ts", confidence=0.5, **kwargs
        )

    def test_command_based(self):
        candidate = self.make(command="npm test -- -u")
        assert candidate.is_command_based
        assert not candidate.is_advisory

    def test_advisory(self):
        candidate = self.make()
        assert candidate.is_command_based
        assert candidate.is_advisory


class TestSerialization:
    def test_summary_from_dict_restores_failures(self):
        summary = TestResultSummary(
            total_tests=4,
            failed_tests=1,
            duration=250,
            failures=[
                TestFailure(
                    test_name="t",
                    test_file="a.test.ts",
                    error_message="boom",
                    error_type=ErrorType.TEST_TIMEOUT,
                    stack_trace=["at a (/repo/a.ts:1:1)"],
                    line_number=1,
                )
            ],
        )

        restored = TestResultSummary.from_dict(summary.to_dict())

        assert restored.total_tests == 4
        assert restored.timestamp == summary.timestamp
        failure = restored.failures[0]
        assert failure.error_type is ErrorType.TEST_TIMEOUT
        assert failure.stack_trace == ["at a (/repo/a.ts:1:1)"]
        assert failure.line_number == 1

    def test_unknown_error_type_is_lenient(self):
        assert ErrorType.from_value("FLAKY") is ErrorType.UNKNOWN
        assert ErrorType.from_value("NULL_REFERENCE") is ErrorType.NULL_REFERENCE

    def test_pattern_without_success_count(self):
        pattern = FixPattern.from_dict(
            {"id": "p1", "errorPattern": "x", "totalAttempts": 4, "successRate": 0.75}
        )
        assert pattern.successes == 3
        assert pattern.failures == 1
        assert pattern.error_type is ErrorType.UNKNOWN

    def test_pattern_requires_id(self):
        with pytest.raises(KeyError):
            FixPattern.from_dict({"errorPattern": "x"})

    def test_pattern_accepts_utc_designator(self):
        pattern = FixPattern.from_dict(
            {"id": "p1", "errorPattern": "x", "lastUpdated": "2024-01-02T03:04:05.000Z"}
        )
        assert pattern.last_updated == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_summary_accepts_utc_designator(self):
        summary = TestResultSummary.from_dict({"timestamp": "2024-01-02T03:04:05Z"})
        assert summary.timestamp == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        ["2024-01-02T03:04:05Z", "2024-01-02T03:04:05z", "2024-01-02T03:04:05+00:00"],
    )
    def test_utc_forms_agree(self, value):
        assert parse_timestamp(value) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_offsets_are_kept(self):
        assert parse_timestamp("2024-01-02T05:04:05+02:00").utcoffset().total_seconds() == 7200

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
