"""Tests for error message normalization and pattern keys."""

import pytest

from ai_debug_context.core.analysis.pattern_keyer import PatternKeyer, normalize, pattern_key
from ai_debug_context.core.models import ErrorType


class TestNormalize:
    @pytest.mark.parametrize(
        "first, second",
        [
            ("Expected 3 but received 42", "Expected 7 but received 1000"),
            ("Cannot read property 'length' of undefined", "Cannot read property 'name' of undefined"),
            ('Unexpected token "}"', 'Unexpected token ")"'),
            ("Cannot find module ./utils/helpers", "Cannot find module ../lib/format"),
            ("Failed at C:\\repo\\src\\a.ts", "Failed at D:\\work\\b.ts"),
            ("getUser(1) returned null", "loadItems(abc, def) returned null"),
        ],
    )
    def test_payload_differences_collapse(self, first, second):
        assert normalize(first) == normalize(second)

    def test_canonical_form(self):
        assert normalize("Expected   5\n  to be 'x'") == "expected number to be string"

    def test_lowercases_and_strips(self):
        assert normalize("  TIMEOUT Exceeded  ") == "timeout exceeded"

    def test_idempotent(self):
        once = normalize("Cannot find module '/repo/src/a.ts' at line 12")
        assert normalize(once) == once

    def test_different_wording_stays_distinct(self):
        assert normalize("cannot read property of undefined") != normalize(
            "cannot read property of null"
        )

    def test_empty(self):
        assert normalize("") == ""


class TestPatternKey:
    def test_includes_error_type(self):
        assert pattern_key(ErrorType.NULL_REFERENCE, "Boom 1") == "null_reference:boom number"

    def test_accepts_plain_string_type(self):
        assert pattern_key("unknown", "x") == "unknown:x"

    def test_same_message_different_type(self):
        keyer = PatternKeyer()
        assert keyer.pattern_key(ErrorType.TYPE_ERROR, "m") != keyer.pattern_key(
            ErrorType.UNKNOWN, "m"
        )
