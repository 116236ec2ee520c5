"""Tests for FixGenerator and its strategies."""

from unittest.mock import MagicMock

import pytest

from ai_debug_context.core.analysis.failure_classifier import FailureClassifier
from ai_debug_context.core.analysis.fix_applier import apply_edits
from ai_debug_context.core.analysis.fix_generator import (
    AssertionFixStrategy,
    FixGenerator,
    ImportFixStrategy,
    SnapshotFixStrategy,
)
from ai_debug_context.core.models import ErrorType, FixCandidate, FixCategory, TestFailure
from ai_debug_context.utils.config_types import FixSettings

SOURCE = """import { add } from './math';
import { format } from './format';

describe('math', () => {
  it('adds', () => {
    expect(add(1, 2)).toEqual(3);
  });
});
"""


@pytest.fixture
def generator(documents):
    documents.documents["src/math.test.ts"] = SOURCE
    return FixGenerator(document_provider=documents)


class TestImportFixes:
    def test_common_module_import(self, make_failure):
        failure = make_failure(
            "Cannot find module 'react' from 'src/App.test.tsx'", ErrorType.MISSING_IMPORT
        )
        candidates = ImportFixStrategy().generate(failure, SOURCE)

        assert len(candidates) == 1
        fix = candidates[0]
        assert fix.id == "import-react"
        assert fix.confidence == 0.8
        assert fix.category is FixCategory.IMPORT
        assert fix.edits[0].new_text == "import React from 'react';\n"
        # Inserted below the leading import block
        assert fix.edits[0].start.line == 2

    def test_unlisted_module_gets_default_import(self, make_failure):
        failure = make_failure("Cannot find module 'date-fns'", ErrorType.MISSING_IMPORT)
        fix = ImportFixStrategy().generate(failure, None)[0]

        assert fix.edits[0].new_text == "import dateFns from 'date-fns';\n"
        assert fix.edits[0].start.line == 0

    def test_relative_module_tries_each_extension(self, make_failure):
        failure = make_failure("Cannot find module './helpers'", ErrorType.MISSING_IMPORT)
        candidates = ImportFixStrategy([".ts", ".js"]).generate(failure, "")

        assert [c.edits[0].new_text for c in candidates] == [
            "import * as helpers from './helpers.ts';\n",
            "import * as helpers from './helpers.js';\n",
        ]
        assert all(c.confidence == 0.6 for c in candidates)

    def test_test_framework_global(self, make_failure):
        failure = make_failure("ReferenceError: describe is not defined")
        candidates = ImportFixStrategy().generate(failure, SOURCE)

        assert [c.id for c in candidates] == ["import-test-describe"]
        assert candidates[0].confidence == 0.9
        assert "import { describe } from '@jest/globals';" in candidates[0].edits[0].new_text

    def test_unrelated_undefined_name_is_ignored(self, make_failure):
        failure = make_failure("ReferenceError: fetchUser is not defined")
        assert ImportFixStrategy().generate(failure, SOURCE) == []

    def test_existing_import_is_not_proposed(self, make_failure):
        failure = make_failure("Cannot find module 'react'", ErrorType.MISSING_IMPORT)
        source = "import React from 'react';\n\ntest('x', () => {});\n"
        assert ImportFixStrategy().generate(failure, source) == []


class TestAssertionFixes:
    def test_to_be_for_primitive_values(self, make_failure):
        failure = make_failure(
            "expect(received).toEqual(expected)\n\nExpected: 3\nReceived: 2",
            ErrorType.ASSERTION_MISMATCH,
            test_file="src/math.test.ts",
        )
        candidates = AssertionFixStrategy().generate(failure, SOURCE)

        assert [c.id for c in candidates] == ["fix-tobe-vs-toequal"]
        assert apply_edits(SOURCE, candidates[0].edits).count(".toBe(3)") == 1

    def test_object_values_are_left_alone(self, make_failure):
        failure = make_failure(
            'expect(received).toEqual(expected)\n\nExpected: {"a": 1}\nReceived: {"a": 2}',
            ErrorType.ASSERTION_MISMATCH,
        )
        assert AssertionFixStrategy().generate(failure, SOURCE) == []

    def test_requires_source(self, make_failure):
        failure = make_failure(
            "expect(received).toEqual(expected)", ErrorType.ASSERTION_MISMATCH
        )
        assert AssertionFixStrategy().generate(failure, None) == []

    def test_unresolved_promise_adds_await(self, make_failure):
        source = "it('loads', async () => {\n  expect(load()).resolves.toBe(1);\n  await expect(x).rejects.toThrow();\n});\n"
        failure = make_failure(
            "Expected promise received but it was not resolved", ErrorType.ASSERTION_MISMATCH
        )
        candidates = AssertionFixStrategy().generate(failure, source)

        assert len(candidates) == 1
        assert candidates[0].confidence == 0.6
        assert "  await expect(load())" in apply_edits(source, candidates[0].edits)


class TestSnapshotFixes:
    def test_command_based_candidate(self, make_failure):
        failure = make_failure("Snapshot name: `renders 1` mismatched. Snapshot failed")
        candidates = SnapshotFixStrategy("yarn jest -u").generate(failure, None)

        assert len(candidates) == 1
        assert candidates[0].command == "yarn jest -u"
        assert candidates[0].is_command_based
        assert candidates[0].edits == []

    def test_non_snapshot_message(self, make_failure):
        assert SnapshotFixStrategy().generate(make_failure("boom"), None) == []


class TestFixGenerator:
    @pytest.mark.parametrize(
        "error_type, message",
        [
            (ErrorType.MOCK_ASSERTION, "Expected mock function to have been called 2 times"),
            (ErrorType.TYPE_ERROR, "Type 'string' is not assignable to type 'number'"),
        ],
    )
    def test_no_fabricated_fixes(self, generator, make_failure, error_type, message):
        failure = make_failure(message, error_type, test_file="src/math.test.ts")
        assert generator.generate_fixes(failure) == []

    def test_ranking_is_non_increasing(self, generator, make_failure):
        failure = make_failure(
            "expect(received).toEqual(expected)\nExpected: 3\nReceived: 2\nSnapshot failed",
            ErrorType.ASSERTION_MISMATCH,
            test_file="src/math.test.ts",
        )
        candidates = generator.generate_fixes(failure)

        assert [c.id for c in candidates] == ["fix-snapshot-update", "fix-tobe-vs-toequal"]
        confidences = [c.confidence for c in candidates]
        assert confidences == sorted(confidences, reverse=True)

    def test_loads_source_through_provider(self, generator, make_failure):
        failure = make_failure(
            "Cannot find module 'react'", ErrorType.MISSING_IMPORT, test_file="src/math.test.ts"
        )
        fix = generator.generate_fixes(failure)[0]
        assert fix.edits[0].start.line == 2

    def test_unreadable_test_file_yields_nothing(self, generator, make_failure):
        failure = make_failure(
            "Cannot find module 'react'", ErrorType.MISSING_IMPORT, test_file="src/missing.ts"
        )
        assert generator.generate_fixes(failure) == []

    def test_unknown_test_file_skips_loading(self, documents, make_failure):
        documents.load = MagicMock()
        generator = FixGenerator(document_provider=documents)
        failure = make_failure(
            "Cannot find module 'react'", ErrorType.MISSING_IMPORT, test_file="unknown"
        )

        assert [c.id for c in generator.generate_fixes(failure)] == ["import-react"]
        documents.load.assert_not_called()

    def test_failing_strategy_is_contained(self, make_failure):
        generator = FixGenerator()
        broken = MagicMock()
        broken.generate.side_effect = RuntimeError("broken strategy")
        generator.strategies[ErrorType.MISSING_IMPORT].insert(0, broken)
        failure = make_failure("Cannot find module 'react'", ErrorType.MISSING_IMPORT)

        assert [c.id for c in generator.generate_fixes(failure)] == ["import-react"]

    def test_learned_suggestions_are_merged_and_ranked(self, make_failure):
        learned = FixCandidate(
            id="learned-abc-1",
            title="Learned fix: add the import",
            description="add the import",
            target_file="src/a.test.ts",
            confidence=0.95,
        )
        store = MagicMock()
        store.generate_learned_suggestions.return_value = [learned]
        generator = FixGenerator(FixSettings(), learning_store=store)
        failure = make_failure("Cannot find module 'react'", ErrorType.MISSING_IMPORT)

        candidates = generator.generate_fixes(failure)

        assert [c.id for c in candidates] == ["learned-abc-1", "import-react"]
        store.generate_learned_suggestions.assert_called_once_with(failure)

    def test_snapshot_command_from_settings(self, make_failure):
        generator = FixGenerator(FixSettings(snapshot_update_command="pnpm test -u"))
        failure = make_failure("Snapshot failed", ErrorType.UNKNOWN)
        assert generator.generate_fixes(failure)[0].command == "pnpm test -u"

    def test_classified_unresolved_promise_gets_await_fix(self):
        failure = FailureClassifier().analyze_failure(
            TestFailure("loads", "a.test.ts", "Expected promise received but it was not resolved")
        )
        source = "test('loads', async () => {\n  expect(load()).resolves.toBe(1);\n});\n"

        candidates = FixGenerator().generate_fixes(failure, source)

        assert failure.error_type is ErrorType.UNKNOWN
        assert [c.id for c in candidates] == ["fix-async-expect-30"]
        assert "  await expect(load())" in apply_edits(source, candidates[0].edits)
