"""Tests for the AnalysisEngine facade."""

import asyncio
import json

import pytest

from ai_debug_context.core.analyzer_service import AnalysisEngine
from ai_debug_context.core.errors import ParseError
from ai_debug_context.core.models import ConfirmChoice, ErrorType
from ai_debug_context.utils.config_types import Settings

MATH_TEST = """import { add } from './math';

test('adds negative numbers', () => {
  expect(add(-1, -2)).toEqual(-3);
});
"""


@pytest.fixture
def settings(tmp_path):
    return Settings(workspace_root=tmp_path)


@pytest.fixture
def engine(settings, documents, command_sink, handoff_sink):
    documents.documents["src/math.test.ts"] = MATH_TEST
    return AnalysisEngine.from_settings(
        settings,
        document_provider=documents,
        command_sink=command_sink,
        handoff_sink=handoff_sink,
    )


class GatedAssistant:
    """Assistant whose replies are held until ``release`` is set."""

    def __init__(self):
        self.release = asyncio.Event()

    def is_available(self):
        return True

    async def send(self, context):
        await self.release.wait()
        return "reply"


class TestAnalyze:
    def test_analyze_report(self, engine, sample_report):
        run = engine.analyze_report(json.dumps(sample_report))

        assert [f.error_type for f in run.failures] == [
            ErrorType.ASSERTION_MISMATCH,
            ErrorType.NULL_REFERENCE,
        ]
        assert "Found 2 test failure(s)" in run.text_summary
        assert run.run_id.startswith("run_")
        math_failure, list_failure = run.failures
        assert [c.id for c in run.fixes_for(math_failure)] == ["fix-tobe-vs-toequal"]
        assert run.fixes_for(list_failure) == []

    def test_analyze_report_rejects_malformed_input(self, engine):
        with pytest.raises(ParseError):
            engine.analyze_report("{broken")

    def test_analyze_output_never_raises(self, engine):
        run = engine.analyze_output("random noise\n✕ lonely marker\n")
        assert run.failures == []
        assert run.text_summary == "No test failures to analyze."

    def test_analyze_output(self, engine):
        run = engine.analyze_output(
            "✕ adds negative numbers\n  Error: Cannot find module 'react'\n",
            default_file="src/math.test.ts",
        )
        failure = run.failures[0]
        assert failure.error_type is ErrorType.MISSING_IMPORT
        assert run.summary.failed_tests == 1
        assert [c.id for c in run.fixes_for(failure)] == ["import-react"]

    def test_unresolved_failures(self, engine, sample_report):
        run = engine.analyze_report(sample_report)
        assert [f.test_name for f in run.unresolved()] == ["counts items"]
        assert [f.test_name for f in run.unresolved(min_confidence=0.75)] == [
            "adds negative numbers",
            "counts items",
        ]


class TestApplyAndLearn:
    def test_apply_top_fix(self, engine, documents, sample_report):
        run = engine.analyze_report(sample_report)
        fix = run.fixes_for(run.failures[0])[0]

        result = engine.apply_fixes([fix], confirm=True, prompt=lambda c: ConfirmChoice.APPLY)

        assert result.applied == [fix]
        assert ".toBe(-3)" in documents.documents["src/math.test.ts"]

    def test_recorded_outcomes_become_suggestions(self, engine, documents, sample_report):
        documents.documents["src/list.test.ts"] = "test('counts items', () => {});\n"
        run = engine.analyze_report(sample_report)
        list_failure = run.failures[1]
        for _ in range(3):
            engine.record_outcome(list_failure, "Default items to an empty array", True)

        assert engine.learning_stats().reliable_patterns == 1
        rerun = engine.analyze_report(sample_report)
        learned = rerun.fixes_for(rerun.failures[1])
        assert [c.title for c in learned] == ["Learned fix: Default items to an empty array"]
        assert learned[0].confidence == pytest.approx(1.0)

    def test_store_lives_in_workspace(self, engine, settings, sample_report):
        run = engine.analyze_report(sample_report)
        engine.record_outcome(run.failures[0], "fix", True)
        assert (settings.storage_path / "fix-patterns.json").exists()


class TestEscalation:
    @pytest.mark.asyncio
    async def test_escalates_unresolved_failures(self, engine, handoff_sink, sample_report):
        run = engine.analyze_report(sample_report)
        suggestions = await engine.escalate_unresolved(run)

        assert [s.failure_id for s in suggestions] == [run.failures[1].id]
        assert len(handoff_sink.delivered) == 1
        assert "**Test Name**: counts items" in handoff_sink.delivered[0]

    @pytest.mark.asyncio
    async def test_nothing_to_escalate(self, engine, handoff_sink):
        run = engine.analyze_output("")
        assert await engine.escalate_unresolved(run) == []
        assert handoff_sink.delivered == []

    @pytest.mark.asyncio
    async def test_superseded_escalation_is_discarded(self, settings, documents, sample_report):
        assistant = GatedAssistant()
        documents.documents["src/math.test.ts"] = MATH_TEST
        engine = AnalysisEngine.from_settings(
            settings, document_provider=documents, assistant=assistant
        )
        run = engine.analyze_report(sample_report)

        pending = asyncio.create_task(engine.escalate_unresolved(run))
        await asyncio.sleep(0)
        engine.analyze_report(sample_report)
        assistant.release.set()

        assert await pending == []

    @pytest.mark.asyncio
    async def test_current_escalation_is_kept(self, settings, documents, sample_report):
        assistant = GatedAssistant()
        documents.documents["src/math.test.ts"] = MATH_TEST
        engine = AnalysisEngine.from_settings(
            settings, document_provider=documents, assistant=assistant
        )
        run = engine.analyze_report(sample_report)

        pending = asyncio.create_task(engine.escalate_unresolved(run))
        await asyncio.sleep(0)
        assistant.release.set()

        suggestions = await pending
        assert [s.message for s in suggestions] == ["reply"]


class TestCachedAnalysis:
    def test_second_run_uses_cache(self, engine, tmp_path, sample_report):
        test_file = tmp_path / "math.test.ts"
        test_file.write_text(MATH_TEST)
        calls = []

        def run_tests():
            calls.append(1)
            return sample_report

        first, first_cached = engine.analyze_cached(str(test_file), run_tests)
        second, second_cached = engine.analyze_cached(str(test_file), run_tests)

        assert (first_cached, second_cached) == (False, True)
        assert len(calls) == 1
        assert [f.error_type for f in second.failures] == [
            ErrorType.ASSERTION_MISMATCH,
            ErrorType.NULL_REFERENCE,
        ]
