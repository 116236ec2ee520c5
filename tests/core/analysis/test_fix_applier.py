"""Tests for FixApplier and apply_edits."""

from unittest.mock import MagicMock

import pytest

from ai_debug_context.core.analysis.fix_applier import FixApplier, apply_edits
from ai_debug_context.core.errors import ApplyError
from ai_debug_context.core.models import ConfirmChoice, FixCandidate, Position, TextEdit


def edit_fix(fix_id, target="a.ts", edits=None, confidence=0.8):
    return FixCandidate(
        id=fix_id,
        title=f"Fix {fix_id}",
        description=f"Description of {fix_id}",
        target_file=target,
        confidence=confidence,
        edits=edits
        if edits is not None
        else [TextEdit.insert(Position(0, 0), f"// {fix_id}\n")],
    )


def command_fix(fix_id, command="npm test -- -u"):
    return FixCandidate(
        id=fix_id,
        title=f"Run {fix_id}",
        description="runs a command",
        target_file="a.ts",
        confidence=0.8,
        command=command,
    )


@pytest.fixture
def applier(documents, command_sink):
    documents.documents["a.ts"] = "const a = 1;\n"
    documents.documents["b.ts"] = "const b = 2;\n"
    return FixApplier(documents, command_sink)


class TestApplyEdits:
    def test_replace_and_insert(self):
        text = "line one\nline two\n"
        edits = [
            TextEdit.replace(Position(1, 5), Position(1, 8), "2"),
            TextEdit.insert(Position(0, 0), "// header\n"),
        ]
        assert apply_edits(text, edits) == "// header\nline one\nline 2\n"

    def test_insertions_at_same_position_keep_order(self):
        edits = [
            TextEdit.insert(Position(0, 0), "a"),
            TextEdit.insert(Position(0, 0), "b"),
        ]
        assert apply_edits("x", edits) == "abx"

    def test_overlapping_edits_rejected(self):
        edits = [
            TextEdit.replace(Position(0, 0), Position(0, 5), "x"),
            TextEdit.replace(Position(0, 3), Position(0, 7), "y"),
        ]
        with pytest.raises(ApplyError, match="Overlapping edits"):
            apply_edits("0123456789", edits)

    def test_out_of_range_rejected(self):
        with pytest.raises(ApplyError):
            apply_edits("one line", [TextEdit.insert(Position(3, 0), "x")])

    def test_inverted_range_rejected(self):
        with pytest.raises(ApplyError):
            apply_edits("abcdef", [TextEdit.replace(Position(0, 4), Position(0, 1), "x")])


class TestApplyFixes:
    def test_applies_in_order(self, applier, documents, command_sink):
        fixes = [edit_fix("one"), command_fix("snap"), edit_fix("two", target="b.ts")]
        result = applier.apply_fixes(fixes)

        assert [f.id for f in result.applied] == ["one", "snap", "two"]
        assert result.failed == [] and result.skipped == []
        assert documents.documents["a.ts"] == "// one\nconst a = 1;\n"
        assert documents.documents["b.ts"] == "// two\nconst b = 2;\n"
        assert command_sink.commands == ["npm test -- -u"]

    def test_cancel_skips_everything(self, applier, documents):
        fixes = [edit_fix("one"), edit_fix("two"), edit_fix("three")]
        prompt = MagicMock(return_value=ConfirmChoice.CANCEL)

        result = applier.apply_fixes(fixes, confirm=True, prompt=prompt)

        assert len(result.applied) == 0
        assert [f.id for f in result.skipped] == ["one", "two", "three"]
        prompt.assert_called_once_with(fixes[0])
        assert documents.saves == []

    def test_skip_then_cancel(self, applier):
        fixes = [edit_fix("one"), edit_fix("two"), edit_fix("three")]
        answers = iter([ConfirmChoice.APPLY, ConfirmChoice.SKIP, ConfirmChoice.CANCEL])

        result = applier.apply_fixes(fixes, confirm=True, prompt=lambda fix: next(answers))

        assert [f.id for f in result.applied] == ["one"]
        assert [f.id for f in result.skipped] == ["two", "three"]

    def test_prompt_may_answer_with_plain_values(self, applier):
        result = applier.apply_fixes([edit_fix("one")], confirm=True, prompt=lambda fix: "skip")
        assert [f.id for f in result.skipped] == ["one"]

    def test_confirm_requires_prompt(self, applier):
        with pytest.raises(ValueError):
            applier.apply_fixes([edit_fix("one")], confirm=True)

    def test_failure_is_contained_to_one_candidate(self, applier, documents):
        bad = edit_fix(
            "bad",
            edits=[
                TextEdit.insert(Position(0, 0), "x"),
                TextEdit.insert(Position(9, 0), "y"),
            ],
        )
        result = applier.apply_fixes([bad, edit_fix("missing", target="nope.ts"), edit_fix("good")])

        assert [f.fix.id for f in result.failed] == ["bad", "missing"]
        assert [f.id for f in result.applied] == ["good"]
        assert "out of range" in result.failed[0].error
        # The failed multi-edit candidate left no partial write behind
        assert documents.documents["a.ts"] == "// good\nconst a = 1;\n"

    def test_save_failure_marks_failed(self, applier, documents):
        documents.fail_saves = True
        result = applier.apply_fixes([edit_fix("one")])
        assert [f.fix.id for f in result.failed] == ["one"]
        assert "Read-only" in result.failed[0].error

    def test_foreign_save_errors_do_not_abort_the_batch(self, applier, documents):
        documents.save = MagicMock(side_effect=PermissionError("read-only"))

        result = applier.apply_fixes([edit_fix("one"), edit_fix("two", target="b.ts")])

        assert [f.fix.id for f in result.failed] == ["one", "two"]
        assert result.failed[0].error == "PermissionError: read-only"
        assert result.applied == []
        assert documents.save.call_count == 2

    def test_foreign_command_errors_are_contained(self, documents, command_sink):
        command_sink.run = MagicMock(side_effect=RuntimeError("sandbox denied"))
        applier = FixApplier(documents, command_sink)
        documents.documents["a.ts"] = "const a = 1;\n"

        result = applier.apply_fixes([command_fix("snap"), edit_fix("one")])

        assert [f.fix.id for f in result.failed] == ["snap"]
        assert "sandbox denied" in result.failed[0].error
        assert [f.id for f in result.applied] == ["one"]

    def test_advisory_candidates_are_skipped(self, applier):
        advice = FixCandidate(
            id="learned-1", title="Learned", description="do x", target_file="a.ts", confidence=0.9
        )
        result = applier.apply_fixes([advice])
        assert result.skipped == [advice]

    def test_command_without_sink_fails(self, documents):
        result = FixApplier(documents, None).apply_fixes([command_fix("snap")])
        assert [f.fix.id for f in result.failed] == ["snap"]


class TestPreview:
    def test_unified_diff(self, applier):
        diff = applier.preview(edit_fix("one"))
        assert "--- a/a.ts" in diff
        assert "+++ b/a.ts" in diff
        assert "+// one" in diff

    def test_command_preview(self, applier):
        assert applier.preview(command_fix("snap")) == "Runs command: npm test -- -u"

    def test_unloadable_preview(self, applier):
        assert applier.preview(edit_fix("x", target="nope.ts")).startswith("Error generating diff")

    def test_no_op_edit(self, applier):
        fix = edit_fix("noop", edits=[TextEdit.insert(Position(0, 0), "")])
        assert applier.preview(fix) == "No changes detected for a.ts"
