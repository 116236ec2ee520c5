"""
Fix Applier - Applies chosen fix candidates.

This module provides functionality to:
1. Walk a batch of candidates strictly in order, optionally asking the user to
   Apply, Skip or Cancel each one
2. Apply all edits of one candidate to its target document as a single unit
3. Launch the command of command-based candidates without waiting for it
4. Preview an edit-based candidate as a unified diff

A candidate that cannot be applied is recorded as failed and the batch
continues. Nothing is retried.
"""

import difflib
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..errors import AIDebugContextError, ApplyError
from ..models import ConfirmChoice, FailedFix, FixCandidate, FixResult, TextEdit, offset_at
from ..protocols import CommandSink, ConfirmPrompt, DocumentProvider

logger = logging.getLogger(__name__)


def apply_edits(text: str, edits: Sequence[TextEdit]) -> str:
    """
    Apply a set of edits to ``text`` and return the new text.

    Edits address the original text. Insertions at the same position keep
    their list order.

    Raises:
        ApplyError: If an edit lies outside the text, is inverted, or overlaps
            another edit.
    """
    spans: List[Tuple[int, int, int, str]] = []
    for index, edit in enumerate(edits):
        try:
            start = offset_at(text, edit.start)
            end = offset_at(text, edit.end)
        except ValueError as e:
            raise ApplyError(f"Edit out of range: {e}", original_exception=e) from e
        if end < start:
            raise ApplyError(f"Edit end precedes its start: {edit}")
        spans.append((start, index, end, edit.new_text))

    spans.sort()
    for previous, current in zip(spans, spans[1:]):
        if previous[2] > current[0]:
            raise ApplyError(
                "Overlapping edits",
                context={
                    "first": (previous[0], previous[2]),
                    "second": (current[0], current[2]),
                },
            )

    # Back to front so earlier offsets stay valid.
    for start, _, end, new_text in reversed(spans):
        text = text[:start] + new_text + text[end:]
    return text


class FixApplier:
    """
    Applies fix candidates through the document and command collaborators.

    Edit-based candidates are loaded, edited in memory and saved once, so a
    failure at any step leaves the target untouched. Command-based candidates
    count as applied as soon as the command is launched. Advisory candidates
    (no edits and no command) have nothing to apply and are skipped.
    """

    def __init__(
        self,
        document_provider: Optional[DocumentProvider] = None,
        command_sink: Optional[CommandSink] = None,
    ):
        self.document_provider = document_provider
        self.command_sink = command_sink

    def apply_fixes(
        self,
        candidates: Sequence[FixCandidate],
        confirm: bool = False,
        prompt: Optional[ConfirmPrompt] = None,
    ) -> FixResult:
        """
        Apply candidates in order.

        Args:
            candidates: The candidates to apply.
            confirm: If True, ``prompt`` is asked about every candidate first.
            prompt: Callable returning Apply, Skip or Cancel for a candidate.
                Cancel skips that candidate and every remaining one.

        Returns:
            FixResult partitioning the input into applied, failed and skipped.
        """
        if confirm and prompt is None:
            raise ValueError("confirm=True requires a prompt callable")

        result = FixResult()
        candidates = list(candidates)
        for index, fix in enumerate(candidates):
            if confirm:
                choice = ConfirmChoice(prompt(fix))
                if choice is ConfirmChoice.CANCEL:
                    result.skipped.extend(candidates[index:])
                    logger.info(
                        f"Fix batch cancelled; skipped {len(candidates) - index} candidate(s)"
                    )
                    break
                if choice is ConfirmChoice.SKIP:
                    result.skipped.append(fix)
                    continue

            if fix.is_advisory:
                logger.debug(f"Nothing to apply for advisory fix: {fix.title}")
                result.skipped.append(fix)
                continue

            try:
                self.apply_fix(fix)
            except AIDebugContextError as e:
                result.failed.append(FailedFix(fix=fix, error=str(e)))
                logger.warning(f"Failed to apply fix {fix.title}: {e}")
                continue
            except Exception as e:
                # Host providers and sinks may raise anything
                result.failed.append(FailedFix(fix=fix, error=f"{type(e).__name__}: {e}"))
                logger.error(f"Unexpected error applying fix {fix.title}: {e}")
                continue

            result.applied.append(fix)
            logger.info(f"Applied fix: {fix.title}")

        return result

    def apply_fix(self, fix: FixCandidate) -> None:
        """
        Apply a single candidate.

        Raises:
            ApplyError: If the edits or the save fail, or no collaborator is set.
            DocumentLoadError: If the target document cannot be read.
        """
        if fix.is_command_based:
            if self.command_sink is None:
                raise ApplyError(
                    "No command sink configured", context={"fix_id": fix.id}
                )
            self.command_sink.run(fix.command)
            return

        provider = self._require_provider(fix)
        original = provider.load(fix.target_file)
        updated = apply_edits(original, fix.edits)
        provider.save(fix.target_file, updated)

    def preview(self, fix: FixCandidate) -> str:
        """
        Generate a unified diff of what applying ``fix`` would change.

        Returns:
            The diff, or a one-line note for command-based, advisory or
            unloadable candidates.
        """
        if fix.is_advisory:
            return f"No changes: {fix.description}"
        if fix.is_command_based:
            return f"Runs command: {fix.command}"

        try:
            provider = self._require_provider(fix)
            original = provider.load(fix.target_file)
            updated = apply_edits(original, fix.edits)
        except AIDebugContextError as e:
            return f"Error generating diff for {fix.target_file}: {e}"

        name = Path(fix.target_file).name
        diff_text = "".join(
            difflib.unified_diff(
                original.splitlines(keepends=True),
                updated.splitlines(keepends=True),
                fromfile=f"a/{name}",
                tofile=f"b/{name}",
            )
        )
        if not diff_text:
            return f"No changes detected for {fix.target_file}"
        return diff_text

    def _require_provider(self, fix: FixCandidate) -> DocumentProvider:
        if self.document_provider is None:
            raise ApplyError(
                "No document provider configured", context={"fix_id": fix.id}
            )
        return self.document_provider
