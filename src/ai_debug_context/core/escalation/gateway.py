"""
Hand-off of failures to an external AI assistant.

Every escalation resolves to a value: either the assistant's reply or a
Fallback describing why the context document was handed off manually instead.
An unavailable or slow assistant is an expected outcome, not an error.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from ..analysis.failure_classifier import FailureClassifier
from ..errors import AIDebugContextError, EscalationTimeoutError
from ..models import ErrorType, TestFailure, TestResultSummary
from ..protocols import AssistantChannel, DocumentProvider, HandoffSink
from ...utils.config_types import EscalationSettings
from .context_builder import ContextBuilder, source_excerpt

logger = logging.getLogger(__name__)

ASSISTANT_CONFIDENCE = 0.8
UNRANKED_PRIORITY = 999


class FallbackReason(str, Enum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class AssistantReply:
    """The assistant answered; ``text`` is opaque and only ever displayed."""

    text: str
    context: str


@dataclass
class Fallback:
    """The context document went to the hand-off sink instead."""

    reason: FallbackReason
    context: str
    detail: str = ""
    delivered: bool = False


EscalationResult = Union[AssistantReply, Fallback]


class SuggestionType(str, Enum):
    ASSISTANT_REPLY = "assistant_reply"
    FALLBACK = "fallback"


@dataclass
class EscalationSuggestion:
    """Outcome of escalating one failure (or one batch) for display."""

    type: SuggestionType
    message: str
    context: str
    confidence: Optional[float] = None
    failure_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AIEscalationGateway:
    """
    Builds context documents and hands them to the assistant channel.

    At most ``settings.max_failures`` failures are escalated per call, chosen by
    the configured error-type priority and then by how common their type is in
    the batch.
    """

    def __init__(
        self,
        settings: Optional[EscalationSettings] = None,
        assistant: Optional[AssistantChannel] = None,
        handoff_sink: Optional[HandoffSink] = None,
        document_provider: Optional[DocumentProvider] = None,
        classifier: Optional[FailureClassifier] = None,
        context_builder: Optional[ContextBuilder] = None,
    ):
        self.settings = settings or EscalationSettings()
        self.assistant = assistant
        self.handoff_sink = handoff_sink
        self.document_provider = document_provider
        self.classifier = classifier or FailureClassifier()
        self.context_builder = context_builder or ContextBuilder(
            self.settings, self.classifier
        )

    def build_single_failure_context(
        self,
        failure: TestFailure,
        source_text: Optional[str] = None,
        include_source_code: Optional[bool] = None,
        max_context_lines: Optional[int] = None,
    ) -> str:
        return self.context_builder.build_single_failure_context(
            failure, source_text, include_source_code, max_context_lines
        )

    def build_batch_context(self, summary: TestResultSummary) -> str:
        return self.context_builder.build_batch_context(summary)

    def prioritize_failures(self, failures: List[TestFailure]) -> List[TestFailure]:
        """Order failures by type priority, then by type frequency (most common first)."""
        analyzed = [self.classifier.ensure_classified(f) for f in failures]
        frequency: Dict[ErrorType, int] = {}
        for failure in analyzed:
            frequency[failure.error_type] = frequency.get(failure.error_type, 0) + 1

        priority = self.settings.type_priority
        return sorted(
            analyzed,
            key=lambda f: (
                priority.get(f.error_type.value, UNRANKED_PRIORITY),
                -frequency[f.error_type],
            ),
        )

    async def escalate(
        self, context: str, timeout: Optional[float] = None
    ) -> EscalationResult:
        """
        Send one context document to the assistant.

        Args:
            context: The document to send.
            timeout: Seconds to wait for a reply; defaults to the setting.

        Returns:
            AssistantReply, or Fallback when the assistant is unavailable,
            too slow, or fails.
        """
        if self.assistant is None or not self.assistant.is_available():
            logger.info("Assistant unavailable; handing context off manually")
            return self._fallback(FallbackReason.UNAVAILABLE, context)

        timeout = self.settings.timeout_seconds if timeout is None else timeout
        try:
            reply = await asyncio.wait_for(self.assistant.send(context), timeout=timeout)
        except asyncio.TimeoutError:
            error = EscalationTimeoutError(
                f"Assistant did not reply within {timeout} seconds",
                context={"timeout": timeout},
            )
            logger.warning(str(error))
            return self._fallback(FallbackReason.TIMEOUT, context, str(error))
        except Exception as e:
            logger.error(f"Assistant hand-off failed: {e}")
            return self._fallback(FallbackReason.ERROR, context, str(e))

        return AssistantReply(text=str(reply), context=context)

    async def analyze_with_assistant(
        self, failures: List[TestFailure], timeout: Optional[float] = None
    ) -> List[EscalationSuggestion]:
        """Escalate the highest-priority failures, one context document each."""
        if not failures:
            return []

        selected = self.prioritize_failures(failures)[: self.settings.max_failures]
        logger.info(f"Escalating {len(selected)} of {len(failures)} failure(s)")

        suggestions = []
        for failure in selected:
            context = self.build_single_failure_context(
                failure, self.load_excerpt(failure)
            )
            result = await self.escalate(context, timeout)
            suggestions.append(
                self._to_suggestion(result, f"test failure: {failure.test_name}", failure.id)
            )
        return suggestions

    async def analyze_batch(
        self, summary: TestResultSummary, timeout: Optional[float] = None
    ) -> EscalationSuggestion:
        context = self.build_batch_context(summary)
        result = await self.escalate(context, timeout)
        return self._to_suggestion(
            result, f"batch analysis of {len(summary.failures)} test failures"
        )

    def load_excerpt(self, failure: TestFailure) -> Optional[str]:
        if not (
            self.settings.include_source_code
            and failure.source_file
            and self.document_provider is not None
        ):
            return None
        try:
            text = self.document_provider.load(failure.source_file)
        except AIDebugContextError as e:
            logger.info(f"Could not read source file {failure.source_file}: {e}")
            return None
        return source_excerpt(text, failure.line_number, self.settings.source_excerpt_radius)

    def _fallback(self, reason: FallbackReason, context: str, detail: str = "") -> Fallback:
        delivered = False
        if self.handoff_sink is not None:
            try:
                self.handoff_sink.deliver(context)
                delivered = True
            except (AIDebugContextError, OSError) as e:
                logger.error(f"Could not deliver context for manual hand-off: {e}")
        return Fallback(reason=reason, context=context, detail=detail, delivered=delivered)

    @staticmethod
    def _to_suggestion(
        result: EscalationResult, subject: str, failure_id: Optional[str] = None
    ) -> EscalationSuggestion:
        if isinstance(result, AssistantReply):
            return EscalationSuggestion(
                type=SuggestionType.ASSISTANT_REPLY,
                message=result.text,
                context=result.context,
                confidence=ASSISTANT_CONFIDENCE,
                failure_id=failure_id,
            )

        where = "made available for manual hand-off" if result.delivered else "not delivered"
        message = f"Assistant {result.reason.value} for {subject}; context {where}"
        if result.detail:
            message += f" ({result.detail})"
        return EscalationSuggestion(
            type=SuggestionType.FALLBACK,
            message=message,
            context=result.context,
            failure_id=failure_id,
        )
