import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..utils.commands import FileHandoffSink, SubprocessCommandSink
from ..utils.config_types import Settings
from ..utils.documents import FileDocumentProvider
from ..utils.logging_config import log_performance, set_correlation_id
from .analysis.failure_classifier import FailureClassifier
from .analysis.fix_applier import FixApplier
from .analysis.fix_generator import FixGenerator
from .cache.result_cache import ResultCache
from .escalation.gateway import AIEscalationGateway, EscalationSuggestion
from .extraction.result_parser import ResultParser
from .learning.learning_store import LearningStore
from .models import (
    FixCandidate,
    FixPattern,
    FixResult,
    LearningStats,
    TestFailure,
    TestResultSummary,
    UserRating,
)
from .protocols import AssistantChannel, CommandSink, ConfirmPrompt, DocumentProvider, HandoffSink

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.7


@dataclass
class AnalysisRun:
    """Result of analyzing one test run."""

    summary: TestResultSummary
    text_summary: str
    run_id: str
    fixes: Dict[str, List[FixCandidate]] = field(default_factory=dict)

    @property
    def failures(self) -> List[TestFailure]:
        return self.summary.failures

    def fixes_for(self, failure: TestFailure) -> List[FixCandidate]:
        return self.fixes.get(failure.id, [])

    def unresolved(self, min_confidence: float = DEFAULT_MIN_CONFIDENCE) -> List[TestFailure]:
        """Failures without any candidate at or above ``min_confidence``."""
        return [
            f
            for f in self.failures
            if not any(c.confidence >= min_confidence for c in self.fixes_for(f))
        ]


class AnalysisEngine:
    """
    Main service for analyzing test failures.

    This class coordinates parsing, classification, fix generation, fix
    application, learning and escalation for a single workspace.
    """

    def __init__(
        self,
        settings: Settings,
        parser: ResultParser,
        classifier: FailureClassifier,
        generator: FixGenerator,
        applier: FixApplier,
        store: LearningStore,
        gateway: AIEscalationGateway,
        cache: Optional[ResultCache] = None,
    ) -> None:
        self.settings = settings
        self.parser = parser
        self.classifier = classifier
        self.generator = generator
        self.applier = applier
        self.store = store
        self.gateway = gateway
        self.cache = cache
        self._generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        document_provider: Optional[DocumentProvider] = None,
        command_sink: Optional[CommandSink] = None,
        assistant: Optional[AssistantChannel] = None,
        handoff_sink: Optional[HandoffSink] = None,
    ) -> "AnalysisEngine":
        """Wire the default file-system collaborators for ``settings.workspace_root``."""
        storage = settings.storage_path
        document_provider = document_provider or FileDocumentProvider(settings.workspace_root)
        command_sink = command_sink or SubprocessCommandSink(settings.workspace_root)
        handoff_sink = handoff_sink or FileHandoffSink(
            storage / settings.escalation.handoff_file
        )

        classifier = FailureClassifier()
        store = LearningStore(storage / settings.learning.storage_file, settings.learning)
        return cls(
            settings=settings,
            parser=ResultParser(),
            classifier=classifier,
            generator=FixGenerator(settings.fixes, store, document_provider),
            applier=FixApplier(document_provider, command_sink),
            store=store,
            gateway=AIEscalationGateway(
                settings.escalation,
                assistant=assistant,
                handoff_sink=handoff_sink,
                document_provider=document_provider,
                classifier=classifier,
            ),
            cache=ResultCache(
                storage / settings.cache.storage_file,
                settings.cache,
                settings.fixes.relative_import_extensions,
            ),
        )

    def begin_run(self) -> int:
        """Start a new run; any escalation still in flight is superseded."""
        self._generation += 1
        return self._generation

    @log_performance("analyze_report")
    def analyze_report(self, report: Union[str, bytes, Dict[str, Any]]) -> AnalysisRun:
        """
        Analyze a structured test report.

        Raises:
            ParseError: If the report is malformed.
        """
        run_id = set_correlation_id()
        summary = self.parser.parse_structured(report)
        return self._build_run(summary, run_id)

    @log_performance("analyze_output")
    def analyze_output(self, text: str, default_file: str = "unknown") -> AnalysisRun:
        """Analyze free-form console output. Never raises on odd input."""
        run_id = set_correlation_id()
        failures = self.parser.parse_freeform(text or "", default_file)
        summary = TestResultSummary(
            total_tests=len(failures),
            failed_tests=len(failures),
            failures=failures,
        )
        return self._build_run(summary, run_id)

    def analyze_cached(
        self,
        test_file: str,
        run_tests: Callable[[], Union[str, bytes, Dict[str, Any]]],
    ) -> Tuple[AnalysisRun, bool]:
        """
        Analyze the report for ``test_file``, reusing a cached result when valid.

        ``run_tests`` produces a structured report and is only called on a miss.

        Returns:
            ``(run, from_cache)``.
        """
        if self.cache is None:
            return self.analyze_report(run_tests()), False

        run_id = set_correlation_id()
        summary, from_cache = self.cache.get_or_run(
            test_file, lambda: self.parser.parse_structured(run_tests())
        )
        return self._build_run(summary, run_id), from_cache

    def _build_run(self, summary: TestResultSummary, run_id: str) -> AnalysisRun:
        self.begin_run()
        self.classifier.analyze_failures(summary.failures)
        fixes = {
            failure.id: self.generator.generate_fixes(failure)
            for failure in summary.failures
        }
        text_summary = self.classifier.create_failure_summary(summary.failures)
        logger.info(
            f"Analyzed {summary.total_tests} test(s): {len(summary.failures)} failure(s), "
            f"{sum(len(c) for c in fixes.values())} fix candidate(s)"
        )
        return AnalysisRun(
            summary=summary, text_summary=text_summary, run_id=run_id, fixes=fixes
        )

    def apply_fixes(
        self,
        candidates: Sequence[FixCandidate],
        confirm: bool = False,
        prompt: Optional[ConfirmPrompt] = None,
    ) -> FixResult:
        return self.applier.apply_fixes(candidates, confirm=confirm, prompt=prompt)

    def record_outcome(
        self,
        failure: TestFailure,
        fix: Union[FixCandidate, str],
        success: bool,
        user_rating: Optional[UserRating] = None,
        notes: Optional[str] = None,
    ) -> FixPattern:
        return self.store.record_fix_attempt(failure, fix, success, user_rating, notes)

    async def escalate_unresolved(
        self,
        run: AnalysisRun,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        timeout: Optional[float] = None,
    ) -> List[EscalationSuggestion]:
        """
        Escalate the failures of ``run`` that have no confident candidate.

        Starts a new run. If another run begins before the assistant replies,
        the replies are discarded and an empty list is returned.
        """
        generation = self.begin_run()
        unresolved = run.unresolved(min_confidence)
        if not unresolved:
            logger.debug("No unresolved failures to escalate")
            return []

        suggestions = await self.gateway.analyze_with_assistant(unresolved, timeout)
        if generation != self._generation:
            logger.info(
                f"Discarding {len(suggestions)} escalation result(s) from superseded run "
                f"{run.run_id}"
            )
            return []
        return suggestions

    def learning_stats(self) -> LearningStats:
        return self.store.get_learning_stats()
