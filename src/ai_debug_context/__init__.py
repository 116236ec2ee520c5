"""ai-debug-context - Test failure analysis and fix learning engine.

This package parses test runner output into classified failures, proposes
ranked fix candidates, applies the chosen ones, and learns from the outcome
which fixes work for which failure signatures.

Example:
    >>> from ai_debug_context import AnalysisEngine, load_settings
    >>> engine = AnalysisEngine.from_settings(load_settings())
    >>> run = engine.analyze_report(open("jest-report.json").read())
    >>> print(run.text_summary)

Attributes:
    __version__ (str): The version of the ai-debug-context package.
    AnalysisEngine (type): Facade wiring every component for one workspace.
    TestFailure (type): Data model for a failed test.
    FixCandidate (type): Data model for a proposed fix.
    Settings (type): Configuration settings.
    load_settings (Callable): Function to load settings.
"""

from .__version__ import __version__
from .core.analyzer_service import AnalysisEngine, AnalysisRun
from .core.models import FixCandidate, TestFailure, TestResultSummary
from .utils.config_types import Settings
from .utils.settings import load_settings

__all__ = [
    "AnalysisEngine",
    "AnalysisRun",
    "FixCandidate",
    "TestFailure",
    "TestResultSummary",
    "Settings",
    "load_settings",
    "__version__",
]
