#!/usr/bin/env python3

"""
Command-line interface for the ai-debug-context engine.

Analyzes test runner output, shows ranked fix candidates, applies them, and
manages the learned fix patterns of a workspace.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from ..core.analyzer_service import AnalysisEngine, AnalysisRun
from ..core.errors import AIDebugContextError, ConfigurationError, ParseError
from ..core.models import ConfirmChoice, FixCandidate, FixPattern, TestFailure, UserRating
from ..utils.config_types import Settings
from ..utils.logging_config import configure_logging
from ..utils.settings import load_settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILURES_FOUND = 2

console = Console(
    force_terminal=True if os.environ.get("FORCE_COLOR", "0") == "1" else None
)


def setup_parser() -> argparse.ArgumentParser:
    """Set up the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="ai-debug-context",
        description="Test failure analysis with learned, confidence-ranked fix suggestions",
    )
    add_common_arguments(parser)

    subparsers = parser.add_subparsers(
        dest="command", help="Available commands", metavar="COMMAND"
    )

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze a test report and suggest fixes",
        description="Parse a JSON test report (or console output) and rank fixes",
    )
    analyze_parser.add_argument("report", help="Report file, or '-' for stdin")
    analyze_parser.add_argument(
        "--text", action="store_true", help="Treat the input as console output"
    )
    analyze_parser.add_argument(
        "--default-file",
        default="unknown",
        help="Test file recorded for failures parsed from console output",
    )
    analyze_parser.add_argument(
        "--apply", action="store_true", help="Apply the top fix of each failure"
    )
    analyze_parser.add_argument(
        "--confirm",
        action="store_true",
        help="Ask Apply/Skip/Cancel before applying each fix",
    )
    analyze_parser.add_argument(
        "--max-fixes", type=int, default=3, help="Fix candidates shown per failure"
    )
    analyze_parser.add_argument(
        "--fail-on-failures",
        action="store_true",
        help=f"Exit with status {EXIT_FAILURES_FOUND} when the report has failures",
    )
    analyze_parser.set_defaults(func=cmd_analyze)

    handoff_parser = subparsers.add_parser(
        "handoff",
        help="Write an AI assistant context document for a report",
    )
    handoff_parser.add_argument("report", help="Report file, or '-' for stdin")
    handoff_parser.add_argument("--text", action="store_true")
    handoff_parser.add_argument(
        "--failure",
        type=int,
        help="1-based failure number; the whole batch when omitted",
    )
    handoff_parser.set_defaults(func=cmd_handoff)

    learning_parser = subparsers.add_parser("learning", help="Manage learned fix patterns")
    learning_sub = learning_parser.add_subparsers(
        dest="learning_command", metavar="ACTION", required=True
    )
    learning_sub.add_parser("stats", help="Show learning statistics")
    export_parser = learning_sub.add_parser("export", help="Export learning data")
    export_parser.add_argument("file", nargs="?", help="Output file (stdout if omitted)")
    import_parser = learning_sub.add_parser("import", help="Replace learning data")
    import_parser.add_argument("file", help="Previously exported file")
    learning_sub.add_parser("clear", help="Delete all learned patterns")
    reliable_parser = learning_sub.add_parser("reliable", help="Most reliable patterns")
    reliable_parser.add_argument("limit", nargs="?", type=int, default=10)
    learning_sub.add_parser("needs-data", help="Patterns still collecting attempts")
    learning_parser.set_defaults(func=cmd_learning)

    record_parser = subparsers.add_parser(
        "record", help="Record the outcome of a fix for a failure in a report"
    )
    record_parser.add_argument("report", help="Report file, or '-' for stdin")
    record_parser.add_argument("--text", action="store_true")
    record_parser.add_argument("--failure", type=int, required=True, help="1-based failure number")
    record_parser.add_argument("--fix", required=True, help="Description of the applied fix")
    outcome = record_parser.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--success", dest="success", action="store_true")
    outcome.add_argument("--failure-outcome", dest="success", action="store_false")
    record_parser.add_argument(
        "--rating", choices=[r.value for r in UserRating], help="How helpful the fix was"
    )
    record_parser.add_argument("--notes")
    record_parser.set_defaults(func=cmd_record)

    return parser


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace", type=str, help="Workspace root (default: cwd)")
    parser.add_argument("--config-file", type=str, help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit logs as JSON records"
    )


def configure_settings(args: argparse.Namespace) -> Settings:
    """Load settings and apply command-line overrides."""
    settings = load_settings(
        config_file=args.config_file,
        force_reload=True,
        workspace_root=args.workspace,
    )
    configure_logging(
        settings,
        log_file=args.log_file,
        structured=True if args.json_logs else None,
        log_level_override=args.log_level,
    )
    return settings


def read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def analyze_input(
    engine: AnalysisEngine, raw: str, text_mode: bool, default_file: str = "unknown"
) -> AnalysisRun:
    """
    Analyze ``raw`` as a structured report, or as console output when it is not JSON.

    Raises:
        ParseError: If ``raw`` is JSON but not a valid report.
    """
    if not text_mode:
        try:
            report = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Input is not JSON, analyzing it as console output")
        else:
            return engine.analyze_report(report)
    return engine.analyze_output(raw, default_file)


def select_failure(run: AnalysisRun, number: int) -> TestFailure:
    if not 1 <= number <= len(run.failures):
        raise IndexError(
            f"Failure number {number} out of range (report has {len(run.failures)})"
        )
    return run.failures[number - 1]


def display_run(run: AnalysisRun, max_fixes: int) -> None:
    summary = run.summary
    table = Table(title="Test Results", show_header=True, header_style="bold")
    table.add_column("Total")
    table.add_column("Passed", style="green")
    table.add_column("Failed", style="red")
    table.add_column("Skipped", style="yellow")
    table.add_column("Duration")
    table.add_row(
        str(summary.total_tests),
        str(summary.passed_tests),
        str(summary.failed_tests),
        str(summary.skipped_tests),
        f"{summary.duration}ms",
    )
    console.print(table)
    console.print(Panel(run.text_summary, title="Failure Summary"))

    for number, failure in enumerate(run.failures, start=1):
        candidates = run.fixes_for(failure)[:max_fixes]
        console.print(
            f"\n[bold cyan]{number}. {failure.test_name}[/bold cyan] "
            f"[dim]({failure.error_type.value})[/dim]"
        )
        if not candidates:
            console.print("  [yellow]No fix candidates.[/yellow]")
            continue
        fixes = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        fixes.add_column("Confidence", justify="right")
        fixes.add_column("Fix")
        fixes.add_column("Kind")
        for candidate in candidates:
            fixes.add_row(
                f"{candidate.confidence:.2f}", candidate.title, describe_kind(candidate)
            )
        console.print(fixes)


def describe_kind(candidate: FixCandidate) -> str:
    if candidate.is_advisory:
        return "advice"
    if candidate.is_command_based:
        return "command"
    return f"{len(candidate.edits)} edit(s)"


def make_prompt(engine: AnalysisEngine):
    """Interactive Apply/Skip/Cancel prompt that shows a preview first."""

    def prompt(candidate: FixCandidate) -> ConfirmChoice:
        console.print(f"\n[bold]{candidate.title}[/bold] ({candidate.confidence:.2f})")
        preview = engine.applier.preview(candidate)
        if candidate.edits:
            console.print(Syntax(preview, "diff", theme="monokai"))
        else:
            console.print(preview)
        answer = Prompt.ask(
            "Apply this fix?",
            choices=[c.value for c in ConfirmChoice],
            default=ConfirmChoice.APPLY.value,
            console=console,
        )
        return ConfirmChoice(answer)

    return prompt


def cmd_analyze(args: argparse.Namespace, engine: AnalysisEngine) -> int:
    run = analyze_input(engine, read_input(args.report), args.text, args.default_file)
    display_run(run, args.max_fixes)

    if args.apply:
        top_fixes = [
            run.fixes_for(f)[0] for f in run.failures if run.fixes_for(f)
        ]
        result = engine.apply_fixes(
            top_fixes,
            confirm=args.confirm,
            prompt=make_prompt(engine) if args.confirm else None,
        )
        console.print(
            f"\n[green]Applied {len(result.applied)}[/green], "
            f"[red]failed {len(result.failed)}[/red], "
            f"[yellow]skipped {len(result.skipped)}[/yellow]"
        )
        for failed in result.failed:
            console.print(f"[red]  {failed.fix.title}: {failed.error}[/red]")

    if args.fail_on_failures and run.failures:
        return EXIT_FAILURES_FOUND
    return EXIT_OK


def cmd_handoff(args: argparse.Namespace, engine: AnalysisEngine) -> int:
    run = analyze_input(engine, read_input(args.report), args.text)
    gateway = engine.gateway
    if args.failure is None:
        context = gateway.build_batch_context(run.summary)
    else:
        failure = select_failure(run, args.failure)
        context = gateway.build_single_failure_context(
            failure, gateway.load_excerpt(failure)
        )

    if gateway.handoff_sink is not None:
        gateway.handoff_sink.deliver(context)
    console.print(Syntax(context, "markdown", word_wrap=True))
    return EXIT_OK


def cmd_record(args: argparse.Namespace, engine: AnalysisEngine) -> int:
    run = analyze_input(engine, read_input(args.report), args.text)
    failure = select_failure(run, args.failure)
    pattern = engine.record_outcome(
        failure,
        args.fix,
        args.success,
        user_rating=UserRating(args.rating) if args.rating else None,
        notes=args.notes,
    )
    console.print(
        f"Recorded {'successful' if args.success else 'failed'} fix for "
        f"[bold]{failure.test_name}[/bold]: {pattern.total_attempts} attempt(s), "
        f"success rate {pattern.success_rate:.0%}"
    )
    return EXIT_OK


def cmd_learning(args: argparse.Namespace, engine: AnalysisEngine) -> int:
    store = engine.store
    action = args.learning_command

    if action == "stats":
        stats = store.get_learning_stats()
        table = Table(title="Learning Statistics", show_header=False)
        table.add_row("Patterns", str(stats.total_patterns))
        table.add_row("Reliable patterns", str(stats.reliable_patterns))
        table.add_row("Recorded attempts", str(stats.total_attempts))
        table.add_row("Average success rate", f"{stats.average_success_rate:.0%}")
        console.print(table)
    elif action == "export":
        data = store.export_learning_data()
        if args.file:
            Path(args.file).write_text(data, encoding="utf-8")
            console.print(f"Exported {len(store)} pattern(s) to {args.file}")
        else:
            sys.stdout.write(data + "\n")
    elif action == "import":
        count = store.import_learning_data(Path(args.file).read_text(encoding="utf-8"))
        console.print(f"Imported {count} pattern(s)")
    elif action == "clear":
        store.clear_learning_data()
        console.print("Cleared all learning data")
    elif action == "reliable":
        display_patterns("Most Reliable Patterns", store.get_most_reliable_patterns(args.limit))
    elif action == "needs-data":
        display_patterns("Patterns Needing Data", store.get_patterns_needing_data())
    return EXIT_OK


def display_patterns(title: str, patterns: Sequence[FixPattern]) -> None:
    if not patterns:
        console.print(f"[yellow]{title}: none[/yellow]")
        return
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Pattern")
    table.add_column("Attempts", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Confidence", justify="right")
    for pattern in patterns:
        table.add_row(
            pattern.error_type.value,
            pattern.error_pattern,
            str(pattern.total_attempts),
            f"{pattern.success_rate:.0%}",
            f"{pattern.confidence:.2f}",
        )
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI application."""
    parser = setup_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_ERROR

    try:
        settings = configure_settings(args)
        engine = AnalysisEngine.from_settings(settings)
        return args.func(args, engine)
    except ParseError as e:
        console.print(f"[bold red]Invalid report:[/bold red] {e.message}")
        if e.excerpt:
            console.print(f"[dim]{e.excerpt}[/dim]")
        return EXIT_ERROR
    except (ConfigurationError, IndexError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_ERROR
    except AIDebugContextError as e:
        logger.error(str(e))
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
