"""Command-line interface for running one snippet through the orchestrator.

Reads a snippet (optionally fenced) from a file or stdin, runs it, and
renders every status transition and the final outputs with rich. Logs go
to stderr.

Exit codes: 0 completed, 1 failed, 2 unsupported language.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from snippet_sandbox.classifier import classify
from snippet_sandbox.core.errors import SettingsValidationError, UnsupportedLanguageError
from snippet_sandbox.core.logging import RunLogger, configure_structlog
from snippet_sandbox.core.models import ExecutionRun, OutputKind, RunStatus
from snippet_sandbox.factory import create_dispatcher
from snippet_sandbox.policies import load_settings

EXIT_COMPLETED = 0
EXIT_FAILED = 1
EXIT_UNSUPPORTED = 2

_STATUS_STYLES = {
    RunStatus.QUEUED: "dim",
    RunStatus.LOADING_PACKAGES: "yellow",
    RunStatus.COMPLETED: "green",
    RunStatus.FAILED: "bold red",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="snippet-sandbox",
        description="Run a Python, JavaScript or TypeScript snippet in a sandbox",
    )
    parser.add_argument(
        "source",
        nargs="?",
        default="-",
        help="File containing the snippet, optionally in a fenced code block (default: stdin)",
    )
    parser.add_argument(
        "--language",
        "-l",
        default=None,
        help="Run as this language instead of the detected one (python, javascript, typescript)",
    )
    parser.add_argument(
        "--config",
        default="config/sandbox.toml",
        metavar="PATH",
        help="Settings TOML file (default: config/sandbox.toml; defaults if missing)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug events")
    return parser.parse_args(argv)


def read_source(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def render_outputs(console: Console, run: ExecutionRun) -> None:
    """Print a run's outputs; images are summarized by size."""
    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("#", justify="right", width=4)
    table.add_column("Kind", width=6)
    table.add_column("Value")

    for index, event in enumerate(run.outputs, start=1):
        if event.kind is OutputKind.IMAGE:
            value = f"[PNG image, {len(event.value):,} chars]"
        else:
            value = event.value
        table.add_row(str(index), event.kind.value, Text(value))

    style = _STATUS_STYLES[run.status]
    console.print(Panel(table, title=f"Run {run.id}", subtitle=f"[{style}]{run.status.value}[/]"))


async def async_main(args: argparse.Namespace, console: Console) -> int:
    settings = load_settings(args.config)
    dispatcher = create_dispatcher(settings, logger=RunLogger("snippet_sandbox.cli"))

    raw = read_source(args.source)
    submission = classify(raw)
    language = args.language or submission.inferred_language.value

    if not dispatcher.can_run(language):
        console.print(f"[bold red]Unsupported language:[/] {escape(language)}")
        return EXIT_UNSUPPORTED

    console.print(
        Syntax(submission.cleaned_code, language, theme="ansi_dark", line_numbers=True, word_wrap=True)
    )

    def on_update(run: ExecutionRun) -> None:
        style = _STATUS_STYLES[run.status]
        latest = run.outputs[-1].value if run.outputs and run.status is RunStatus.LOADING_PACKAGES else ""
        console.print(f"[{style}]{run.status.value}[/] {escape(latest)}".rstrip())

    dispatcher.tracker.subscribe(on_update)

    try:
        run = await dispatcher.run(submission, language=language)
    except UnsupportedLanguageError as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        return EXIT_UNSUPPORTED

    render_outputs(console, run)
    return EXIT_COMPLETED if run.status is RunStatus.COMPLETED else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)
    configure_structlog(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        use_json=args.json_logs,
        file=sys.stderr,
    )
    console = Console()

    try:
        return asyncio.run(async_main(args, console))
    except SettingsValidationError as e:
        console.print(f"[bold red]Invalid settings:[/] {escape(str(e))}")
        return EXIT_FAILED
    except OSError as e:
        console.print(f"[bold red]Cannot read snippet:[/] {escape(str(e))}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
