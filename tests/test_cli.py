"""Tests for the snippet-sandbox command line interface."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
import structlog
from rich.console import Console

from snippet_sandbox import __main__ as cli
from snippet_sandbox.core.models import ExecutionRun, Language, OutputEvent, RunStatus
from snippet_sandbox.dispatcher import Dispatcher
from snippet_sandbox.factory import create_dispatcher

from conftest import FakeProcessSandbox, node_echo


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_factory(
    monkeypatch: pytest.MonkeyPatch, fake_sandbox: FakeProcessSandbox
) -> list[Dispatcher]:
    """Make the CLI build dispatchers whose script sandbox is scripted."""
    fake_sandbox.handlers["node"] = node_echo
    created: list[Dispatcher] = []

    def factory(settings, tracker=None, logger=None):
        async def script_boot() -> FakeProcessSandbox:
            return fake_sandbox

        dispatcher = create_dispatcher(settings, tracker, logger, script_boot=script_boot)
        created.append(dispatcher)
        return dispatcher

    monkeypatch.setattr(cli, "create_dispatcher", factory)
    return created


def write_snippet(tmp_path: Path, text: str) -> str:
    path = tmp_path / "snippet.md"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestParseArgs:
    def test_defaults(self) -> None:
        args = cli.parse_args([])

        assert args.source == "-"
        assert args.language is None
        assert args.config == "config/sandbox.toml"
        assert not args.json_logs
        assert not args.verbose

    def test_options(self) -> None:
        args = cli.parse_args(["code.ts", "-l", "typescript", "--json-logs", "-v", "--config", "x.toml"])

        assert args.source == "code.ts"
        assert args.language == "typescript"
        assert args.json_logs and args.verbose
        assert args.config == "x.toml"


class TestMain:
    def test_completed_run_exits_zero(
        self, tmp_path: Path, fake_factory: list[Dispatcher], capsys: pytest.CaptureFixture[str]
    ) -> None:
        source = write_snippet(tmp_path, "```js\nconsole.log('hi')\n```\n")

        code = cli.main([source, "--config", str(tmp_path / "absent.toml")])

        assert code == cli.EXIT_COMPLETED
        run = fake_factory[0].tracker.runs()[0]
        assert run.status is RunStatus.COMPLETED
        assert "completed" in capsys.readouterr().out

    def test_failed_run_exits_one(self, tmp_path: Path, fake_factory: list[Dispatcher]) -> None:
        source = write_snippet(tmp_path, "throw new Error('boom')")

        assert cli.main([source, "--config", str(tmp_path / "absent.toml")]) == cli.EXIT_FAILED

    def test_unsupported_language_exits_two(self, tmp_path: Path, fake_factory: list[Dispatcher]) -> None:
        source = write_snippet(tmp_path, "puts 'hi'")

        code = cli.main([source, "--language", "ruby", "--config", str(tmp_path / "absent.toml")])

        assert code == cli.EXIT_UNSUPPORTED
        assert len(fake_factory[0].tracker) == 0

    def test_missing_source_file(self, tmp_path: Path) -> None:
        code = cli.main([str(tmp_path / "nope.js"), "--config", str(tmp_path / "absent.toml")])
        assert code == cli.EXIT_FAILED

    def test_invalid_settings(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.toml"
        config.write_text("fuel_budget = -5\n", encoding="utf-8")

        assert cli.main(["-", "--config", str(config)]) == cli.EXIT_FAILED


class TestRenderOutputs:
    def test_images_are_summarized(self) -> None:
        buffer = io.StringIO()
        console = Console(file=buffer, width=120, color_system=None)
        run = ExecutionRun(
            id="r",
            status=RunStatus.COMPLETED,
            language=Language.PYTHON,
            outputs=(OutputEvent.text("hello"), OutputEvent.image("data:image/png;base64," + "A" * 5000)),
        )

        cli.render_outputs(console, run)

        text = buffer.getvalue()
        assert "hello" in text
        assert "PNG image" in text
        assert "AAAAAAAAAA" not in text
