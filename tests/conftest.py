"""Shared pytest fixtures for all tests."""

from __future__ import annotations

import io
import threading
import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
import structlog

from snippet_sandbox.core.errors import ProcessExecutionError
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import SandboxSettings
from snippet_sandbox.host import InterpreterResult
from snippet_sandbox.runtimes.python.interpreter import PythonInterpreter
from snippet_sandbox.runtimes.script.container import ProcessSandbox


class StructlogCapture:
    """Helper to capture structlog events."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        """Capture event dict (structlog processor signature)."""
        self.events.append(event_dict.copy())
        return event_dict

    def named(self, event: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e.get("event") == event]


class FakeInterpreter(PythonInterpreter):
    """In-memory stand-in for the WASM interpreter.

    Attributes:
        results: Queue of InterpreterResult returned by successive run() calls
        missing: Packages reported missing for every source
        install_outcomes: package -> (success, detail) or an exception to raise
        sources: Every session source passed to run()
        installed: Packages passed to install(), in order
        vendored: Packages whose install succeeded
        delay: Seconds each run() blocks (to exercise the lock)
    """

    def __init__(
        self,
        results: list[InterpreterResult] | None = None,
        missing: list[str] | None = None,
        install_outcomes: dict[str, Any] | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.results = list(results or [])
        self.missing = list(missing or [])
        self.install_outcomes = dict(install_outcomes or {})
        self.sources: list[str] = []
        self.installed: list[str] = []
        self.vendored: list[str] = []
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()

    def missing_packages(self, source: str) -> list[str]:
        return [p for p in self.missing if p not in self.vendored]

    def install(self, package: str) -> tuple[bool, str]:
        self.installed.append(package)
        outcome = self.install_outcomes.get(package, (True, ""))
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome[0]:
            self.vendored.append(package)
        return outcome

    def run(self, source: str) -> InterpreterResult:
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.sources.append(source)
            if self.delay:
                time.sleep(self.delay)
            if self.results:
                return self.results.pop(0)
            return InterpreterResult(stdout="", stderr="")
        finally:
            with self._counter_lock:
                self.active -= 1


class FakeProcess:
    """Duck-typed SandboxProcess with scripted output chunks and exit code."""

    def __init__(self, chunks: list[str], exit_code: int) -> None:
        self.chunks = chunks
        self.exit_code = exit_code

    @property
    def output(self) -> AsyncIterator[str]:
        return self.iter_output()

    async def iter_output(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            yield chunk

    async def collect_output(self) -> str:
        return "".join(self.chunks)

    async def wait(self) -> int:
        return self.exit_code


ProcessHandler = Callable[["FakeProcessSandbox", list[str]], tuple[list[str], int]]


class FakeProcessSandbox(ProcessSandbox):
    """ProcessSandbox with a real root directory but scripted processes.

    Handlers receive (sandbox, args) and return (output chunks, exit code);
    they may touch files under sandbox.root to simulate compiler output.
    Commands without a handler behave like a missing executable.
    """

    handlers: dict[str, ProcessHandler]
    spawned: list[tuple[str, list[str], dict[str, str]]]

    def __init__(self, root: Path, settings: SandboxSettings, logger: RunLogger | None = None) -> None:
        super().__init__(root, settings, logger)
        self.handlers = {"npm": lambda sandbox, args: (["added 2 packages\n"], 0)}
        self.spawned = []

    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> FakeProcess:  # type: ignore[override]
        args = list(args or [])
        self.spawned.append((command, args, self.build_env(env)))
        handler = self.handlers.get(command)
        if handler is None:
            raise ProcessExecutionError(f"Executable not found in sandbox: {command}")
        chunks, exit_code = handler(self, args)
        return FakeProcess(chunks, exit_code)

    def commands(self) -> list[str]:
        return [command for command, _, _ in self.spawned]


@pytest.fixture
def log_capture() -> StructlogCapture:
    """Fixture providing structlog event capture."""
    return StructlogCapture()


@pytest.fixture
def run_logger(log_capture: StructlogCapture) -> RunLogger:
    """RunLogger whose events land in log_capture (global structlog config untouched)."""
    logger = structlog.wrap_logger(
        structlog.PrintLogger(io.StringIO()),
        processors=[
            structlog.processors.add_log_level,
            log_capture,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.BoundLogger,
        context_class=dict,
    )
    return RunLogger(logger)


@pytest.fixture
def settings(tmp_path: Path) -> SandboxSettings:
    """Settings whose every directory lives under tmp_path; no npm provisioning."""
    return SandboxSettings(
        python_workspace_dir=str(tmp_path / "workspace"),
        vendor_dir=str(tmp_path / "vendor"),
        script_base_dir=str(tmp_path),
        work_dir_name="script-root",
        provision_packages=[],
    )


@pytest.fixture
def script_root(tmp_path: Path) -> Path:
    root = tmp_path / "script-root"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def fake_sandbox(script_root: Path, settings: SandboxSettings, run_logger: RunLogger) -> FakeProcessSandbox:
    return FakeProcessSandbox(script_root, settings, run_logger)


def node_echo(sandbox: FakeProcessSandbox, args: list[str]) -> tuple[list[str], int]:
    """Fake node: echoes the script file, exit code 1 if it contains 'throw'."""
    source = (sandbox.root / args[0]).read_text(encoding="utf-8")
    if "throw" in source:
        return (["partial\n", "Error: boom\n"], 1)
    return ([f"ran {len(source)} chars\n"], 0)
