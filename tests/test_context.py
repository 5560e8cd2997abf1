"""Tests for snippet_sandbox.context (boot-once cells and the sandbox context)."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from snippet_sandbox.context import BootCell, SandboxContext
from snippet_sandbox.core.errors import BootError
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import SandboxSettings

from conftest import FakeInterpreter, StructlogCapture


class TestBootCell:
    @pytest.mark.asyncio
    async def test_concurrent_first_use_boots_once(self, run_logger: RunLogger) -> None:
        calls = 0
        release = asyncio.Event()

        async def boot() -> object:
            nonlocal calls
            calls += 1
            await release.wait()
            return object()

        cell: BootCell[object] = BootCell("python", boot, run_logger)
        waiters = [asyncio.ensure_future(cell.get()) for _ in range(5)]
        await asyncio.sleep(0)
        assert cell.started
        assert not cell.ready
        assert not cell.finished

        release.set()
        instances = await asyncio.gather(*waiters)

        assert calls == 1
        assert cell.boot_count == 1
        assert all(instance is instances[0] for instance in instances)
        assert cell.ready
        assert await cell.get() is instances[0]

    @pytest.mark.asyncio
    async def test_failure_is_memoized(
        self, run_logger: RunLogger, log_capture: StructlogCapture
    ) -> None:
        calls = 0

        async def boot() -> object:
            nonlocal calls
            calls += 1
            raise FileNotFoundError("python.wasm missing")

        cell: BootCell[object] = BootCell("python", boot, run_logger)

        with pytest.raises(BootError) as first:
            await cell.get()
        with pytest.raises(BootError) as second:
            await cell.get()

        assert calls == 1
        assert first.value.family == "python"
        assert "python.wasm missing" in str(first.value)
        assert str(first.value).startswith("python sandbox failed to initialize")
        assert second.value is first.value
        assert not cell.ready
        assert cell.finished
        assert len(log_capture.named("sandbox.boot.failed")) == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_boot(self, run_logger: RunLogger) -> None:
        release = asyncio.Event()

        async def boot() -> str:
            await release.wait()
            return "instance"

        cell: BootCell[str] = BootCell("script", boot, run_logger)
        impatient = asyncio.ensure_future(cell.get())
        patient = asyncio.ensure_future(cell.get())
        await asyncio.sleep(0)

        impatient.cancel()
        release.set()

        assert await patient == "instance"
        assert cell.boot_count == 1

    @pytest.mark.asyncio
    async def test_boot_events_logged(
        self, run_logger: RunLogger, log_capture: StructlogCapture
    ) -> None:
        async def boot() -> str:
            return "ok"

        cell: BootCell[str] = BootCell("script", boot, run_logger)
        await cell.get()

        assert [e["event"] for e in log_capture.events] == ["sandbox.boot.start", "sandbox.boot.complete"]
        assert log_capture.events[1]["family"] == "script"


class TestSandboxContext:
    @pytest.mark.asyncio
    async def test_injected_boot_functions(self, settings: SandboxSettings, run_logger: RunLogger) -> None:
        interpreter = FakeInterpreter()

        async def python_boot() -> FakeInterpreter:
            return interpreter

        context = SandboxContext(settings, python_boot=python_boot, logger=run_logger)

        assert context.describe() == {
            "python": {"started": False, "ready": False},
            "script": {"started": False, "ready": False},
        }
        assert await context.python.get() is interpreter
        assert context.describe()["python"] == {"started": True, "ready": True}
        assert context.describe()["script"]["started"] is False

    @pytest.mark.asyncio
    async def test_default_python_boot_fails_without_binary(
        self, tmp_path: Path, run_logger: RunLogger
    ) -> None:
        settings = SandboxSettings(
            python_wasm_path=str(tmp_path / "absent.wasm"),
            python_workspace_dir=str(tmp_path / "workspace"),
            vendor_dir=str(tmp_path / "vendor"),
        )
        context = SandboxContext(settings, logger=run_logger)

        with pytest.raises(BootError) as exc_info:
            await context.python.get()

        assert exc_info.value.family == "python"
        assert "FileNotFoundError" in exc_info.value.reason

    def test_defaults(self) -> None:
        context = SandboxContext()
        assert context.settings == SandboxSettings()
        assert context.python.family == "python"
        assert context.script.family == "script"
