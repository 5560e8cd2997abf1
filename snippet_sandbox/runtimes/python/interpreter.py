"""Shared Python interpreter instances.

PythonInterpreter is the interface the Python backend drives; the backend
holds exactly one instance per process (via the context's boot cell). Its
methods block, so the backend calls them from a worker thread while holding
``lock``: the interpreter serves one session at a time.

WasmPythonInterpreter is the production implementation: CPython compiled to
WASM, compiled once at boot and instantiated per run.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from snippet_sandbox.host import (
    CompiledPython,
    InterpreterResult,
    compile_python_module,
    run_compiled_python,
)
from snippet_sandbox.runtime_paths import get_python_wasm_path
from snippet_sandbox.vendor import install_pure_python_package, missing_packages, setup_vendor_dir

if TYPE_CHECKING:
    from snippet_sandbox.core.logging import RunLogger
    from snippet_sandbox.core.models import SandboxSettings


class PythonInterpreter(ABC):
    """A long-lived interpreter shared by every Python run.

    Attributes:
        lock: Serializes sessions; hold it around install() and run()
        failed_installs: Distributions whose install already failed; they are
            not retried for the lifetime of the interpreter
    """

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.failed_installs: set[str] = set()

    @abstractmethod
    def missing_packages(self, source: str) -> list[str]:
        """Return third-party distributions source imports that are not installed."""

    @abstractmethod
    def install(self, package: str) -> tuple[bool, str]:
        """Install one distribution. Returns (success, diagnostics).

        Raises:
            OSError: If the installer itself cannot be started
        """

    @abstractmethod
    def run(self, source: str) -> InterpreterResult:
        """Execute source as a fresh script and return its captured output."""


class WasmPythonInterpreter(PythonInterpreter):
    """CPython WASM interpreter with a host-side package directory.

    Attributes:
        compiled: Compiled module, engine and WASI linker
        settings: SandboxSettings with limits and mount points
        workspace_dir: Host directory mounted read-write into the guest
        vendor_dir: Host directory whose site-packages/ is mounted read-only
    """

    def __init__(
        self,
        compiled: CompiledPython,
        settings: SandboxSettings,
        workspace_dir: Path,
        vendor_dir: Path,
    ) -> None:
        super().__init__()
        self.compiled = compiled
        self.settings = settings
        self.workspace_dir = workspace_dir
        self.vendor_dir = vendor_dir

    @classmethod
    async def boot(cls, settings: SandboxSettings, logger: RunLogger | None = None) -> WasmPythonInterpreter:
        """Compile the interpreter and prepare its directories.

        Raises:
            FileNotFoundError: If no python.wasm binary can be located
            wasmtime.WasmtimeError: If the binary fails to compile
        """
        wasm_path = settings.python_wasm_path or str(get_python_wasm_path())
        compiled = await asyncio.to_thread(compile_python_module, wasm_path)

        workspace_dir = Path(settings.python_workspace_dir).resolve()
        workspace_dir.mkdir(parents=True, exist_ok=True)
        vendor_dir = setup_vendor_dir(settings.vendor_dir).resolve()

        return cls(compiled, settings, workspace_dir, vendor_dir)

    def missing_packages(self, source: str) -> list[str]:
        return missing_packages(source, self.vendor_dir)

    def install(self, package: str) -> tuple[bool, str]:
        return install_pure_python_package(
            package, self.vendor_dir, python_version=self.settings.python_version
        )

    def run(self, source: str) -> InterpreterResult:
        script_name = f"snippet_{uuid.uuid4().hex}.py"
        script_path = self.workspace_dir / script_name
        script_path.write_text(source, encoding="utf-8")
        try:
            return run_compiled_python(
                self.compiled,
                script_name,
                self.settings,
                workspace_dir=str(self.workspace_dir),
                vendor_dir=str(self.vendor_dir),
            )
        finally:
            with contextlib.suppress(OSError):
                script_path.unlink()
