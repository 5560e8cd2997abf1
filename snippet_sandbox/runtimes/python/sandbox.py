"""PythonBackend: orchestration layer for Python runs on the shared interpreter.

Provides PythonBackend class that drives the single PythonInterpreter held by
the context: it resolves and installs imported packages, injects the package
path setup and the plot adapter, runs the session under the interpreter lock,
and maps captured stdout lines to output events.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from snippet_sandbox.core.base import BaseBackend, ProgressCallback
from snippet_sandbox.core.errors import DependencyInstallError, UnsupportedLanguageError
from snippet_sandbox.core.models import NO_OUTPUT_MESSAGE, BackendResult, Language, OutputEvent
from snippet_sandbox.host import InterpreterResult
from snippet_sandbox.runtimes.python.interpreter import PythonInterpreter
from snippet_sandbox.runtimes.python.plot import build_plot_adapter, needs_plot_adapter

# Prepended to user code so snippets can import installed packages without
# knowing about the read-only site-packages mount point
INJECTED_SETUP = """import sys
if {site_packages!r} not in sys.path:
    sys.path.insert(0, {site_packages!r})

"""

SNIPPET_FILENAME = "<snippet>"

# User code is compiled as its own unit so traceback line numbers match what
# the user wrote; the linecache entry lets tracebacks show the source lines.
_RUN_SNIPPET_TEMPLATE = """import linecache as _snippet_linecache

_snippet_source = {source!r}
_snippet_linecache.cache[{filename!r}] = (
    len(_snippet_source), None, _snippet_source.splitlines(True), {filename!r}
)
exec(
    compile(_snippet_source, {filename!r}, "exec"),
    {{"__name__": "__main__", "__builtins__": __builtins__}},
)
"""


class PythonBackend(BaseBackend[PythonInterpreter]):
    """Python backend running every snippet on one shared interpreter.

    Per run, while holding the interpreter lock:
    1. Resolve imported third-party packages and install the missing ones,
       reporting one progress message per step
    2. Prepend the sys.path setup and, for matplotlib snippets, the plot
       adapter; the user code is compiled separately as "<snippet>"
    3. Execute the session in a worker thread
    4. Map each stdout line to an image or text event in emission order
    """

    family = "python"

    async def execute(
        self,
        code: str,
        language: Language = Language.PYTHON,
        progress: ProgressCallback | None = None,
        **kwargs: Any,
    ) -> BackendResult:
        """Execute a Python snippet on the shared interpreter.

        Args:
            code: Cleaned Python source
            language: Must be Language.PYTHON
            progress: Optional callback receiving package loading messages

        Returns:
            BackendResult; on guest failure success=False with captured lines
            kept and the error message appended as the last text event

        Raises:
            UnsupportedLanguageError: If language is not Python
            BootError: If the interpreter failed to initialize
        """
        if language is not Language.PYTHON:
            raise UnsupportedLanguageError(language)

        interpreter = await self.instance()

        async with interpreter.lock:
            start_time = time.perf_counter()

            try:
                if self.settings.install_packages:
                    await self._load_packages(interpreter, code, progress)
            except Exception as e:
                return BackendResult(
                    success=False,
                    outputs=[OutputEvent.text(str(e) or type(e).__name__)],
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    metadata={"stage": "install"},
                )

            session_source = self._build_session(code)
            try:
                raw_result = await asyncio.to_thread(interpreter.run, session_source)
            except Exception as e:
                msg = f"WASM runtime error: {type(e).__name__}: {e!s}"
                raw_result = InterpreterResult(
                    stdout="",
                    stderr=msg,
                    exit_code=1,
                    trapped=True,
                    trap_reason="memory_limit" if "memory" in msg.lower() else "host_error",
                )

            duration_seconds = time.perf_counter() - start_time

        return self._map_to_backend_result(raw_result, duration_seconds)

    async def _load_packages(
        self,
        interpreter: PythonInterpreter,
        code: str,
        progress: ProgressCallback | None,
    ) -> None:
        """Install every missing package the snippet imports.

        An installer that reports failure is surfaced as a progress message
        only, and the package is not retried on later runs; an installer that
        raises aborts the run.
        """
        packages = await asyncio.to_thread(interpreter.missing_packages, code)
        for package in packages:
            if package in interpreter.failed_installs:
                self._report(progress, f"Failed to install {package}")
                continue

            self._report(progress, f"Loading {package}")
            try:
                success, detail = await asyncio.to_thread(interpreter.install, package)
            except OSError as e:
                self.logger.log_package_install(package, False, str(e))
                raise DependencyInstallError(f"Failed to install {package}: {e}") from e

            self.logger.log_package_install(package, success, detail)
            if success:
                self._report(progress, f"Loaded {package}")
            else:
                interpreter.failed_installs.add(package)
                self._report(progress, f"Failed to install {package}")

    def _build_session(self, code: str) -> str:
        """Assemble setup, optional plot adapter, and the user code runner into one script."""
        site_packages = f"{self.settings.guest_data_path}/site-packages"
        parts = [INJECTED_SETUP.format(site_packages=site_packages)]
        if needs_plot_adapter(code):
            parts.append(
                build_plot_adapter(
                    pixel_cap=self.settings.plot_pixel_cap,
                    reduced_dpi=self.settings.plot_reduced_dpi,
                )
            )
        parts.append(_RUN_SNIPPET_TEMPLATE.format(source=code, filename=SNIPPET_FILENAME))
        return "".join(parts)

    def _map_to_backend_result(self, raw_result: InterpreterResult, duration_seconds: float) -> BackendResult:
        """Map an InterpreterResult to a BackendResult with ordered output events."""
        outputs = [OutputEvent.from_line(line) for line in raw_result.stdout.splitlines()]

        metadata: dict[str, Any] = {
            "exit_code": raw_result.exit_code,
            "trapped": raw_result.trapped,
            "fuel_consumed": raw_result.fuel_consumed,
            "stdout_truncated": raw_result.stdout_truncated,
        }
        if raw_result.trap_reason is not None:
            metadata["trap_reason"] = raw_result.trap_reason

        if raw_result.failed:
            outputs.append(OutputEvent.text(self._error_message(raw_result)))
            return BackendResult(
                success=False,
                outputs=outputs,
                exit_code=raw_result.exit_code,
                duration_ms=duration_seconds * 1000,
                metadata=metadata,
            )

        if not outputs:
            outputs.append(OutputEvent.text(NO_OUTPUT_MESSAGE))

        return BackendResult(
            success=True,
            outputs=outputs,
            exit_code=raw_result.exit_code,
            duration_ms=duration_seconds * 1000,
            metadata=metadata,
        )

    @staticmethod
    def _error_message(raw_result: InterpreterResult) -> str:
        """Human-readable failure text: the traceback, or the trap/exit notice."""
        stderr = (raw_result.stderr or "").strip()
        if stderr:
            return stderr
        if raw_result.trap_message:
            return f"Execution trapped: {raw_result.trap_message}"
        return f"Python exited with code {raw_result.exit_code}"

    def _report(self, progress: ProgressCallback | None, message: str) -> None:
        if progress is not None:
            progress(message)
