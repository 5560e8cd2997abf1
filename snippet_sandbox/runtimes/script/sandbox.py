"""ScriptBackend: orchestration layer for JavaScript and TypeScript runs.

Provides ScriptBackend class that drives the shared ProcessSandbox: it writes
the snippet to a uniquely named temp file, compiles TypeScript with tsc,
runs the JavaScript with node, and maps the merged output stream and exit
code to a BackendResult.
"""

from __future__ import annotations

import json
import time
from typing import Any, assert_never

from snippet_sandbox.core.base import BaseBackend, ProgressCallback
from snippet_sandbox.core.errors import CompilationError, ProcessExecutionError, UnsupportedLanguageError
from snippet_sandbox.core.models import NO_OUTPUT_MESSAGE, BackendResult, Language, OutputEvent
from snippet_sandbox.runtimes.script.container import ProcessSandbox, unique_filename

EXECUTION_FAILED_MESSAGE = "Error: Execution failed"
COMPILE_FAILED_MESSAGE = "Error: TypeScript compilation failed - could not generate JavaScript file"
COMPILING_MESSAGE = "Compiling TypeScript code..."
STARTING_MESSAGE = "Starting script sandbox and installing packages..."
RUNNING_MESSAGE = "Running JavaScript code..."

TSCONFIG: dict[str, Any] = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "CommonJS",
        "esModuleInterop": True,
        "skipLibCheck": True,
        "strict": False,
        "noImplicitAny": False,
    }
}


def tsc_arguments(source_file: str) -> list[str]:
    """Command-line flags for compiling one file next to itself."""
    return [
        source_file,
        "--outDir", ".",
        "--target", "ES2020",
        "--module", "CommonJS",
        "--esModuleInterop",
        "--skipLibCheck",
        "--noImplicitAny", "false",
    ]


class ScriptBackend(BaseBackend[ProcessSandbox]):
    """Script backend running JavaScript and TypeScript in the process sandbox.

    JavaScript: write code-<ns>-<n>.js, run ``node`` on it, collect the output
    chunks, and release the file.

    TypeScript: write the .ts file and tsconfig.json, compile with ``tsc``,
    then run the emitted .js through the JavaScript path. A compile that
    exits non-zero but still emits JavaScript is treated as recovered.
    """

    family = "script"

    async def execute(
        self,
        code: str,
        language: Language = Language.JAVASCRIPT,
        progress: ProgressCallback | None = None,
        **kwargs: Any,
    ) -> BackendResult:
        """Execute a JavaScript or TypeScript snippet.

        Args:
            code: Cleaned source code
            language: Language.JAVASCRIPT or Language.TYPESCRIPT
            progress: Optional callback; receives the sandbox start (first
                run only), the compile step for TypeScript, and the run
                step for JavaScript

        Returns:
            BackendResult; a failed run keeps its captured output

        Raises:
            UnsupportedLanguageError: If language is Python
            BootError: If the process sandbox failed to initialize
        """
        match language:
            case Language.JAVASCRIPT:
                sandbox = await self._sandbox(progress)
                self._report(progress, RUNNING_MESSAGE)
                return await self._run_javascript(sandbox, code)
            case Language.TYPESCRIPT:
                sandbox = await self._sandbox(progress)
                return await self._run_typescript(sandbox, code, progress)
            case Language.PYTHON:
                raise UnsupportedLanguageError(language)
            case _:
                assert_never(language)

    async def _sandbox(self, progress: ProgressCallback | None) -> ProcessSandbox:
        """Shared sandbox; booting and provisioning it is reported as a loading step."""
        if not self.cell.finished:
            self._report(progress, STARTING_MESSAGE)
        return await self.instance()

    def _report(self, progress: ProgressCallback | None, message: str) -> None:
        if progress is not None:
            progress(message)

    async def _run_javascript(
        self,
        sandbox: ProcessSandbox,
        code: str,
        metadata: dict[str, Any] | None = None,
    ) -> BackendResult:
        start_time = time.perf_counter()
        async with sandbox.scoped_file(unique_filename(".js"), code) as js_file:
            return await self._run_node(sandbox, js_file, start_time, metadata or {})

    async def _run_node(
        self,
        sandbox: ProcessSandbox,
        js_file: str,
        start_time: float,
        metadata: dict[str, Any],
    ) -> BackendResult:
        """Run a JavaScript file already present in the sandbox."""
        try:
            process = await sandbox.spawn(
                self.settings.node_command,
                [js_file],
                env={"NODE_DISABLE_COLORS": "1"},
            )
            chunks = [chunk async for chunk in process.output]
            exit_code = await process.wait()
        except ProcessExecutionError as e:
            return BackendResult(
                success=False,
                outputs=[OutputEvent.text(str(e)), OutputEvent.text(EXECUTION_FAILED_MESSAGE)],
                exit_code=e.exit_code,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                metadata={**metadata, "stage": "spawn"},
            )

        output = "".join(chunks)
        outputs = [OutputEvent.text(output)] if output else []
        duration_ms = (time.perf_counter() - start_time) * 1000

        if exit_code != 0:
            outputs.append(OutputEvent.text(EXECUTION_FAILED_MESSAGE))
            return BackendResult(
                success=False,
                outputs=outputs,
                exit_code=exit_code,
                duration_ms=duration_ms,
                metadata=metadata,
            )

        if not outputs:
            outputs.append(OutputEvent.text(NO_OUTPUT_MESSAGE))

        return BackendResult(
            success=True,
            outputs=outputs,
            exit_code=exit_code,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    async def _run_typescript(
        self,
        sandbox: ProcessSandbox,
        code: str,
        progress: ProgressCallback | None,
    ) -> BackendResult:
        start_time = time.perf_counter()
        ts_file = unique_filename(".ts")
        js_file = ts_file.removesuffix(".ts") + ".js"

        self._report(progress, COMPILING_MESSAGE)

        async with sandbox.scoped_file(ts_file, code), sandbox.scoped_file(js_file):
            try:
                metadata = await self._compile(sandbox, ts_file, js_file)
            except CompilationError as e:
                outputs = [OutputEvent.text(str(e))]
                if e.diagnostics:
                    outputs.append(OutputEvent.text(e.diagnostics))
                return BackendResult(
                    success=False,
                    outputs=outputs,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    metadata={"stage": "compile"},
                )

            return await self._run_node(sandbox, js_file, start_time, metadata)

    async def _compile(self, sandbox: ProcessSandbox, ts_file: str, js_file: str) -> dict[str, Any]:
        """Compile ts_file to js_file.

        Returns:
            Metadata describing the compile (recovered flag)

        Raises:
            CompilationError: If no JavaScript file was produced
        """
        await sandbox.write_file("tsconfig.json", json.dumps(TSCONFIG, indent=2))

        try:
            process = await sandbox.spawn(self.settings.tsc_command, tsc_arguments(ts_file))
            diagnostics = await process.collect_output()
            exit_code = await process.wait()
        except ProcessExecutionError as e:
            reason = str(e)
            if sandbox.provision_error:
                reason = f"{reason} (toolchain provisioning failed: {sandbox.provision_error})"
            raise CompilationError(COMPILE_FAILED_MESSAGE, diagnostics=reason) from e

        if exit_code == 0:
            return {"compile_recovered": False}

        if await sandbox.exists(js_file):
            self.logger.log_compile_recovered(ts_file, diagnostics)
            return {"compile_recovered": True, "compile_exit_code": exit_code}

        raise CompilationError(COMPILE_FAILED_MESSAGE, diagnostics=diagnostics.strip())
