"""OS-level process sandbox for JavaScript and TypeScript runs.

ProcessSandbox owns a fixed working root on the host. Processes are spawned
inside it with a whitelisted environment (no ambient host variables apart
from PATH), and every file operation is confined to the root. Booting mounts
a minimal npm manifest with an empty node_modules/ and provisions the
TypeScript toolchain once.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import itertools
import json
import os
import shutil
import tempfile
import time
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from snippet_sandbox.core.errors import ProcessExecutionError
from snippet_sandbox.core.logging import RunLogger

if TYPE_CHECKING:
    from snippet_sandbox.core.models import SandboxSettings

DEFAULT_MOUNT: dict[str, Any] = {
    "package.json": {
        "file": {
            "contents": json.dumps(
                {
                    "name": "snippet-sandbox-playground",
                    "private": True,
                    "dependencies": {},
                },
                indent=2,
            )
        }
    },
    "node_modules": {"directory": {}},
}

_CHUNK_SIZE = 4096
_file_counter = itertools.count()


def unique_filename(suffix: str, prefix: str = "code") -> str:
    """Return a file name that cannot collide across concurrent runs."""
    return f"{prefix}-{time.time_ns()}-{next(_file_counter)}{suffix}"


class SandboxProcess:
    """A process running inside the sandbox.

    Output is the merged stdout/stderr stream, read incrementally.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: str) -> None:
        self._process = process
        self.command = command

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def output(self) -> AsyncIterator[str]:
        """Async iterator over the merged output stream."""
        return self.iter_output()

    async def iter_output(self) -> AsyncIterator[str]:
        """Yield decoded output chunks in the order the process wrote them."""
        stream = self._process.stdout
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_CHUNK_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def collect_output(self) -> str:
        """Drain the output stream into one string."""
        return "".join([chunk async for chunk in self.iter_output()])

    async def wait(self) -> int:
        """Await the process exit code."""
        return await self._process.wait()


class ProcessSandbox:
    """Long-lived script sandbox rooted at a fixed working directory.

    Attributes:
        root: Absolute path of the sandbox working root
        settings: SandboxSettings with executable names and environment
        provision_error: Why toolchain provisioning failed, or None
        logger: RunLogger for structured events
    """

    def __init__(self, root: Path, settings: SandboxSettings, logger: RunLogger | None = None) -> None:
        self.root = root
        self.settings = settings
        self.provision_error: str | None = None
        self.logger = logger or RunLogger()

    @classmethod
    async def boot(cls, settings: SandboxSettings, logger: RunLogger | None = None) -> ProcessSandbox:
        """Create the working root, mount the manifest, and provision the toolchain.

        Provisioning failures are recorded on the returned sandbox and do
        not fail the boot; runs that need the toolchain fail later instead.

        Raises:
            OSError: If the working root cannot be created or written
        """
        base_dir = Path(settings.script_base_dir) if settings.script_base_dir else Path(tempfile.gettempdir())
        root = (base_dir / settings.work_dir_name).resolve()
        await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)

        sandbox = cls(root, settings, logger)
        await sandbox.mount(DEFAULT_MOUNT)
        await sandbox.provision(list(settings.provision_packages))
        return sandbox

    async def provision(self, packages: list[str]) -> None:
        """Install the compiler toolchain and execution helper into node_modules/."""
        if not packages:
            return

        exit_code: int | None = None
        try:
            process = await self.spawn(
                self.settings.npm_command,
                ["install", *packages, "--no-package-lock"],
            )
            output = await process.collect_output()
            exit_code = await process.wait()
        except (ProcessExecutionError, OSError) as e:
            self.provision_error = f"{type(e).__name__}: {e}"
        else:
            if exit_code != 0:
                self.provision_error = (
                    f"{self.settings.npm_command} install exited with code {exit_code}: "
                    f"{output.strip()[-500:]}"
                )

        self.logger.log_provision(packages, exit_code, self.provision_error)

    def resolve(self, path: str | Path) -> Path:
        """Resolve a sandbox-relative path, refusing anything outside the root.

        Raises:
            ValueError: If the path escapes the working root
        """
        candidate = (self.root / path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValueError(f"Path escapes sandbox root: {path}")
        return candidate

    async def mount(self, tree: dict[str, Any], base: str | Path = ".") -> None:
        """Materialize a file tree of {"file": {"contents": ...}} / {"directory": {...}} nodes."""
        for name, node in tree.items():
            relative = Path(base) / name
            if "directory" in node:
                await asyncio.to_thread(self.resolve(relative).mkdir, parents=True, exist_ok=True)
                await self.mount(node["directory"], relative)
            else:
                await self.write_file(relative, node["file"]["contents"])

    async def write_file(self, path: str | Path, contents: str) -> None:
        target = self.resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(contents, encoding="utf-8")

        await asyncio.to_thread(_write)

    async def read_file(self, path: str | Path) -> str:
        """Read a file from the sandbox.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        target = self.resolve(path)
        return await asyncio.to_thread(target.read_text, encoding="utf-8")

    async def exists(self, path: str | Path) -> bool:
        return await asyncio.to_thread(self.resolve(path).is_file)

    async def remove_file(self, path: str | Path, *, ignore_errors: bool = False) -> None:
        """Remove a file from the sandbox, optionally ignoring every OSError."""
        try:
            await asyncio.to_thread(self.resolve(path).unlink)
        except OSError:
            if not ignore_errors:
                raise

    async def release(self, path: str | Path) -> None:
        """Best-effort removal of a temp file. Failures are logged, never raised."""
        try:
            await self.remove_file(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.log_cleanup_failed(str(path), f"{type(e).__name__}: {e}")

    @contextlib.asynccontextmanager
    async def scoped_file(self, path: str | Path, contents: str | None = None) -> AsyncIterator[str]:
        """Hold a temp file for the duration of the block.

        Writes contents when given; the file is released on every exit path,
        including when the write itself fails.
        """
        try:
            if contents is not None:
                await self.write_file(path, contents)
            yield str(path)
        finally:
            await self.release(path)

    def _search_path(self) -> str:
        local_bin = self.root / "node_modules" / ".bin"
        return os.pathsep.join([str(local_bin), os.environ.get("PATH", os.defpath)])

    def build_env(self, env: dict[str, str] | None = None) -> dict[str, str]:
        """Whitelisted process environment: PATH, HOME, settings, then overrides."""
        process_env = {"PATH": self._search_path(), "HOME": str(self.root)}
        process_env.update(self.settings.script_env)
        if env:
            process_env.update(env)
        return process_env

    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> SandboxProcess:
        """Spawn an executable by name inside the sandbox root.

        Args:
            command: Executable name, looked up in node_modules/.bin then PATH
            args: Argument list
            env: Extra environment variables for this process

        Returns:
            SandboxProcess with an incremental output stream

        Raises:
            ProcessExecutionError: If the executable cannot be found or started
        """
        process_env = self.build_env(env)
        executable = shutil.which(command, path=process_env["PATH"])
        if executable is None:
            raise ProcessExecutionError(f"Executable not found in sandbox: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *(args or []),
                cwd=str(self.root),
                env=process_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProcessExecutionError(f"Failed to start {command}: {e}") from e

        return SandboxProcess(process, command)
