"""Process-wide ownership of the shared sandbox instances.

SandboxContext holds one BootCell per backend family. A BootCell boots its
instance lazily on first use, exactly once: concurrent first-use requests
all await the same in-flight boot, and the outcome (instance or failure) is
memoized for the lifetime of the cell. Instances are never torn down.

The context is passed explicitly into the dispatcher, so tests can build one
around fake boot functions.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from snippet_sandbox.core.errors import BootError
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import SandboxSettings

if TYPE_CHECKING:
    from snippet_sandbox.runtimes.python.interpreter import PythonInterpreter
    from snippet_sandbox.runtimes.script.container import ProcessSandbox

T = TypeVar("T")

BootFunction = Callable[[], Awaitable[T]]


class BootCell(Generic[T]):
    """Single-flight, boot-once holder of a shared sandbox instance.

    Attributes:
        family: Backend family name ("python" or "script")
        boot_count: Number of times the boot function has been started (0 or 1)
    """

    def __init__(self, family: str, boot: BootFunction[T], logger: RunLogger | None = None) -> None:
        self.family = family
        self._boot = boot
        self._future: asyncio.Future[T] | None = None
        self.boot_count = 0
        self.logger = logger or RunLogger()

    @property
    def started(self) -> bool:
        """Whether the boot has been triggered."""
        return self._future is not None

    @property
    def finished(self) -> bool:
        """Whether the boot has settled, successfully or not."""
        return self._future is not None and self._future.done()

    @property
    def ready(self) -> bool:
        """Whether the boot finished successfully."""
        return (
            self._future is not None
            and self._future.done()
            and not self._future.cancelled()
            and self._future.exception() is None
        )

    async def get(self) -> T:
        """Return the shared instance, booting it if this is the first request.

        Raises:
            BootError: If the boot failed; the same failure is raised to every
                       caller, including callers arriving after the failure.
        """
        if self._future is None:
            self.boot_count += 1
            self._future = asyncio.ensure_future(self._run_boot())

        # A cancelled waiter must not cancel the boot other runs are waiting on
        return await asyncio.shield(self._future)

    async def _run_boot(self) -> T:
        self.logger.log_boot_start(self.family)
        start_time = time.perf_counter()
        try:
            instance = await self._boot()
        except BootError as e:
            self.logger.log_boot_failed(self.family, e.reason)
            raise
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            self.logger.log_boot_failed(self.family, reason)
            raise BootError(self.family, reason) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.log_boot_complete(self.family, duration_ms)
        return instance


class SandboxContext:
    """Explicitly owned handle on the process-wide sandbox instances.

    Attributes:
        settings: SandboxSettings shared by both families
        python: BootCell yielding the shared PythonInterpreter
        script: BootCell yielding the shared ProcessSandbox
        logger: RunLogger used for boot events
    """

    def __init__(
        self,
        settings: SandboxSettings | None = None,
        *,
        python_boot: BootFunction[PythonInterpreter] | None = None,
        script_boot: BootFunction[ProcessSandbox] | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        """Create the context; nothing is booted until first use.

        Args:
            settings: Optional SandboxSettings (defaults if None)
            python_boot: Override for the interpreter boot function
            script_boot: Override for the process sandbox boot function
            logger: Optional RunLogger shared by both cells
        """
        self.settings = settings or SandboxSettings()
        self.logger = logger or RunLogger()

        if python_boot is None:
            python_boot = self._default_python_boot
        if script_boot is None:
            script_boot = self._default_script_boot

        self.python: BootCell[PythonInterpreter] = BootCell("python", python_boot, self.logger)
        self.script: BootCell[ProcessSandbox] = BootCell("script", script_boot, self.logger)

    async def _default_python_boot(self) -> PythonInterpreter:
        from snippet_sandbox.runtimes.python.interpreter import WasmPythonInterpreter

        return await WasmPythonInterpreter.boot(self.settings, self.logger)

    async def _default_script_boot(self) -> ProcessSandbox:
        from snippet_sandbox.runtimes.script.container import ProcessSandbox

        return await ProcessSandbox.boot(self.settings, self.logger)

    def describe(self) -> dict[str, Any]:
        """Summarize boot state of both cells (for CLI and diagnostics)."""
        return {
            cell.family: {"started": cell.started, "ready": cell.ready}
            for cell in (self.python, self.script)
        }
