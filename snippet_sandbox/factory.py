"""Factory function for wiring a dispatcher with its context and tracker.

Provides create_dispatcher(), which builds the SandboxContext (one boot-once
cell per backend family), the RunTracker, and the Dispatcher that routes
runs between them. Nothing is booted until the first run of each family.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from snippet_sandbox.context import SandboxContext
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import SandboxSettings
from snippet_sandbox.dispatcher import Dispatcher
from snippet_sandbox.tracker import RunTracker

if TYPE_CHECKING:
    from snippet_sandbox.context import BootFunction
    from snippet_sandbox.runtimes.python.interpreter import PythonInterpreter
    from snippet_sandbox.runtimes.script.container import ProcessSandbox


def create_dispatcher(
    settings: SandboxSettings | None = None,
    tracker: RunTracker | None = None,
    logger: RunLogger | None = None,
    *,
    python_boot: BootFunction[PythonInterpreter] | None = None,
    script_boot: BootFunction[ProcessSandbox] | None = None,
) -> Dispatcher:
    """Create a Dispatcher backed by a fresh SandboxContext.

    Args:
        settings: Optional SandboxSettings. If None, uses default settings.
        tracker: Optional RunTracker to record runs in. If None, creates one.
        logger: Optional RunLogger shared by context, tracker and backends.
        python_boot: Override for the interpreter boot function
        script_boot: Override for the process sandbox boot function

    Returns:
        Dispatcher ready to accept runs

    Examples:
        >>> dispatcher = create_dispatcher()
        >>> run = await dispatcher.run("print('hi')")
        >>> run.status
        <RunStatus.COMPLETED: 'completed'>

        >>> # Custom settings loaded from TOML
        >>> from snippet_sandbox.policies import load_settings
        >>> dispatcher = create_dispatcher(load_settings("config/sandbox.toml"))
    """
    if settings is None:
        settings = SandboxSettings()
    if logger is None:
        logger = RunLogger()
    if tracker is None:
        tracker = RunTracker(logger)

    context = SandboxContext(
        settings,
        python_boot=python_boot,
        script_boot=script_boot,
        logger=logger,
    )
    return Dispatcher(context, tracker, logger)
