"""Abstract base class for execution backends.

Provides BaseBackend ABC that defines the contract for both backend families
(Python interpreter, script process sandbox). Each backend obtains its shared
sandbox instance from a boot-once cell and implements execute().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

if TYPE_CHECKING:
    from snippet_sandbox.context import BootCell
    from snippet_sandbox.core.logging import RunLogger
    from snippet_sandbox.core.models import BackendResult, Language, SandboxSettings

InstanceT = TypeVar("InstanceT")

ProgressCallback = Callable[[str], None]
"""Receives one human-readable message per loading step of a run."""


class BaseBackend(ABC, Generic[InstanceT]):
    """Abstract base class for execution backends.

    A backend never owns its sandbox instance: the instance lives in a
    BootCell of the SandboxContext, is booted on first use and shared by
    every run of the family.

    Attributes:
        family: Backend family name used in logs and boot errors
        cell: Boot-once cell holding the shared sandbox instance
        settings: SandboxSettings with validated configuration
        logger: RunLogger for structured event logging
    """

    family: ClassVar[str] = "base"

    def __init__(
        self,
        cell: BootCell[InstanceT],
        settings: SandboxSettings,
        logger: RunLogger | None = None,
    ) -> None:
        """Initialize BaseBackend with its boot cell, settings, and logger.

        Args:
            cell: BootCell yielding the shared sandbox instance
            settings: SandboxSettings for this backend family
            logger: Optional RunLogger for structured events.
                    If None, creates default logger named 'snippet_sandbox'.
        """
        self.cell = cell
        self.settings = settings

        if logger is None:
            # Import here to avoid circular dependency
            from snippet_sandbox.core.logging import RunLogger
            self.logger = RunLogger()
        else:
            self.logger = logger

    async def instance(self) -> InstanceT:
        """Return the shared sandbox instance, booting it on first use.

        Raises:
            BootError: If the instance failed (now or earlier) to initialize
        """
        return await self.cell.get()

    @abstractmethod
    async def execute(
        self,
        code: str,
        language: Language,
        progress: ProgressCallback | None = None,
        **kwargs: Any,
    ) -> BackendResult:
        """Execute a snippet in the family's shared sandbox.

        Implementations must:
        1. Await the shared instance (single-flight boot)
        2. Report each loading step (package install, compile) via progress
        3. Capture every output line or chunk in emission order
        4. Map guest failures (exceptions, non-zero exits) to a result with
           success=False, keeping the output captured so far
        5. Release temporary resources on every exit path

        Args:
            code: Cleaned source code to run
            language: Language the code was classified as
            progress: Optional callback receiving loading-step messages
            **kwargs: Backend-specific options

        Returns:
            BackendResult with success flag and ordered output events

        Raises:
            BootError: If the sandbox instance could not be initialized
        """
        pass
