"""Structured logging for run lifecycle, sandbox boot and cleanup events.

Provides RunLogger class that uses structlog for structured event emission
(run.queued, run.status, run.complete, sandbox.boot.*, cleanup.failed).
Configures structlog with console rendering by default but allows custom
configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TextIO

import structlog

if TYPE_CHECKING:
    from snippet_sandbox.core.models import ExecutionRun


def configure_structlog(level: int = logging.INFO, use_json: bool = False, file: TextIO | None = None) -> None:
    """Configure structlog with sensible defaults for orchestrator logging.

    Args:
        level: Minimum log level (default: logging.INFO)
        use_json: If True, use JSON renderer; otherwise use console renderer
        file: Stream log lines are printed to (default: stdout)
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=file),
        cache_logger_on_first_use=True,
    )


class RunLogger:
    """Wrapper for structured logging of orchestrator events.

    Accepts either structlog or standard logging.Logger instances and normalizes
    emission so callers do not need to care which backend is in use.
    """

    _VALUE_TRUNCATION_SUFFIX = "...[truncated]"
    _MAX_VALUE_LENGTH = 200

    def __init__(self, logger: Any = None) -> None:
        """Initialize RunLogger with optional custom logger.

        Args:
            logger: Optional structlog BoundLogger, logging.Logger, or string name.
                    If None, a default structlog logger named 'snippet_sandbox' is created.
                    If string, creates a structlog logger with that name.
        """
        if logger is None:
            self._logger = structlog.get_logger("snippet_sandbox")
        elif isinstance(logger, str):
            self._logger = structlog.get_logger(logger)
        else:
            self._logger = logger

    @property
    def logger(self) -> Any:
        """Expose the underlying logger instance (structlog or logging.Logger)."""
        return self._logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        """Emit a log record regardless of logger backend."""
        extra = dict(fields)
        extra.setdefault("log_message", message)
        # Ensure event key is always present for downstream processors
        extra.setdefault("event", message.split(".", 1)[-1] if "." in message else message)
        extra.setdefault("event_type", extra.get("event"))

        if isinstance(self._logger, logging.Logger):
            # Standard logging expects structured data in the 'extra' mapping
            self._logger.log(level, message, extra=extra)
            return

        method_name = logging.getLevelName(level).lower()
        log_method = getattr(self._logger, method_name, None)
        if not callable(log_method):
            log_method = self._logger.info

        log_kwargs = dict(extra)
        event_value = log_kwargs.pop("event", None)
        event_arg = event_value if event_value is not None else message
        log_method(event_arg, **log_kwargs)

    def _truncate(self, value: str) -> str:
        """Truncate long free-form values (diagnostics, messages) to keep logs concise."""
        if len(value) <= self._MAX_VALUE_LENGTH:
            return value
        keep = self._MAX_VALUE_LENGTH - len(self._VALUE_TRUNCATION_SUFFIX)
        return f"{value[:keep]}{self._VALUE_TRUNCATION_SUFFIX}"

    def log_run_queued(self, run_id: str, language: str) -> None:
        """Log a run appended to the tracker in the queued state."""
        self._emit(
            logging.INFO,
            "orchestrator.run.queued",
            event="run.queued",
            run_id=run_id,
            language=language,
        )

    def log_run_status(self, run_id: str, status: str, message: str | None = None) -> None:
        """Log a non-terminal status transition (e.g. a package loading step).

        Args:
            run_id: Run identifier
            status: New status value
            message: Optional progress message that accompanied the transition
        """
        log_kwargs: dict[str, Any] = {"event": "run.status", "run_id": run_id, "status": status}
        if message is not None:
            log_kwargs["progress_message"] = self._truncate(message)
        self._emit(logging.DEBUG, "orchestrator.run.status", **log_kwargs)

    def log_run_complete(self, run: ExecutionRun, duration_ms: float | None = None) -> None:
        """Log the terminal record of a run with output counts.

        Emits an INFO-level event for completed runs and a WARNING-level
        event for failed runs.

        Args:
            run: Terminal ExecutionRun record
            duration_ms: Optional backend execution time
        """
        image_count = sum(1 for event in run.outputs if event.kind.value == "image")
        log_kwargs: dict[str, Any] = {
            "event": "run.complete",
            "run_id": run.id,
            "status": run.status.value,
            "language": run.language.value if run.language is not None else None,
            "output_count": len(run.outputs),
            "image_count": image_count,
        }
        if duration_ms is not None:
            log_kwargs["duration_ms"] = duration_ms

        level = logging.INFO if run.status.value == "completed" else logging.WARNING
        self._emit(level, "orchestrator.run.complete", **log_kwargs)

    def log_boot_start(self, family: str) -> None:
        """Log the single boot of a sandbox family."""
        self._emit(logging.INFO, "sandbox.boot.start", event="sandbox.boot.start", family=family)

    def log_boot_complete(self, family: str, duration_ms: float) -> None:
        """Log a successful sandbox boot with its duration."""
        self._emit(
            logging.INFO,
            "sandbox.boot.complete",
            event="sandbox.boot.complete",
            family=family,
            duration_ms=duration_ms,
        )

    def log_boot_failed(self, family: str, error: str) -> None:
        """Log a sandbox boot failure. The failure is memoized by the caller."""
        self._emit(
            logging.ERROR,
            "sandbox.boot.failed",
            event="sandbox.boot.failed",
            family=family,
            error=self._truncate(error),
        )

    def log_provision(self, packages: list[str], exit_code: int | None, error: str | None = None) -> None:
        """Log the one-time toolchain provisioning step of the script sandbox.

        Args:
            packages: npm packages that were requested
            exit_code: Installer exit code (None if it could not be spawned)
            error: Error description when provisioning failed
        """
        if error is None:
            self._emit(
                logging.INFO,
                "sandbox.provision.complete",
                event="sandbox.provision.complete",
                packages=packages,
                exit_code=exit_code,
            )
            return
        self._emit(
            logging.ERROR,
            "sandbox.provision.failed",
            event="sandbox.provision.failed",
            packages=packages,
            exit_code=exit_code,
            error=self._truncate(error),
        )

    def log_package_install(self, package: str, success: bool, message: str | None = None) -> None:
        """Log one dependency installation step of the Python backend."""
        log_kwargs: dict[str, Any] = {
            "event": "package.install",
            "package": package,
            "success": success,
        }
        if message:
            log_kwargs["detail"] = self._truncate(message)
        self._emit(
            logging.INFO if success else logging.WARNING, "orchestrator.package.install", **log_kwargs
        )

    def log_compile_recovered(self, source_path: str, diagnostics: str) -> None:
        """Log a TypeScript compile that exited non-zero but still emitted JavaScript."""
        self._emit(
            logging.WARNING,
            "orchestrator.compile.recovered",
            event="compile.recovered",
            source_path=source_path,
            diagnostics=self._truncate(diagnostics),
        )

    def log_cleanup_failed(self, path: str, error: str) -> None:
        """Log a temp file that could not be removed. Never escalated."""
        self._emit(
            logging.WARNING,
            "orchestrator.cleanup.failed",
            event="cleanup.failed",
            path=path,
            error=error,
        )

    def log_listener_failed(self, run_id: str, error: str) -> None:
        """Log a tracker listener that raised while receiving an update."""
        self._emit(
            logging.ERROR,
            "orchestrator.listener.failed",
            event="listener.failed",
            run_id=run_id,
            error=self._truncate(error),
        )
