"""Exception classes for orchestration, sandbox and run-tracking failures.

Provides domain-specific exceptions for configuration validation, sandbox
boot, dependency installation, compilation and process execution failures.
Guest code errors (a Python traceback, a thrown JavaScript error) are not
raised to callers: the dispatcher turns them into a ``failed`` run record.
"""

from __future__ import annotations


class SnippetSandboxError(Exception):
    """Base class for every error raised by snippet_sandbox."""

    pass


class SettingsValidationError(SnippetSandboxError):
    """Raised when sandbox settings are invalid.

    Wraps Pydantic ValidationError with a clearer domain-specific name,
    e.g. a negative fuel budget or an empty work directory name in a
    settings TOML file.
    """

    pass


class UnsupportedLanguageError(SnippetSandboxError):
    """Raised when a run is requested for a language no backend handles.

    Raised before dispatch, so no run record is ever created for it.
    """

    def __init__(self, language: object) -> None:
        super().__init__(
            f"Unsupported language: {language!r}. "
            "Expected one of: python, javascript, typescript"
        )
        self.language = language


class BootError(SnippetSandboxError):
    """Raised when a sandbox instance failed to initialize.

    The failure is memoized by the boot cell: every later run of the same
    family fails with this error instead of retrying the boot.
    """

    def __init__(self, family: str, reason: str) -> None:
        super().__init__(f"{family} sandbox failed to initialize: {reason}")
        self.family = family
        self.reason = reason


class DependencyInstallError(SnippetSandboxError):
    """Raised when a package installer fails in a way that aborts the run."""

    pass


class CompilationError(SnippetSandboxError):
    """Raised when TypeScript compilation produced no usable JavaScript.

    Attributes:
        diagnostics: Compiler output captured during the failed compilation
    """

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class ProcessExecutionError(SnippetSandboxError):
    """Raised when a sandbox process cannot be spawned or exits abnormally."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class DuplicateRunError(SnippetSandboxError):
    """Raised when a run id is added to the tracker a second time."""

    pass


class InvalidTransitionError(SnippetSandboxError):
    """Raised when a run status update would leave a terminal state."""

    pass
