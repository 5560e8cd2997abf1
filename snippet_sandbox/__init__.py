"""Execution orchestrator for assistant-generated code snippets.

Classifies a snippet's language, runs it in a shared sandbox (CPython on
WASM for Python, a node/tsc process sandbox for JavaScript and TypeScript),
and tracks each run's status and output events.

Example::

    from snippet_sandbox import create_dispatcher

    dispatcher = create_dispatcher()
    run = await dispatcher.run("```py\\nprint('hi')\\n```")
    for event in run.outputs:
        print(event.kind, event.value)
"""

from snippet_sandbox.classifier import canonical_language, classify, detect_language
from snippet_sandbox.context import BootCell, SandboxContext
from snippet_sandbox.core import (
    NO_OUTPUT_MESSAGE,
    PNG_DATA_URI_PREFIX,
    BackendResult,
    BootError,
    CodeSubmission,
    CompilationError,
    DependencyInstallError,
    DuplicateRunError,
    ExecutionRun,
    InvalidTransitionError,
    Language,
    OutputEvent,
    OutputKind,
    ProcessExecutionError,
    RunStatus,
    SandboxSettings,
    SettingsValidationError,
    SnippetSandboxError,
    UnsupportedLanguageError,
)
from snippet_sandbox.core.logging import RunLogger, configure_structlog
from snippet_sandbox.dispatcher import Dispatcher, can_run
from snippet_sandbox.factory import create_dispatcher
from snippet_sandbox.policies import load_settings
from snippet_sandbox.tracker import RunTracker

__all__ = [
    "NO_OUTPUT_MESSAGE",
    "PNG_DATA_URI_PREFIX",
    "BackendResult",
    "BootCell",
    "BootError",
    "CodeSubmission",
    "CompilationError",
    "DependencyInstallError",
    "Dispatcher",
    "DuplicateRunError",
    "ExecutionRun",
    "InvalidTransitionError",
    "Language",
    "OutputEvent",
    "OutputKind",
    "ProcessExecutionError",
    "RunLogger",
    "RunStatus",
    "RunTracker",
    "SandboxContext",
    "SandboxSettings",
    "SettingsValidationError",
    "SnippetSandboxError",
    "UnsupportedLanguageError",
    "can_run",
    "canonical_language",
    "classify",
    "configure_structlog",
    "create_dispatcher",
    "detect_language",
    "load_settings",
]
