"""Core orchestrator abstractions and models.

This module provides the foundational types and interfaces shared by the
classifier, dispatcher, tracker and both backends, including Pydantic models
for submissions, runs and settings, the backend base class, and error types.
"""

from __future__ import annotations

from .base import BaseBackend, ProgressCallback
from .errors import (
    BootError,
    CompilationError,
    DependencyInstallError,
    DuplicateRunError,
    InvalidTransitionError,
    ProcessExecutionError,
    SettingsValidationError,
    SnippetSandboxError,
    UnsupportedLanguageError,
)
from .models import (
    NO_OUTPUT_MESSAGE,
    PNG_DATA_URI_PREFIX,
    BackendResult,
    CodeSubmission,
    ExecutionRun,
    Language,
    OutputEvent,
    OutputKind,
    RunStatus,
    SandboxSettings,
)

__all__ = [
    "NO_OUTPUT_MESSAGE",
    "PNG_DATA_URI_PREFIX",
    "BackendResult",
    "BaseBackend",
    "BootError",
    "CodeSubmission",
    "CompilationError",
    "DependencyInstallError",
    "DuplicateRunError",
    "ExecutionRun",
    "InvalidTransitionError",
    "Language",
    "OutputEvent",
    "OutputKind",
    "ProcessExecutionError",
    "ProgressCallback",
    "RunStatus",
    "SandboxSettings",
    "SettingsValidationError",
    "SnippetSandboxError",
    "UnsupportedLanguageError",
]
