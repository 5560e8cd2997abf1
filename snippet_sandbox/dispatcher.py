"""Execution dispatcher: routes classified snippets to a backend.

The Dispatcher creates the run record, routes the cleaned code to the Python
or Script backend by language, relays every loading step to the tracker as a
loading_packages update, and finishes each run with exactly one terminal
update. Backend exceptions, including boot failures, never escape a run:
they become a failed record with a readable message.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import assert_never

from snippet_sandbox.classifier import canonical_language, classify
from snippet_sandbox.context import SandboxContext
from snippet_sandbox.core.base import BaseBackend
from snippet_sandbox.core.errors import UnsupportedLanguageError
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import (
    BackendResult,
    CodeSubmission,
    ExecutionRun,
    Language,
    OutputEvent,
    RunStatus,
)
from snippet_sandbox.runtimes.python.sandbox import PythonBackend
from snippet_sandbox.runtimes.script.sandbox import ScriptBackend
from snippet_sandbox.tracker import RunTracker


def can_run(language: Language | str | None) -> bool:
    """Whether a run action should be offered for this language."""
    if isinstance(language, Language):
        return True
    if not isinstance(language, str):
        return False
    return canonical_language(language) is not None


def resolve_language(language: Language | str) -> Language:
    """Coerce a language value or tag to Language.

    Raises:
        UnsupportedLanguageError: If it names none of the supported languages
    """
    if isinstance(language, Language):
        return language
    resolved = canonical_language(language) if isinstance(language, str) else None
    if resolved is None:
        raise UnsupportedLanguageError(language)
    return resolved


class Dispatcher:
    """Routes submissions to the backend of their language and tracks the run.

    Attributes:
        context: SandboxContext owning the shared sandbox instances
        tracker: RunTracker receiving every status update
        python_backend: Backend for Language.PYTHON
        script_backend: Backend for Language.JAVASCRIPT and Language.TYPESCRIPT
        logger: RunLogger for run lifecycle events
    """

    def __init__(
        self,
        context: SandboxContext,
        tracker: RunTracker | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self.context = context
        self.logger = logger or context.logger
        self.tracker = tracker or RunTracker(self.logger)
        self.python_backend = PythonBackend(context.python, context.settings, self.logger)
        self.script_backend = ScriptBackend(context.script, context.settings, self.logger)

    def can_run(self, language: Language | str | None) -> bool:
        return can_run(language)

    def prepare(
        self,
        code: str | CodeSubmission,
        language: Language | str | None = None,
        run_id: str | None = None,
    ) -> tuple[CodeSubmission, ExecutionRun]:
        """Classify the snippet and append its queued run record.

        Args:
            code: Raw snippet text (possibly fenced) or a CodeSubmission
            language: Explicit language overriding the inferred one
            run_id: Run identifier (a UUID4 string if None)

        Returns:
            (submission, queued run record)

        Raises:
            UnsupportedLanguageError: If language is not supported; no run is created
            DuplicateRunError: If run_id is already used
        """
        submission = code if isinstance(code, CodeSubmission) else classify(code)
        if language is not None:
            resolved = resolve_language(language)
            if resolved is not submission.inferred_language:
                submission = submission.model_copy(update={"inferred_language": resolved})

        run = self.tracker.add(run_id or str(uuid.uuid4()), submission.inferred_language)
        return submission, run

    async def run(
        self,
        code: str | CodeSubmission,
        language: Language | str | None = None,
        run_id: str | None = None,
    ) -> ExecutionRun:
        """Execute a snippet and return its terminal run record.

        Raises:
            UnsupportedLanguageError: If language is not supported; no run is created
            DuplicateRunError: If run_id is already used
        """
        submission, run = self.prepare(code, language, run_id)
        return await self._drive(run.id, submission)

    def submit(
        self,
        code: str | CodeSubmission,
        language: Language | str | None = None,
        run_id: str | None = None,
    ) -> asyncio.Task[ExecutionRun]:
        """Start a run in the background.

        The queued record exists in the tracker when this returns. Must be
        called from a running event loop.
        """
        submission, run = self.prepare(code, language, run_id)
        return asyncio.ensure_future(self._drive(run.id, submission))

    def _route(self, language: Language) -> BaseBackend:
        match language:
            case Language.PYTHON:
                return self.python_backend
            case Language.JAVASCRIPT | Language.TYPESCRIPT:
                return self.script_backend
            case _:
                assert_never(language)

    async def _drive(self, run_id: str, submission: CodeSubmission) -> ExecutionRun:
        language = submission.inferred_language

        def progress(message: str) -> None:
            self.logger.log_run_status(run_id, RunStatus.LOADING_PACKAGES.value, message)
            self.tracker.update(run_id, RunStatus.LOADING_PACKAGES, [OutputEvent.text(message)])

        backend = self._route(language)
        try:
            result = await backend.execute(submission.cleaned_code, language, progress=progress)
        except Exception as e:
            result = BackendResult(
                success=False,
                outputs=[OutputEvent.text(str(e) or type(e).__name__)],
                metadata={"stage": "dispatch", "error_type": type(e).__name__},
            )

        status = RunStatus.COMPLETED if result.success else RunStatus.FAILED
        final = self.tracker.update(run_id, status, result.outputs)
        self.logger.log_run_complete(final, result.duration_ms)
        return final
