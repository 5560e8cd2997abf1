"""Run state tracker: the ordered collection of execution run records.

Each run moves through queued -> loading_packages -> completed | failed.
Records are immutable; every update replaces a run's record with a new one
whose outputs extend the previous outputs. Listeners registered with
subscribe() receive every new record, in update order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from snippet_sandbox.core.errors import DuplicateRunError, InvalidTransitionError
from snippet_sandbox.core.logging import RunLogger
from snippet_sandbox.core.models import ExecutionRun, Language, OutputEvent, RunStatus

RunListener = Callable[[ExecutionRun], None]

ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.QUEUED: frozenset(
        {RunStatus.QUEUED, RunStatus.LOADING_PACKAGES, RunStatus.COMPLETED, RunStatus.FAILED}
    ),
    RunStatus.LOADING_PACKAGES: frozenset(
        {RunStatus.LOADING_PACKAGES, RunStatus.COMPLETED, RunStatus.FAILED}
    ),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


def can_transition(current: RunStatus, new: RunStatus) -> bool:
    """Whether a run in ``current`` may be updated to ``new``."""
    return new in ALLOWED_TRANSITIONS[current]


class RunTracker:
    """Insertion-ordered store of run records keyed by run id.

    Attributes:
        logger: RunLogger used for lifecycle and listener failure events
    """

    def __init__(self, logger: RunLogger | None = None) -> None:
        self._runs: dict[str, ExecutionRun] = {}
        self._seen_ids: set[str] = set()
        # Records removed by clear(), kept so a late update can restore identity
        self._cleared: dict[str, ExecutionRun] = {}
        self._listeners: list[RunListener] = []
        self.logger = logger or RunLogger()

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs

    def add(self, run_id: str, language: Language | None = None) -> ExecutionRun:
        """Append a new run in the queued state.

        Raises:
            DuplicateRunError: If run_id was used before, even if since cleared
        """
        if run_id in self._seen_ids:
            raise DuplicateRunError(f"Run id already used: {run_id}")

        self._seen_ids.add(run_id)
        run = ExecutionRun(id=run_id, language=language)
        self._runs[run_id] = run
        self.logger.log_run_queued(run_id, language.value if language is not None else "unknown")
        self._notify(run)
        return run

    def update(
        self,
        run_id: str,
        status: RunStatus | None = None,
        outputs: Iterable[OutputEvent] = (),
    ) -> ExecutionRun:
        """Append outputs and optionally change status, replacing the record.

        An update for a run that is no longer tracked (removed by clear())
        inserts a fresh record carrying only this update's outputs; it keeps
        the cleared record's language and created_at.

        Args:
            run_id: Run identifier
            status: New status, or None to keep the current one
            outputs: Events appended after the existing ones

        Returns:
            The new record

        Raises:
            InvalidTransitionError: If the run is terminal or the status
                                    change is not an allowed edge
        """
        new_outputs = tuple(outputs)
        current = self._runs.get(run_id)

        if current is None:
            self._seen_ids.add(run_id)
            new_status = status or RunStatus.QUEUED
            identity: dict[str, Any] = {}
            cleared = self._cleared.pop(run_id, None)
            if cleared is not None:
                identity = {"language": cleared.language, "created_at": cleared.created_at}
            run = ExecutionRun(
                id=run_id,
                **identity,
                outputs=new_outputs,
                status=new_status,
                finished_at=datetime.now(UTC) if new_status.is_terminal else None,
            )
        else:
            new_status = status or current.status
            if current.is_terminal or not can_transition(current.status, new_status):
                raise InvalidTransitionError(
                    f"Run {run_id}: cannot move from {current.status.value} to {new_status.value}"
                )
            run = current.model_copy(
                update={
                    "outputs": current.outputs + new_outputs,
                    "status": new_status,
                    "finished_at": datetime.now(UTC) if new_status.is_terminal else None,
                }
            )

        self._runs[run_id] = run
        self._notify(run)
        return run

    def get(self, run_id: str) -> ExecutionRun | None:
        return self._runs.get(run_id)

    def runs(self) -> list[ExecutionRun]:
        """All tracked records, in insertion order."""
        return list(self._runs.values())

    def clear(self) -> None:
        """Remove every record. Cleared ids stay reserved."""
        self._cleared.update(self._runs)
        self._runs.clear()

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Register a listener for every new record.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, run: ExecutionRun) -> None:
        for listener in list(self._listeners):
            try:
                listener(run)
            except Exception as e:
                self.logger.log_listener_failed(run.id, f"{type(e).__name__}: {e}")
