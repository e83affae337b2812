"""Ingestion job progress tracking with callback-based listener notification.

Records the state history of each ingestion job and broadcasts every
transition to registered listener callbacks.  Listeners are keyed by job
ID (the document or agent id) so concurrent jobs never see each other's
updates.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
#   IngestionService ──update()──→ ProgressTracker ──callback()──→ listener
#
#   1. The ingestion service calls tracker.update(job_id, state, message)
#      on every state transition.
#   2. ProgressTracker appends the transition to the job's history and
#      calls every listener registered for that job.
#   3. Listener errors are logged and skipped; a broken listener never
#      fails the job.
#   4. Sync and async callbacks are both accepted.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from tenantrag.models.job import JobState, StateTransition
from tenantrag.utils.logging import get_logger


@dataclass
class _JobStatus:
    """Internal snapshot of one job's progress (never serialized)."""

    state: JobState = JobState.QUEUED
    message: str = ""
    history: list[StateTransition] = field(default_factory=list)


class ProgressTracker:
    """Tracks ingestion job states and notifies listeners.

    Callbacks receive ``(job_id, state, message)``.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, _JobStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, job_id: str, state: JobState, message: str = "") -> None:
        """Record *state* for *job_id* and notify its listeners."""
        status = self._statuses.setdefault(job_id, _JobStatus())
        status.state = state
        status.message = message
        status.history.append(StateTransition(state=state))

        self._logger.debug(
            "job_progress",
            job_id=job_id,
            state=state.value,
            message=message,
        )
        await self._notify_listeners(job_id, state, message)

    def register_listener(self, job_id: str, callback: Callable) -> None:
        """Register *callback* for updates of *job_id*."""
        listeners = self._listeners.setdefault(job_id, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, job_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(job_id, [])
        if callback in listeners:
            listeners.remove(callback)

    def get_status(self, job_id: str) -> dict:
        """Return ``{"state", "message"}`` for *job_id* (queued when unknown)."""
        status = self._statuses.get(job_id)
        if status is None:
            return {"state": JobState.QUEUED.value, "message": ""}
        return {"state": status.state.value, "message": status.message}

    def get_history(self, job_id: str) -> list[StateTransition]:
        """Return every recorded transition of *job_id*, oldest first."""
        status = self._statuses.get(job_id)
        return list(status.history) if status else []

    def reset(self, job_id: str) -> None:
        """Forget the recorded history of *job_id* (used when a job is re-run)."""
        self._statuses.pop(job_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, job_id: str, state: JobState, message: str) -> None:
        for callback in list(self._listeners.get(job_id, [])):
            try:
                result = callback(job_id, state, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    job_id=job_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
