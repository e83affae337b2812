"""In-process asyncio job runner for ingestion events.

Events are queued on an :class:`asyncio.Queue` and consumed by a fixed
pool of worker tasks, so jobs for different documents run concurrently
while each job's steps stay sequential inside its handler.

Delivery is at-least-once: an event for a document whose job is already
queued or running is dropped (idempotency key ``document:<id>`` or
``agent:<id>``), but an event sent again after the job finished runs
again.  Every handler step is idempotent, so re-running is safe.

When a handler raises, the runner publishes a :class:`FailedEvent` named
``<kind>.failed`` to the failure handlers registered for that kind.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from tenantrag.models.job import EventKind, FailedEvent, IngestionEvent, JobState
from tenantrag.utils.errors import DocumentNotFoundError

if TYPE_CHECKING:
    from tenantrag.interfaces.document_repository import IDocumentRepository
    from tenantrag.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)

Handler = Callable[[IngestionEvent], Awaitable[Any]]
FailureHandler = Callable[[FailedEvent], Awaitable[None]]


class JobRunner:
    """Queue-backed dispatcher with one handler per event kind.

    Parameters
    ----------
    workers:
        Default number of concurrent worker tasks started by :meth:`start`.
    """

    def __init__(self, workers: int = 4) -> None:
        self._default_workers = workers
        self._queue: asyncio.Queue[IngestionEvent] = asyncio.Queue()
        self._handlers: dict[EventKind, Handler] = {}
        self._failure_handlers: dict[EventKind, list[FailureHandler]] = {}
        self._in_flight: set[str] = set()
        self._workers: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, kind: EventKind, handler: Handler) -> None:
        """Route events of *kind* to *handler* (replacing any previous one)."""
        self._handlers[kind] = handler

    def on_failure(self, kind: EventKind, handler: FailureHandler) -> None:
        """Subscribe *handler* to ``<kind>.failed`` events."""
        self._failure_handlers.setdefault(kind, []).append(handler)

    # ------------------------------------------------------------------
    # Sending / lifecycle
    # ------------------------------------------------------------------

    async def send(self, event: IngestionEvent) -> bool:
        """Queue *event*; return ``False`` if its job is already in flight."""
        if event.kind not in self._handlers:
            raise ValueError(f"No handler registered for event '{event.kind.value}'")

        key = event.idempotency_key
        if key in self._in_flight:
            logger.info("duplicate_event_dropped", event=event.kind.value, key=key)
            return False

        self._in_flight.add(key)
        await self._queue.put(event)
        logger.debug("event_queued", event=event.kind.value, key=key, depth=self._queue.qsize())
        return True

    async def start(self, workers: int | None = None) -> None:
        """Start the worker pool (no-op if already running)."""
        if self._workers:
            return
        count = workers or self._default_workers
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"ingestion-worker-{n}")
            for n in range(count)
        ]
        logger.info("job_runner_started", workers=count)

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers.  Jobs still running are abandoned mid-step."""
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers = []
        logger.info("job_runner_stopped", pending=self._queue.qsize())

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def is_in_flight(self, event: IngestionEvent) -> bool:
        return event.idempotency_key in self._in_flight

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def dispatch(self, event: IngestionEvent) -> Any:
        """Run the handler for *event* in the current task.

        On failure the ``<kind>.failed`` event is published and the
        original exception re-raised.
        """
        handler = self._handlers.get(event.kind)
        if handler is None:
            raise ValueError(f"No handler registered for event '{event.kind.value}'")
        try:
            return await handler(event)
        except Exception as exc:
            await self._publish_failure(event, exc)
            raise

    async def _worker(self, number: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except Exception as exc:
                # Already published as <kind>.failed; keep the worker alive.
                logger.warning(
                    "job_failed",
                    worker=number,
                    event=event.kind.value,
                    key=event.idempotency_key,
                    error=str(exc),
                )
            finally:
                self._in_flight.discard(event.idempotency_key)
                self._queue.task_done()

    async def _publish_failure(self, event: IngestionEvent, exc: Exception) -> None:
        failed = FailedEvent(
            source_kind=event.kind,
            tenant_id=event.tenant_id,
            document_id=event.document_id,
            agent_id=event.agent_id,
            error=str(exc),
        )
        logger.error(
            "event_failed",
            failed_event=failed.name,
            document_id=failed.document_id,
            agent_id=failed.agent_id,
            error=failed.error,
        )
        for handler in self._failure_handlers.get(event.kind, []):
            try:
                await handler(failed)
            except Exception as handler_exc:
                logger.error(
                    "failure_handler_error",
                    failed_event=failed.name,
                    error=str(handler_exc),
                )


def register_ingestion_handlers(
    runner: JobRunner,
    ingestion_service: IngestionService,
    repository: IDocumentRepository,
) -> None:
    """Wire the ingestion flows and their error bookkeeping into *runner*."""
    runner.register(EventKind.FILE, ingestion_service.ingest_file)
    runner.register(EventKind.URL, ingestion_service.ingest_content)
    runner.register(EventKind.QA, ingestion_service.ingest_content)
    runner.register(EventKind.AGENT_TRAIN, ingestion_service.train_agent)

    async def _mark_document_failed(failed: FailedEvent) -> None:
        if not failed.document_id:
            return
        try:
            await repository.update_document_status(failed.document_id, JobState.ERROR)
        except DocumentNotFoundError:
            logger.warning("failed_document_missing", document_id=failed.document_id)

    async def _mark_agent_failed(failed: FailedEvent) -> None:
        if not failed.agent_id:
            return
        try:
            await repository.update_agent(failed.agent_id, status=JobState.ERROR)
        except DocumentNotFoundError:
            logger.warning("failed_agent_missing", agent_id=failed.agent_id)

    for kind in (EventKind.FILE, EventKind.URL, EventKind.QA):
        runner.on_failure(kind, _mark_document_failed)
    runner.on_failure(EventKind.AGENT_TRAIN, _mark_agent_failed)
