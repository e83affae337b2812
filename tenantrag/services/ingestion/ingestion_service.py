"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **download -> extract -> chunk -> embed -> upsert**.

The :class:`IngestionService` coordinates six collaborators (blob
storage, text extractor, chunker, embedding provider, batched vector
uploader, document repository) without any of them knowing about each
other.  Three public flows share the same tail:

    ingest_file     download -> extract -> chunk -> embed -> upsert
    ingest_content  (URL text / Q&A) validate -> chunk -> embed -> upsert
    train_agent     collect stored vectors of ready documents -> upsert

Every state transition is persisted on the document (or agent) record
before the step runs, so the record's ``status`` always tells how far
the job got.  Each step runs under its own ``asyncio.wait_for`` time box.
Any fatal failure persists ``error`` and re-raises so the job runner can
publish the matching ``<kind>.failed`` event.

Per-chunk embedding failures are *not* fatal: they are collected as
:class:`FailedChunk` entries and the document still becomes ready as
long as at least one vector was produced.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from tenantrag.models.document import agent_namespace, tenant_namespace
from tenantrag.models.job import (
    EventKind,
    IngestionEvent,
    IngestionResult,
    JobState,
    StateTransition,
    can_transition,
)
from tenantrag.models.rag import METADATA_TEXT_LIMIT, Chunk, FailedChunk, VectorRecord
from tenantrag.services.ingestion.text_extractor import validate_text
from tenantrag.utils.errors import (
    DocumentNotFoundError,
    EmbeddingError,
    ExtractionError,
    ExtractionReason,
    NoVectorsCreatedError,
    StepTimeoutError,
)
from tenantrag.utils.logging import bind_job_context, clear_job_context

if TYPE_CHECKING:
    from tenantrag.config.settings import Settings
    from tenantrag.interfaces.blob_storage import IBlobStorage
    from tenantrag.interfaces.document_repository import IDocumentRepository
    from tenantrag.interfaces.embedding_provider import IEmbeddingProvider
    from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider
    from tenantrag.pipeline.progress_tracker import ProgressTracker
    from tenantrag.services.ingestion.chunker import TextChunker
    from tenantrag.services.ingestion.text_extractor import TextExtractor
    from tenantrag.services.ingestion.vector_uploader import VectorUploader

_T = TypeVar("_T")

logger = structlog.get_logger(logger_name=__name__)


class StepTimeouts(BaseModel):
    """Per-step time boxes in seconds.

    ``embed`` covers chunking and embedding together.
    """

    model_config = ConfigDict(frozen=True)

    download: float = 120.0
    extract: float = 180.0
    embed: float = 300.0
    upsert: float = 300.0

    @classmethod
    def from_settings(cls, settings: Settings) -> StepTimeouts:
        return cls(
            download=settings.download_timeout_seconds,
            extract=settings.extract_timeout_seconds,
            embed=settings.embed_timeout_seconds,
            upsert=settings.upsert_timeout_seconds,
        )


class IngestionService:
    """Runs ingestion jobs for documents and agents.

    Parameters
    ----------
    extractor:
        Converts downloaded bytes into text.
    chunker:
        Splits text into overlapping chunks.
    embedding_provider:
        Embeds one chunk per call.
    vector_store:
        Read side of the vector store (agent training, document deletes).
    uploader:
        Batched, retried write side of the vector store.
    blob_storage:
        Source of uploaded file bytes.
    repository:
        Persists document / agent status and namespace pointers.
    timeouts:
        Step time boxes; defaults to :class:`StepTimeouts`.
    progress_tracker:
        Optional observer notified on every state transition.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        uploader: VectorUploader,
        blob_storage: IBlobStorage,
        repository: IDocumentRepository,
        timeouts: StepTimeouts | None = None,
        progress_tracker: ProgressTracker | None = None,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._uploader = uploader
        self._blob_storage = blob_storage
        self._repository = repository
        self._timeouts = timeouts or StepTimeouts()
        self._progress_tracker = progress_tracker

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_file(self, event: IngestionEvent) -> IngestionResult:
        """Ingest an uploaded file into the tenant namespace.

        Raises
        ------
        StorageError
            The blob is missing or unreadable.
        ExtractionError
            The bytes could not be turned into usable text.
        NoVectorsCreatedError
            Every chunk failed to embed.
        StepTimeoutError
            A step exceeded its time box.
        """
        document_id = str(event.document_id)
        run = _JobRun(document_id)
        bind_job_context(document_id=document_id, event=event.kind.value)
        try:
            await self._document_transition(run, JobState.DOWNLOADING)
            raw = await self._run_step(
                "download",
                self._blob_storage.download(str(event.storage_path)),
                self._timeouts.download,
            )

            await self._document_transition(run, JobState.EXTRACTING)
            text = await self._run_step(
                "extract",
                asyncio.to_thread(self._extractor.extract, raw, str(event.file_type)),
                self._timeouts.extract,
            )

            return await self._chunk_embed_upload(
                run,
                namespace=tenant_namespace(event.tenant_id),
                chunk=lambda: self._chunker.chunk(text),
            )
        except Exception as exc:
            await self._document_failed(run, exc)
            raise
        finally:
            clear_job_context("document_id", "event")

    async def ingest_content(self, event: IngestionEvent) -> IngestionResult:
        """Ingest in-memory text (scraped URL content or a Q&A pair)."""
        document_id = str(event.document_id)
        run = _JobRun(document_id)
        bind_job_context(document_id=document_id, event=event.kind.value)
        try:
            content = event.content or ""
            if event.kind is EventKind.QA:
                if not (event.question or "").strip() or not (event.answer or "").strip():
                    raise ExtractionError(
                        message="Question and answer are required",
                        reason=ExtractionReason.EMPTY_CONTENT,
                    )
                validate_text(content, source="Q&A pair")
                question, answer = str(event.question), str(event.answer)

                def chunk() -> list[Chunk]:
                    return self._chunker.chunk_qa(content, question, answer)

            else:
                validate_text(content, source=event.url or "scraped content")

                def chunk() -> list[Chunk]:
                    return self._chunker.chunk(content)

            return await self._chunk_embed_upload(
                run,
                namespace=tenant_namespace(event.tenant_id),
                chunk=chunk,
            )
        except Exception as exc:
            await self._document_failed(run, exc)
            raise
        finally:
            clear_job_context("document_id", "event")

    async def train_agent(self, event: IngestionEvent) -> IngestionResult:
        """Copy the vectors of an agent's ready documents into its namespace.

        Only documents of the agent's own tenant whose status is ``ready``
        contribute; documents of other tenants are skipped and logged.  The
        agent's existing namespace is reused when set.
        """
        agent_id = str(event.agent_id)
        run = _JobRun(agent_id)
        bind_job_context(agent_id=agent_id, event=event.kind.value)
        try:
            agent = await self._repository.get_agent(agent_id)
            namespace = agent.namespace or agent_namespace(agent.tenant_id, agent.agent_id)
            document_ids = list(event.document_ids) or list(agent.document_ids)

            await self._agent_transition(run, JobState.EMBEDDING)
            documents = await self._repository.list_documents(document_ids)
            foreign = [d for d in documents if d.tenant_id != agent.tenant_id]
            for document in foreign:
                logger.warning(
                    "agent_training_foreign_document_skipped",
                    agent_id=agent_id,
                    document_id=document.document_id,
                    agent_tenant=agent.tenant_id,
                    document_tenant=document.tenant_id,
                )
            owned = [d for d in documents if d.tenant_id == agent.tenant_id]
            ready = [d for d in owned if d.status is JobState.READY]

            records: list[VectorRecord] = []
            for document in ready:
                source_namespace = document.namespace or tenant_namespace(document.tenant_id)
                stored = await self._vector_store.list_by_document(
                    source_namespace, document.document_id
                )
                logger.info(
                    "agent_training_document_vectors",
                    document_id=document.document_id,
                    namespace=source_namespace,
                    vectors=len(stored),
                )
                records.extend(stored)

            if not records:
                raise NoVectorsCreatedError(
                    message=_no_training_vectors_message(
                        agent_name=event.agent_name or agent.name,
                        requested=len(document_ids),
                        found=len(owned),
                        ready=len(ready),
                        foreign=len(foreign),
                    )
                )

            await self._agent_transition(run, JobState.UPSERTING)
            report = await self._run_step(
                "upsert",
                self._uploader.upload(namespace, records),
                self._timeouts.upsert,
            )
            await self._agent_transition(run, JobState.READY, namespace=namespace)

            logger.info(
                "agent_training_complete",
                agent_id=agent_id,
                namespace=namespace,
                documents=len(ready),
                vectors=report.uploaded,
            )
            return IngestionResult(
                document_id=agent_id,
                namespace=namespace,
                state=JobState.READY,
                chunks_created=len(records),
                vectors_uploaded=report.uploaded,
                history=run.history,
                elapsed_seconds=run.elapsed(),
                details={
                    "agent_id": agent_id,
                    "documents_used": len(ready),
                    "batches": report.batches,
                },
            )
        except Exception as exc:
            await self._agent_failed(run, exc)
            raise
        finally:
            clear_job_context("agent_id", "event")

    async def delete_document(self, document_id: str) -> int:
        """Delete a document with its vectors and stored blob.

        Returns the number of vector records removed from the document's
        namespace.
        """
        document = await self._repository.get_document(document_id)
        namespace = document.namespace or tenant_namespace(document.tenant_id)

        removed = await self._vector_store.delete_by_filter(
            namespace, {"documentId": document_id}
        )
        if document.storage_path:
            await self._blob_storage.delete(document.storage_path)
        await self._repository.delete_document(document_id)

        logger.info(
            "document_cascade_deleted",
            document_id=document_id,
            namespace=namespace,
            vectors_removed=removed,
        )
        return removed

    # ------------------------------------------------------------------
    # Shared tail: chunk -> embed -> upsert -> ready
    # ------------------------------------------------------------------

    async def _chunk_embed_upload(
        self,
        run: _JobRun,
        namespace: str,
        chunk: Callable[[], list[Chunk]],
    ) -> IngestionResult:
        async def _chunk_and_embed() -> tuple[list[Chunk], list[VectorRecord], list[FailedChunk]]:
            await self._document_transition(run, JobState.CHUNKING)
            chunks = chunk()
            logger.info("document_chunked", document_id=run.job_id, chunks=len(chunks))

            await self._document_transition(run, JobState.EMBEDDING)
            records, failed = await self._embed_chunks(run.job_id, chunks)
            return chunks, records, failed

        chunks, records, failed = await self._run_step(
            "embed", _chunk_and_embed(), self._timeouts.embed
        )

        await self._document_transition(run, JobState.UPSERTING)
        report = await self._run_step(
            "upsert",
            self._uploader.upload(namespace, records, failed),
            self._timeouts.upsert,
        )

        await self._document_transition(run, JobState.READY, namespace=namespace)
        logger.info(
            "document_ingested",
            document_id=run.job_id,
            namespace=namespace,
            chunks=len(chunks),
            vectors=report.uploaded,
            failed_chunks=report.failed_count,
            elapsed_seconds=round(run.elapsed(), 2),
        )
        return IngestionResult(
            document_id=run.job_id,
            namespace=namespace,
            state=JobState.READY,
            chunks_created=len(chunks),
            vectors_uploaded=report.uploaded,
            failed_chunks=report.failed_chunks,
            history=run.history,
            elapsed_seconds=run.elapsed(),
            details={"batches": report.batches},
        )

    async def _embed_chunks(
        self,
        document_id: str,
        chunks: list[Chunk],
    ) -> tuple[list[VectorRecord], list[FailedChunk]]:
        """Embed chunks one at a time; failures are collected, not raised.

        Raises
        ------
        NoVectorsCreatedError
            If not a single chunk produced a vector.
        """
        records: list[VectorRecord] = []
        failed: list[FailedChunk] = []

        for chunk in chunks:
            if not chunk.text.strip():
                failed.append(FailedChunk(chunk_id=chunk.chunk_id, reason="Empty text"))
                continue
            try:
                values = await self._embedding_provider.embed_single(
                    chunk.text[:METADATA_TEXT_LIMIT]
                )
            except EmbeddingError as exc:
                logger.warning(
                    "chunk_embedding_failed",
                    document_id=document_id,
                    chunk_id=chunk.chunk_id,
                    reason=exc.reason.value,
                    error=exc.message,
                )
                failed.append(FailedChunk(chunk_id=chunk.chunk_id, reason=exc.message))
                continue
            records.append(VectorRecord.from_chunk(document_id, chunk, values))

        if not records:
            reasons = sorted({f.reason for f in failed})
            raise NoVectorsCreatedError(
                message=(
                    f"No vectors were created for document {document_id}: "
                    f"{len(failed)} of {len(chunks)} chunks failed"
                    + (f" ({'; '.join(reasons)})" if reasons else "")
                ),
                provider_name=self._embedding_provider.get_provider_name(),
            )
        return records, failed

    # ------------------------------------------------------------------
    # State persistence
    # ------------------------------------------------------------------

    async def _document_transition(
        self,
        run: _JobRun,
        state: JobState,
        namespace: str | None = None,
    ) -> None:
        run.advance(state)
        await self._repository.update_document_status(run.job_id, state, namespace=namespace)
        await self._notify(run.job_id, state)

    async def _agent_transition(
        self,
        run: _JobRun,
        state: JobState,
        namespace: str | None = None,
    ) -> None:
        run.advance(state)
        await self._repository.update_agent(run.job_id, status=state, namespace=namespace)
        await self._notify(run.job_id, state)

    async def _document_failed(self, run: _JobRun, exc: Exception) -> None:
        logger.error(
            "ingestion_failed",
            document_id=run.job_id,
            state=run.state.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        run.advance(JobState.ERROR)
        with contextlib.suppress(DocumentNotFoundError):
            await self._repository.update_document_status(run.job_id, JobState.ERROR)
        await self._notify(run.job_id, JobState.ERROR, str(exc))

    async def _agent_failed(self, run: _JobRun, exc: Exception) -> None:
        logger.error(
            "agent_training_failed",
            agent_id=run.job_id,
            state=run.state.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        run.advance(JobState.ERROR)
        with contextlib.suppress(DocumentNotFoundError):
            await self._repository.update_agent(run.job_id, status=JobState.ERROR)
        await self._notify(run.job_id, JobState.ERROR, str(exc))

    async def _notify(self, job_id: str, state: JobState, message: str = "") -> None:
        if self._progress_tracker is not None:
            await self._progress_tracker.update(job_id, state, message)

    @staticmethod
    async def _run_step(step: str, awaitable: Awaitable[_T], timeout: float) -> _T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise StepTimeoutError(
                message=f"Step '{step}' timed out after {timeout:g}s"
            ) from exc


class _JobRun:
    """In-memory bookkeeping for one job run: current state and history."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.state = JobState.QUEUED
        self.history: list[StateTransition] = []
        self._started = time.monotonic()

    def advance(self, state: JobState) -> None:
        if not can_transition(self.state, state):
            logger.warning(
                "unexpected_state_transition",
                job_id=self.job_id,
                current=self.state.value,
                target=state.value,
            )
        self.state = state
        self.history.append(StateTransition(state=state))

    def elapsed(self) -> float:
        return time.monotonic() - self._started


def _no_training_vectors_message(
    agent_name: str, requested: int, found: int, ready: int, foreign: int = 0
) -> str:
    return (
        f"No chunks found for agent '{agent_name}' "
        f"({requested} documents requested, {found} found, {ready} ready"
        + (f", {foreign} skipped as belonging to another tenant" if foreign else "")
        + "). "
        "Possible causes: "
        "1) the documents have not finished processing; "
        "2) the documents were stored in a different namespace; "
        "3) the vector search for the documents failed."
    )
