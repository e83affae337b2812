"""Unit tests for IngestionService flows.

Wires the real chunker, extractor, uploader, SQLite repository, local blob
storage and a temporary ChromaDB store around the deterministic fake
embedding provider, so each test follows a document from upload to
vectors and checks the persisted status along the way.
"""

from __future__ import annotations

import asyncio

import pytest

from tenantrag.models.document import SourceKind
from tenantrag.models.job import EventKind, IngestionEvent, JobState
from tenantrag.pipeline.progress_tracker import ProgressTracker
from tenantrag.providers.repository.sqlite_repository import SQLiteDocumentRepository
from tenantrag.providers.storage.local_blob_storage import LocalBlobStorage
from tenantrag.providers.vector_store.chromadb_provider import ChromaDBProvider
from tenantrag.services.ingestion.chunker import TextChunker
from tenantrag.services.ingestion.ingestion_service import IngestionService, StepTimeouts
from tenantrag.services.ingestion.text_extractor import TextExtractor
from tenantrag.services.ingestion.vector_uploader import VectorUploader
from tenantrag.utils.errors import (
    DocumentNotFoundError,
    EmbeddingError,
    EmbeddingReason,
    ExtractionError,
    NoVectorsCreatedError,
    StepTimeoutError,
    StorageError,
)
from tests.conftest import FakeEmbeddingProvider, make_agent, make_document

_TEXT = "Alpha sentence is here. Beta sentence is here. Gamma sentence is here."
_FILE_STATES = [
    JobState.DOWNLOADING,
    JobState.EXTRACTING,
    JobState.CHUNKING,
    JobState.EMBEDDING,
    JobState.UPSERTING,
    JobState.READY,
]


async def _no_sleep(delay: float) -> None:
    return None


class _SlowEmbeddingProvider(FakeEmbeddingProvider):
    async def embed_single(self, text: str) -> list[float]:
        await asyncio.sleep(5)
        return await super().embed_single(text)


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def build_service(
    chroma_store: ChromaDBProvider,
    blob_storage: LocalBlobStorage,
    repository: SQLiteDocumentRepository,
    tracker: ProgressTracker,
):
    def _build(
        embedding_provider: FakeEmbeddingProvider | None = None,
        timeouts: StepTimeouts | None = None,
    ) -> IngestionService:
        return IngestionService(
            extractor=TextExtractor(),
            chunker=TextChunker(chunk_size=50, overlap=0),
            embedding_provider=embedding_provider or FakeEmbeddingProvider(),
            vector_store=chroma_store,
            uploader=VectorUploader(chroma_store, batch_size=50, sleep=_no_sleep),
            blob_storage=blob_storage,
            repository=repository,
            timeouts=timeouts,
            progress_tracker=tracker,
        )

    return _build


async def _stored_file(
    repository: SQLiteDocumentRepository,
    blob_storage: LocalBlobStorage,
    document_id: str = "doc-1",
    data: bytes = _TEXT.encode(),
    tenant_id: str = "acme",
) -> IngestionEvent:
    path = f"{tenant_id}/1700000000000_{document_id}.txt"
    await blob_storage.upload(path, data)
    await repository.create_document(
        make_document(document_id, tenant_id=tenant_id, storage_path=path, size=len(data))
    )
    return IngestionEvent(
        kind=EventKind.FILE,
        tenant_id=tenant_id,
        document_id=document_id,
        file_name=f"{document_id}.txt",
        file_type="txt",
        storage_path=path,
    )


# ======================================================================
# ingest_file
# ======================================================================


class TestIngestFile:
    @pytest.mark.asyncio
    async def test_happy_path_states_and_vectors(
        self, build_service, repository, blob_storage, chroma_store, tracker
    ) -> None:
        event = await _stored_file(repository, blob_storage)

        result = await build_service().ingest_file(event)

        assert result.state is JobState.READY
        assert result.namespace == "tenant_acme"
        assert result.chunks_created == 2
        assert result.vectors_uploaded == 2
        assert result.states == _FILE_STATES
        assert [t.state for t in tracker.get_history("doc-1")] == _FILE_STATES

        document = await repository.get_document("doc-1")
        assert document.status is JobState.READY
        assert document.namespace == "tenant_acme"
        assert await chroma_store.count("tenant_acme") == 2

    @pytest.mark.asyncio
    async def test_partial_embedding_failure_still_ready(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        event = await _stored_file(repository, blob_storage)
        provider = FakeEmbeddingProvider(
            fail_on={"Gamma sentence is here."},
            error=EmbeddingError(message="rate limited", reason=EmbeddingReason.RATE_LIMITED),
        )

        result = await build_service(provider).ingest_file(event)

        assert result.state is JobState.READY
        assert result.vectors_uploaded == 1
        assert [(f.chunk_id, f.reason) for f in result.failed_chunks] == [
            ("chunk_1", "rate limited")
        ]
        assert (await repository.get_document("doc-1")).status is JobState.READY
        assert await chroma_store.count("tenant_acme") == 1

    @pytest.mark.asyncio
    async def test_zero_vectors_is_error(
        self, build_service, repository, blob_storage, chroma_store, tracker
    ) -> None:
        event = await _stored_file(repository, blob_storage)
        provider = FakeEmbeddingProvider(
            fail_on={"Alpha sentence is here. Beta sentence is here.", "Gamma sentence is here."},
            error=EmbeddingError(message="unauthorized", reason=EmbeddingReason.UNAUTHORIZED),
        )

        with pytest.raises(NoVectorsCreatedError):
            await build_service(provider).ingest_file(event)

        assert (await repository.get_document("doc-1")).status is JobState.ERROR
        assert tracker.get_status("doc-1")["state"] == "error"
        assert await chroma_store.count("tenant_acme") == 0

    @pytest.mark.asyncio
    async def test_failure_keeps_original_error_when_record_is_gone(
        self, build_service, repository, blob_storage
    ) -> None:
        event = await _stored_file(repository, blob_storage)

        class _DeletingProvider(FakeEmbeddingProvider):
            async def embed_single(self, text: str) -> list[float]:
                await repository.delete_document("doc-1")
                raise EmbeddingError(message="unauthorized", reason=EmbeddingReason.UNAUTHORIZED)

        with pytest.raises(NoVectorsCreatedError):
            await build_service(_DeletingProvider()).ingest_file(event)

        with pytest.raises(DocumentNotFoundError):
            await repository.get_document("doc-1")

    @pytest.mark.asyncio
    async def test_extraction_failure_marks_error(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        event = await _stored_file(repository, blob_storage, data=b"tiny")

        with pytest.raises(ExtractionError):
            await build_service().ingest_file(event)

        assert (await repository.get_document("doc-1")).status is JobState.ERROR
        assert await chroma_store.count("tenant_acme") == 0

    @pytest.mark.asyncio
    async def test_missing_blob_marks_error(self, build_service, repository) -> None:
        await repository.create_document(make_document("doc-1", storage_path="acme/missing.txt"))
        event = IngestionEvent(
            kind=EventKind.FILE,
            tenant_id="acme",
            document_id="doc-1",
            file_type="txt",
            storage_path="acme/missing.txt",
        )

        with pytest.raises(StorageError):
            await build_service().ingest_file(event)

        assert (await repository.get_document("doc-1")).status is JobState.ERROR

    @pytest.mark.asyncio
    async def test_step_timeout(self, build_service, repository, blob_storage) -> None:
        event = await _stored_file(repository, blob_storage)
        service = build_service(_SlowEmbeddingProvider(), StepTimeouts(embed=0.05))

        with pytest.raises(StepTimeoutError, match="Step 'embed' timed out"):
            await service.ingest_file(event)

        assert (await repository.get_document("doc-1")).status is JobState.ERROR

    @pytest.mark.asyncio
    async def test_reingest_overwrites_vectors(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        event = await _stored_file(repository, blob_storage)
        service = build_service()

        await service.ingest_file(event)
        await service.ingest_file(event)

        assert await chroma_store.count("tenant_acme") == 2


# ======================================================================
# ingest_content
# ======================================================================


class TestIngestContent:
    @pytest.mark.asyncio
    async def test_qa_pair_single_chunk(
        self, build_service, repository, chroma_store, tracker
    ) -> None:
        content = "Question: What are your hours?\n\nAnswer: Nine to five on weekdays."
        await repository.create_document(
            make_document("qa-1", source_kind=SourceKind.QA, content=content)
        )
        event = IngestionEvent(
            kind=EventKind.QA,
            tenant_id="acme",
            document_id="qa-1",
            content=content,
            question="What are your hours?",
            answer="Nine to five on weekdays.",
        )

        result = await build_service().ingest_content(event)

        assert result.chunks_created == 1
        assert result.states == [
            JobState.CHUNKING,
            JobState.EMBEDDING,
            JobState.UPSERTING,
            JobState.READY,
        ]
        stored = await chroma_store.list_by_document("tenant_acme", "qa-1")
        assert [r.record_id for r in stored] == ["qa-1_qa_chunk_0"]
        assert stored[0].metadata["type"] == "qa_pair"
        assert stored[0].metadata["question"] == "What are your hours?"

    @pytest.mark.asyncio
    async def test_qa_requires_question_and_answer(self, build_service, repository) -> None:
        await repository.create_document(make_document("qa-1", source_kind=SourceKind.QA))
        event = IngestionEvent(
            kind=EventKind.QA,
            tenant_id="acme",
            document_id="qa-1",
            content="Question: \n\nAnswer: something long enough",
            question="  ",
            answer="something long enough",
        )

        with pytest.raises(ExtractionError, match="Question and answer are required"):
            await build_service().ingest_content(event)

        assert (await repository.get_document("qa-1")).status is JobState.ERROR

    @pytest.mark.asyncio
    async def test_scraped_url_content(self, build_service, repository, chroma_store) -> None:
        await repository.create_document(make_document("url-1", source_kind=SourceKind.URL))
        event = IngestionEvent(
            kind=EventKind.URL,
            tenant_id="acme",
            document_id="url-1",
            content=_TEXT,
            url="https://example.com/about",
        )

        result = await build_service().ingest_content(event)

        assert result.vectors_uploaded == 2
        assert (await repository.get_document("url-1")).status is JobState.READY

    @pytest.mark.asyncio
    async def test_empty_scraped_content_is_error(self, build_service, repository) -> None:
        await repository.create_document(make_document("url-1", source_kind=SourceKind.URL))
        event = IngestionEvent(
            kind=EventKind.URL, tenant_id="acme", document_id="url-1", content="   "
        )

        with pytest.raises(ExtractionError):
            await build_service().ingest_content(event)

        assert (await repository.get_document("url-1")).status is JobState.ERROR


# ======================================================================
# train_agent
# ======================================================================


class TestTrainAgent:
    @pytest.mark.asyncio
    async def test_copies_ready_document_vectors(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        service = build_service()
        await service.ingest_file(await _stored_file(repository, blob_storage, "doc-1"))
        await repository.create_document(make_document("doc-2"))  # still queued
        await repository.create_agent(make_agent(document_ids=["doc-1", "doc-2"]))

        result = await service.train_agent(
            IngestionEvent(kind=EventKind.AGENT_TRAIN, tenant_id="acme", agent_id="agent-1")
        )

        assert result.namespace == "agent_acme_agent-1"
        assert result.details["documents_used"] == 1
        assert result.vectors_uploaded == 2
        assert await chroma_store.count("agent_acme_agent-1") == 2

        agent = await repository.get_agent("agent-1")
        assert agent.status is JobState.READY
        assert agent.namespace == "agent_acme_agent-1"

    @pytest.mark.asyncio
    async def test_event_document_ids_override_agent_list(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        service = build_service()
        await service.ingest_file(await _stored_file(repository, blob_storage, "doc-1"))
        await repository.create_agent(make_agent(document_ids=[]))

        result = await service.train_agent(
            IngestionEvent(
                kind=EventKind.AGENT_TRAIN,
                tenant_id="acme",
                agent_id="agent-1",
                document_ids=["doc-1"],
            )
        )
        assert result.details["documents_used"] == 1

    @pytest.mark.asyncio
    async def test_no_ready_documents_is_error(self, build_service, repository) -> None:
        await repository.create_document(make_document("doc-1"))
        await repository.create_agent(make_agent(document_ids=["doc-1"]))

        with pytest.raises(NoVectorsCreatedError, match="No chunks found for agent 'Support Bot'"):
            await build_service().train_agent(
                IngestionEvent(kind=EventKind.AGENT_TRAIN, tenant_id="acme", agent_id="agent-1")
            )

        assert (await repository.get_agent("agent-1")).status is JobState.ERROR

    @pytest.mark.asyncio
    async def test_other_tenant_documents_are_skipped(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        service = build_service()
        await service.ingest_file(
            await _stored_file(repository, blob_storage, "other-doc", tenant_id="globex")
        )
        await repository.create_agent(make_agent(document_ids=[]))

        with pytest.raises(NoVectorsCreatedError, match="1 skipped as belonging to another tenant"):
            await service.train_agent(
                IngestionEvent(
                    kind=EventKind.AGENT_TRAIN,
                    tenant_id="acme",
                    agent_id="agent-1",
                    document_ids=["other-doc"],
                )
            )

        assert await chroma_store.count("agent_acme_agent-1") == 0
        assert await chroma_store.count("tenant_globex") == 2

    @pytest.mark.asyncio
    async def test_mixed_tenants_only_own_documents_used(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        service = build_service()
        await service.ingest_file(await _stored_file(repository, blob_storage, "doc-1"))
        await service.ingest_file(
            await _stored_file(repository, blob_storage, "other-doc", tenant_id="globex")
        )
        await repository.create_agent(make_agent(document_ids=["doc-1", "other-doc"]))

        result = await service.train_agent(
            IngestionEvent(kind=EventKind.AGENT_TRAIN, tenant_id="acme", agent_id="agent-1")
        )

        assert result.details["documents_used"] == 1
        assert await chroma_store.count("agent_acme_agent-1") == 2


# ======================================================================
# delete_document
# ======================================================================


class TestDeleteDocument:
    @pytest.mark.asyncio
    async def test_cascade_removes_vectors_blob_and_record(
        self, build_service, repository, blob_storage, chroma_store
    ) -> None:
        service = build_service()
        event = await _stored_file(repository, blob_storage, "doc-1")
        await service.ingest_file(event)
        await service.ingest_file(await _stored_file(repository, blob_storage, "doc-2"))

        removed = await service.delete_document("doc-1")

        assert removed == 2
        assert await chroma_store.count("tenant_acme") == 2
        with pytest.raises(StorageError):
            await blob_storage.download(str(event.storage_path))
        with pytest.raises(DocumentNotFoundError):
            await repository.get_document("doc-1")

    @pytest.mark.asyncio
    async def test_unknown_document(self, build_service) -> None:
        with pytest.raises(DocumentNotFoundError):
            await build_service().delete_document("nope")
