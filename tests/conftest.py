"""Shared pytest fixtures for the tenantrag test suite."""

from __future__ import annotations

import hashlib
import struct
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import chromadb
import pytest

from tenantrag.config.settings import Settings
from tenantrag.interfaces.embedding_provider import IEmbeddingProvider
from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.models.document import Agent, Document, SourceKind
from tenantrag.models.job import JobState
from tenantrag.providers.repository.sqlite_repository import SQLiteDocumentRepository
from tenantrag.providers.storage.local_blob_storage import LocalBlobStorage
from tenantrag.providers.vector_store.chromadb_provider import ChromaDBProvider

TEST_DIMENSION = 384


def make_settings(**overrides: Any) -> Settings:
    """Build Settings with blank credentials so nothing reaches the network."""
    defaults: dict[str, Any] = {
        "huggingface_api_key": "",
        "openai_api_key": "",
        "openai_base_url": "",
        "openai_text_model": "",
        "anthropic_api_key": "",
        "blob_storage_backend": "local",
        "s3_bucket": "",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


def deterministic_vector(text: str, dimension: int = TEST_DIMENSION) -> list[float]:
    """Return a stable pseudo-embedding derived from the SHA-256 of *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    values: list[float] = []
    counter = 0
    while len(values) < dimension:
        block = hashlib.sha256(digest + struct.pack(">I", counter)).digest()
        values.extend((b - 127.5) / 127.5 for b in block)
        counter += 1
    return values[:dimension]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """In-memory embedding provider producing deterministic vectors.

    Texts listed in ``fail_on`` raise the configured error instead.
    """

    def __init__(self, fail_on: set[str] | None = None, error: Exception | None = None) -> None:
        self.calls: list[str] = []
        self._fail_on = fail_on or set()
        self._error = error

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self._fail_on and self._error is not None:
            raise self._error
        return deterministic_vector(text)

    def get_dimension(self) -> int:
        return TEST_DIMENSION

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def mock_llm_provider() -> MagicMock:
    mock = MagicMock(spec=ILLMProvider)
    mock.complete = AsyncMock(return_value="The refund window is 30 days.")
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def chroma_store(tmp_path: Path) -> ChromaDBProvider:
    """A ChromaDB provider persisted under a per-test temporary directory."""
    client = chromadb.PersistentClient(path=str(tmp_path / "chroma"))
    return ChromaDBProvider(
        persist_directory=str(tmp_path / "chroma"),
        index_name="test-index",
        dimension=TEST_DIMENSION,
        client=client,
    )


@pytest.fixture
def blob_storage(tmp_path: Path) -> LocalBlobStorage:
    return LocalBlobStorage(root=tmp_path / "blobs")


@pytest.fixture
async def repository(tmp_path: Path) -> SQLiteDocumentRepository:
    """A SQLite repository in a temporary database, tables created."""
    repo = SQLiteDocumentRepository(db_path=tmp_path / "tenantrag.db")
    await repo.initialize()
    return repo


def make_document(
    document_id: str = "doc-1",
    tenant_id: str = "acme",
    source_kind: SourceKind = SourceKind.TXT,
    status: JobState = JobState.QUEUED,
    **kwargs: Any,
) -> Document:
    return Document(
        document_id=document_id,
        tenant_id=tenant_id,
        name=kwargs.pop("name", f"{document_id}.{source_kind.value}"),
        source_kind=source_kind,
        status=status,
        **kwargs,
    )


def make_agent(
    agent_id: str = "agent-1",
    tenant_id: str = "acme",
    document_ids: list[str] | None = None,
    **kwargs: Any,
) -> Agent:
    return Agent(
        agent_id=agent_id,
        tenant_id=tenant_id,
        name=kwargs.pop("name", "Support Bot"),
        document_ids=document_ids or [],
        **kwargs,
    )
