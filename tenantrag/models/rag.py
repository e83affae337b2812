"""RAG data models: chunks, vector records, query matches, and upload reports.

All models use frozen config; the pipeline builds new instances instead of
mutating them.

Flow of data through these models:

    extracted text ──TextChunker──▶ Chunk
    Chunk ──embed + truncate──▶ VectorRecord ──VectorUploader──▶ vector store
    vector store ──query──▶ VectorMatch ──RetrievalService──▶ context string
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Chunk text stored in vector metadata is cut to this many characters.
METADATA_TEXT_LIMIT = 2000


class Chunk(BaseModel):
    """A bounded slice of a document's extracted text.

    Ephemeral: produced and consumed within one ingestion run.  Only its
    embedded form (:class:`VectorRecord`) persists.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description='Chunk identifier, e.g. "chunk_0" or "qa_chunk_0".')
    index: int = Field(ge=0, description="Zero-based position within the document.")
    text: str
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured extras, e.g. {type: qa_pair, question, answer}.",
    )


class VectorRecord(BaseModel):
    """The unit stored in the vector store.

    ``record_id`` is content-addressed (``{documentId}_{chunkId}``) so a
    re-ingested document overwrites its own vectors instead of adding
    duplicates.
    """

    model_config = ConfigDict(frozen=True)

    record_id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def document_id(self) -> str | None:
        return self.metadata.get("documentId")

    @property
    def text(self) -> str:
        return str(self.metadata.get("text", ""))

    @classmethod
    def from_chunk(
        cls,
        document_id: str,
        chunk: Chunk,
        values: list[float],
    ) -> VectorRecord:
        """Build the stored record for *chunk* of *document_id*."""
        limited_text = chunk.text[:METADATA_TEXT_LIMIT]
        metadata: dict[str, Any] = {
            "documentId": document_id,
            "chunkId": chunk.chunk_id,
            "text": limited_text,
            "originalLength": len(chunk.text),
            **chunk.metadata,
        }
        return cls(
            record_id=f"{document_id}_{chunk.chunk_id}",
            values=values,
            metadata=metadata,
        )


class VectorMatch(BaseModel):
    """One similarity-search hit."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    values: list[float] | None = None

    @property
    def text(self) -> str:
        return str(self.metadata.get("text") or "")


class FailedChunk(BaseModel):
    """A chunk that could not be turned into a vector."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    reason: str


class UploadReport(BaseModel):
    """Outcome of embedding a document's chunks and uploading the vectors.

    Carries both the success count and the per-chunk failure reasons so a
    partially failed run is still reported in full.
    """

    model_config = ConfigDict(frozen=True)

    namespace: str
    uploaded: int = Field(default=0, ge=0)
    batches: int = Field(default=0, ge=0)
    failed_chunks: list[FailedChunk] = Field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed_chunks)
