"""Ingestion job models: job states, inbound events, and run results.

An ingestion job advances a single document through a fixed state
machine.  The document's persisted ``status`` mirrors the job state at
every transition, so after the job is gone the status field is the
durable record of how far it got.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tenantrag.models.rag import FailedChunk


# ---------------------------------------------------------------------------
# JobState - the ingestion state machine.
# ---------------------------------------------------------------------------
class JobState(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """States of one ingestion job.

        QUEUED → DOWNLOADING → EXTRACTING → CHUNKING → EMBEDDING →
        UPSERTING → READY

    ERROR is reachable from every non-terminal state.
    """

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.READY, JobState.ERROR)


_ORDER = [
    JobState.QUEUED,
    JobState.DOWNLOADING,
    JobState.EXTRACTING,
    JobState.CHUNKING,
    JobState.EMBEDDING,
    JobState.UPSERTING,
    JobState.READY,
]


def can_transition(current: JobState, target: JobState) -> bool:
    """Return ``True`` if *current* → *target* is a legal forward move.

    In-memory flows skip DOWNLOADING/EXTRACTING, so any forward jump is
    allowed; backwards moves and leaving a terminal state are not.
    """
    if current.is_terminal:
        return False
    if target is JobState.ERROR:
        return True
    return _ORDER.index(target) > _ORDER.index(current)


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------
class EventKind(str, Enum):  # noqa: UP042
    """Inbound ingestion event names."""

    FILE = "file/process"
    URL = "url/process"
    QA = "qa/process"
    AGENT_TRAIN = "agent/train"

    @property
    def failed_name(self) -> str:
        """Name of the matching failure event, e.g. ``file/process.failed``."""
        return f"{self.value}.failed"


class IngestionEvent(BaseModel):
    """Typed payload for one ingestion event.

    ``document_id`` and ``tenant_id`` are always present for document
    events; agent-training events are keyed by ``agent_id`` instead.
    Kind-specific fields are optional and validated per kind.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    tenant_id: str
    document_id: str | None = None

    # file/process
    file_name: str | None = None
    file_type: str | None = None
    storage_path: str | None = None

    # url/process and qa/process
    content: str | None = None
    url: str | None = None
    question: str | None = None
    answer: str | None = None

    # agent/train
    agent_id: str | None = None
    agent_name: str | None = None
    document_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_kind_fields(self) -> IngestionEvent:
        if self.kind is EventKind.AGENT_TRAIN:
            if not self.agent_id:
                raise ValueError("agent/train events require agent_id")
            return self
        if not self.document_id:
            raise ValueError(f"{self.kind.value} events require document_id")
        if self.kind is EventKind.FILE and not (self.storage_path and self.file_type):
            raise ValueError("file/process events require storage_path and file_type")
        if self.kind in (EventKind.URL, EventKind.QA) and self.content is None:
            raise ValueError(f"{self.kind.value} events require content")
        return self

    @property
    def idempotency_key(self) -> str:
        """One job per document (or per agent for training) at a time."""
        if self.kind is EventKind.AGENT_TRAIN:
            return f"agent:{self.agent_id}"
        return f"document:{self.document_id}"


class FailedEvent(BaseModel):
    """Emitted by the job runner when an ingestion handler raises."""

    model_config = ConfigDict(frozen=True)

    source_kind: EventKind
    tenant_id: str
    document_id: str | None = None
    agent_id: str | None = None
    error: str

    @property
    def name(self) -> str:
        return self.source_kind.failed_name


# ---------------------------------------------------------------------------
# IngestionResult - what one job run produced.
# ---------------------------------------------------------------------------
class StateTransition(BaseModel):
    """One recorded state change of an ingestion job."""

    model_config = ConfigDict(frozen=True)

    state: JobState
    at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))  # noqa: UP017


class IngestionResult(BaseModel):
    """Summary of one ingestion job run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    namespace: str | None = None
    state: JobState
    chunks_created: int = Field(default=0, ge=0)
    vectors_uploaded: int = Field(default=0, ge=0)
    failed_chunks: list[FailedChunk] = Field(default_factory=list)
    history: list[StateTransition] = Field(default_factory=list)
    error: str | None = None
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def states(self) -> list[JobState]:
        return [t.state for t in self.history]
