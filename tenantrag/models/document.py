"""Document and agent records read and written by the ingestion pipeline.

Only the fields the pipeline needs live here: status, namespace pointer,
storage pointer, and the minimal agent configuration used at chat time.
Everything else about tenants and users is owned by external systems.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from tenantrag.models.job import JobState


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def tenant_namespace(tenant_id: str) -> str:
    """Namespace holding every document vector of one tenant."""
    return f"tenant_{tenant_id}"


def agent_namespace(tenant_id: str, agent_id: str) -> str:
    """Namespace holding the trained vectors of one chat agent."""
    return f"agent_{tenant_id}_{agent_id}"


class SourceKind(str, Enum):  # noqa: UP042
    """Where a document's text comes from."""

    PDF = "pdf"
    DOCX = "docx"
    XLSX = "xlsx"
    CSV = "csv"
    TXT = "txt"
    JSON = "json"
    URL = "url"
    QA = "qa"


class Document(BaseModel):
    """One ingested unit: an uploaded file, a scraped page, or a Q&A pair."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    tenant_id: str
    name: str
    source_kind: SourceKind
    size: int = Field(default=0, ge=0, description="Size in bytes of the raw upload or content.")
    status: JobState = JobState.QUEUED
    storage_path: str | None = Field(default=None, description="Blob path for uploaded files.")
    content: str | None = Field(default=None, description="Raw text for URL / Q&A documents.")
    source_url: str | None = None
    namespace: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Personality(str, Enum):  # noqa: UP042
    """Persona presets for chat agents."""

    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    TECHNICAL = "technical"
    FORMAL = "formal"


class Agent(BaseModel):
    """A configured chat persona answering from its tenant's documents."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    tenant_id: str
    name: str
    description: str | None = None
    personality: str = Personality.PROFESSIONAL.value
    namespace: str | None = None
    status: JobState = JobState.QUEUED
    document_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ApiKey(BaseModel):
    """A bearer key granting public chat access to one agent."""

    model_config = ConfigDict(frozen=True)

    key_hash: str
    agent_id: str
    is_active: bool = True
    last_used_at: datetime | None = None
