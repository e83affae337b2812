"""Pydantic request/response schemas for the tenantrag HTTP API.

Request schemas end with "Request", response schemas with "Response".
Domain models (:class:`Document`, :class:`ChatResponse`) are not exposed
directly; the API returns these flatter views instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tenantrag.models.chat import ChatMessage
from tenantrag.models.document import Document


class DocumentResponse(BaseModel):
    """A document and its current ingestion status."""

    document_id: str
    tenant_id: str
    name: str
    source_kind: str
    size: int
    status: str
    namespace: str | None = None
    source_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            document_id=document.document_id,
            tenant_id=document.tenant_id,
            name=document.name,
            source_kind=document.source_kind.value,
            size=document.size,
            status=document.status.value,
            namespace=document.namespace,
            source_url=document.source_url,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentAcceptedResponse(BaseModel):
    """Returned when a document was stored and queued for ingestion."""

    document_id: str
    status: str
    message: str


class ScrapeUrlRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class QAPairRequest(BaseModel):
    """A question/answer pair to add to a tenant's knowledge base.

    Length limits are enforced in the route from ``config.yaml``.
    """

    tenant_id: str = Field(..., min_length=1)
    question: str
    answer: str


class DeleteDocumentResponse(BaseModel):
    document_id: str
    vectors_removed: int


class TrainAgentRequest(BaseModel):
    """Optional explicit document list; defaults to the agent's own list."""

    document_ids: list[str] = Field(default_factory=list)


class TrainAgentResponse(BaseModel):
    agent_id: str
    status: str
    message: str


class ChatRequestBody(BaseModel):
    """Chat request as sent by the dashboard or the embeddable widget."""

    question: str = Field(..., min_length=1, max_length=4000)
    agent_id: str = Field(..., min_length=1)
    session_id: str | None = None


class ChatResponseBody(BaseModel):
    answer: str
    session_id: str
    timestamp: datetime


class ChatMessageBody(BaseModel):
    role: str
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: ChatMessage) -> ChatMessageBody:
        return cls(
            role=message.role.value,
            content=message.content,
            created_at=message.created_at,
        )


class ChatHistoryResponse(BaseModel):
    """Stored turns of one session, oldest first."""

    session_id: str
    agent_id: str
    messages: list[ChatMessageBody]


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
