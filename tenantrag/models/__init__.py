"""tenantrag domain models - re-exports all public model classes.

Submodules by concern:
    - chat.py      - chat request / response, sessions, stored messages
    - document.py  - documents, agents, API keys, namespace naming
    - job.py       - ingestion state machine, events, run results
    - rag.py       - chunks, vector records, matches, upload reports
"""

from __future__ import annotations

from tenantrag.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatSession,
    MessageRole,
)
from tenantrag.models.document import (
    Agent,
    ApiKey,
    Document,
    Personality,
    SourceKind,
    agent_namespace,
    tenant_namespace,
)
from tenantrag.models.job import (
    EventKind,
    FailedEvent,
    IngestionEvent,
    IngestionResult,
    JobState,
    StateTransition,
)
from tenantrag.models.rag import (
    Chunk,
    FailedChunk,
    UploadReport,
    VectorMatch,
    VectorRecord,
)

__all__ = [
    "Agent",
    "ApiKey",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatSession",
    "Chunk",
    "Document",
    "EventKind",
    "FailedChunk",
    "FailedEvent",
    "IngestionEvent",
    "IngestionResult",
    "JobState",
    "MessageRole",
    "Personality",
    "SourceKind",
    "StateTransition",
    "UploadReport",
    "VectorMatch",
    "VectorRecord",
    "agent_namespace",
    "tenant_namespace",
]
