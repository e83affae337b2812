"""Chat request/response models used between the API layer and ChatService.

Sessions and their messages are persisted so a ``session_id`` handed back
to a client can later be replayed as history.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class ChatRequest(BaseModel):
    """A user question addressed to one agent."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(..., min_length=1)
    agent_id: str
    session_id: str | None = None
    user_ip: str = "unknown"
    user_agent: str = "unknown"


class ChatResponse(BaseModel):
    """The agent's answer plus the session it belongs to."""

    model_config = ConfigDict(frozen=True)

    answer: str
    session_id: str
    timestamp: datetime = Field(default_factory=_utc_now)


class MessageRole(str, Enum):  # noqa: UP042
    USER = "user"
    ASSISTANT = "assistant"


class ChatSession(BaseModel):
    """One conversation between a client and an agent."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    agent_id: str
    user_ip: str = "unknown"
    user_agent: str = "unknown"
    created_at: datetime = Field(default_factory=_utc_now)


class ChatMessage(BaseModel):
    """A single turn stored under a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    agent_id: str
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=_utc_now)
