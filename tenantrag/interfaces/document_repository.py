"""Abstract base class for the minimal relational persistence the pipeline needs.

Covers document status / namespace pointers, agent configuration, API key
lookup, and chat session history.  Full tenant and user administration lives elsewhere.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tenantrag.models.chat import ChatMessage, ChatSession
from tenantrag.models.document import Agent, ApiKey, Document
from tenantrag.models.job import JobState


# Concrete implementation: SQLiteDocumentRepository (tenantrag/providers/repository/)
class IDocumentRepository(ABC):
    """Contract for document, agent, API-key and chat-history persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    # -- Documents -------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new document record and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document:
        """Return one document.

        Raises
        ------
        tenantrag.utils.errors.DocumentNotFoundError
            If no such document exists.
        """

    @abstractmethod
    async def list_documents(self, document_ids: list[str]) -> list[Document]:
        """Return the documents among *document_ids* that exist."""

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: JobState,
        namespace: str | None = None,
    ) -> None:
        """Persist a status transition (and the namespace pointer, when given)."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a document record and its agent associations."""

    # -- Agents ----------------------------------------------------------

    @abstractmethod
    async def create_agent(self, agent: Agent) -> Agent:
        """Insert an agent and its document associations."""

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Agent:
        """Return one agent (raises DocumentNotFoundError when missing)."""

    @abstractmethod
    async def update_agent(
        self,
        agent_id: str,
        status: JobState | None = None,
        namespace: str | None = None,
    ) -> None:
        """Persist agent training status and namespace pointer."""

    # -- API keys --------------------------------------------------------

    @abstractmethod
    async def create_api_key(self, agent_id: str, raw_key: str) -> ApiKey:
        """Store a hashed API key for *agent_id*."""

    @abstractmethod
    async def resolve_api_key(self, raw_key: str) -> str | None:
        """Return the agent id for an active key and stamp ``last_used_at``.

        Returns ``None`` for unknown or inactive keys.
        """

    # -- Chat history ----------------------------------------------------

    @abstractmethod
    async def create_chat_session(self, session: ChatSession) -> ChatSession:
        """Insert a new chat session."""

    @abstractmethod
    async def add_chat_message(self, message: ChatMessage) -> None:
        """Append one turn to a session."""

    @abstractmethod
    async def list_chat_messages(self, session_id: str, agent_id: str) -> list[ChatMessage]:
        """Return the session's messages for *agent_id*, oldest first."""
