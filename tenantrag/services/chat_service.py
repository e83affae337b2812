"""Answers chat questions for an agent from its trained namespace.

Flow per request: load agent -> open or continue the session -> record the
user turn -> check namespace -> retrieve context -> compose prompt ->
generate -> record the assistant turn.  Retrieval and generation each run
under ``chat_timeout_seconds`` with no retry at this layer.

Provider failures never reach the caller verbatim: they are logged with
full detail and replaced by one of the generic messages below.  History
writes are best effort; a failed write is logged and the answer is still
returned.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import structlog

from tenantrag.interfaces.document_repository import IDocumentRepository
from tenantrag.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatSession,
    MessageRole,
)
from tenantrag.services.response_composer import ResponseComposer
from tenantrag.services.retrieval_service import RetrievalService
from tenantrag.utils.errors import ChatError, InvalidApiKeyError

logger = structlog.get_logger(logger_name=__name__)

SEARCH_FAILED = "Failed to search knowledge base"
GENERATION_FAILED = "Failed to generate response"
NOT_CONFIGURED = "Chatbot is not properly configured"


class ChatService:
    """Retrieval-augmented question answering for configured agents."""

    def __init__(
        self,
        repository: IDocumentRepository,
        retrieval: RetrievalService,
        composer: ResponseComposer,
        timeout: float = 30.0,
        top_k: int = 40,
    ) -> None:
        self._repository = repository
        self._retrieval = retrieval
        self._composer = composer
        self._timeout = timeout
        self._top_k = top_k

    async def answer(self, request: ChatRequest) -> ChatResponse:
        """Answer *request* as the agent it names.

        A request without ``session_id`` opens a new session; either way
        the question and the answer are stored under the session.

        Raises
        ------
        DocumentNotFoundError
            The agent does not exist.
        ChatError
            Any later failure, carrying a generic message only.
        """
        agent = await self._repository.get_agent(request.agent_id)
        session_id = request.session_id or await self._start_session(request)
        await self._record(session_id, agent.agent_id, MessageRole.USER, request.question)

        if not agent.namespace:
            logger.error("chat_agent_without_namespace", agent_id=agent.agent_id)
            raise ChatError(message=NOT_CONFIGURED)

        try:
            context = await asyncio.wait_for(
                self._retrieval.retrieve(request.question, agent.namespace, self._top_k),
                timeout=self._timeout,
            )
        except Exception as exc:
            logger.error(
                "chat_retrieval_failed",
                agent_id=agent.agent_id,
                namespace=agent.namespace,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise ChatError(message=SEARCH_FAILED) from exc

        try:
            answer = await asyncio.wait_for(
                self._composer.generate(
                    question=request.question,
                    context=context,
                    personality=agent.personality,
                    agent_name=agent.name,
                    agent_description=agent.description,
                ),
                timeout=self._timeout,
            )
        except Exception as exc:
            logger.error(
                "chat_generation_failed",
                agent_id=agent.agent_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise ChatError(message=GENERATION_FAILED) from exc

        await self._record(session_id, agent.agent_id, MessageRole.ASSISTANT, answer)
        logger.info(
            "chat_answered",
            agent_id=agent.agent_id,
            session_id=session_id,
            answer_chars=len(answer),
        )
        return ChatResponse(
            answer=answer,
            session_id=session_id,
            timestamp=datetime.now(tz=timezone.utc),  # noqa: UP017
        )

    async def answer_public(self, api_key: str | None, request: ChatRequest) -> ChatResponse:
        """Answer a public (widget) request authenticated by a bearer API key.

        The key must resolve to an active key for the agent named in the
        request.
        """
        await self._authorize(api_key, request.agent_id)
        return await self.answer(request)

    async def history(self, session_id: str, agent_id: str) -> list[ChatMessage]:
        """Return the stored turns of *session_id* with *agent_id*, oldest first.

        Raises ``DocumentNotFoundError`` when the agent does not exist.
        """
        await self._repository.get_agent(agent_id)
        return await self._repository.list_chat_messages(session_id, agent_id)

    async def history_public(
        self, api_key: str | None, session_id: str, agent_id: str
    ) -> list[ChatMessage]:
        await self._authorize(api_key, agent_id)
        return await self.history(session_id, agent_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _authorize(self, api_key: str | None, agent_id: str) -> None:
        if not api_key:
            raise InvalidApiKeyError(message="API key is required")

        key_agent_id = await self._repository.resolve_api_key(api_key)
        if key_agent_id is None:
            logger.warning("public_chat_invalid_key", agent_id=agent_id)
            raise InvalidApiKeyError()
        if key_agent_id != agent_id:
            logger.warning(
                "public_chat_key_agent_mismatch",
                requested_agent=agent_id,
                key_agent=key_agent_id,
            )
            raise InvalidApiKeyError(message="API key does not grant access to this agent")

    async def _start_session(self, request: ChatRequest) -> str:
        session_id = str(uuid.uuid4())
        try:
            await self._repository.create_chat_session(
                ChatSession(
                    session_id=session_id,
                    agent_id=request.agent_id,
                    user_ip=request.user_ip,
                    user_agent=request.user_agent,
                )
            )
        except Exception as exc:
            # Non-fatal: the conversation continues without a stored session row.
            logger.warning("chat_session_store_failed", session_id=session_id, error=str(exc)[:200])
        return session_id

    async def _record(
        self, session_id: str, agent_id: str, role: MessageRole, content: str
    ) -> None:
        try:
            await self._repository.add_chat_message(
                ChatMessage(session_id=session_id, agent_id=agent_id, role=role, content=content)
            )
        except Exception as exc:
            logger.warning(
                "chat_message_store_failed",
                session_id=session_id,
                role=role.value,
                error=str(exc)[:200],
            )
