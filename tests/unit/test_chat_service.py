"""Unit tests for ChatService.

The repository is a real SQLite database; retrieval and generation are
mocked so each failure path can be triggered directly.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tenantrag.models.chat import ChatRequest, MessageRole
from tenantrag.models.job import JobState
from tenantrag.providers.repository.sqlite_repository import SQLiteDocumentRepository
from tenantrag.services.chat_service import (
    GENERATION_FAILED,
    NOT_CONFIGURED,
    SEARCH_FAILED,
    ChatService,
)
from tenantrag.services.response_composer import ResponseComposer
from tenantrag.services.retrieval_service import RetrievalService
from tenantrag.utils.errors import (
    ChatError,
    DocumentNotFoundError,
    EmbeddingError,
    GenerationError,
    InvalidApiKeyError,
)
from tests.conftest import make_agent

_NAMESPACE = "agent_acme_agent-1"


@pytest.fixture()
def retrieval() -> MagicMock:
    mock = MagicMock(spec=RetrievalService)
    mock.retrieve = AsyncMock(return_value="Refunds are accepted within 30 days.")
    return mock


@pytest.fixture()
def composer() -> MagicMock:
    mock = MagicMock(spec=ResponseComposer)
    mock.generate = AsyncMock(return_value="You can get a refund within 30 days.")
    return mock


@pytest.fixture()
async def trained_repository(repository: SQLiteDocumentRepository) -> SQLiteDocumentRepository:
    await repository.create_agent(
        make_agent(
            personality="friendly",
            description="Billing helper",
            namespace=_NAMESPACE,
            status=JobState.READY,
        )
    )
    return repository


def _service(repository, retrieval, composer, timeout: float = 30.0) -> ChatService:
    return ChatService(repository, retrieval, composer, timeout=timeout, top_k=40)


# ======================================================================
# answer
# ======================================================================


class TestAnswer:
    @pytest.mark.asyncio
    async def test_success(self, trained_repository, retrieval, composer) -> None:
        service = _service(trained_repository, retrieval, composer)
        response = await service.answer(
            ChatRequest(question="Refunds?", agent_id="agent-1", session_id="s-1")
        )

        assert response.answer == "You can get a refund within 30 days."
        assert response.session_id == "s-1"
        retrieval.retrieve.assert_awaited_once_with("Refunds?", _NAMESPACE, 40)
        composer.generate.assert_awaited_once_with(
            question="Refunds?",
            context="Refunds are accepted within 30 days.",
            personality="friendly",
            agent_name="Support Bot",
            agent_description="Billing helper",
        )

    @pytest.mark.asyncio
    async def test_new_session_id_when_missing(self, trained_repository, retrieval, composer) -> None:
        service = _service(trained_repository, retrieval, composer)
        first = await service.answer(ChatRequest(question="q", agent_id="agent-1"))
        second = await service.answer(ChatRequest(question="q", agent_id="agent-1"))

        assert first.session_id
        assert first.session_id != second.session_id

    @pytest.mark.asyncio
    async def test_missing_agent_propagates(self, repository, retrieval, composer) -> None:
        with pytest.raises(DocumentNotFoundError):
            await _service(repository, retrieval, composer).answer(
                ChatRequest(question="q", agent_id="ghost")
            )

    @pytest.mark.asyncio
    async def test_untrained_agent(self, repository, retrieval, composer) -> None:
        await repository.create_agent(make_agent())
        with pytest.raises(ChatError, match=NOT_CONFIGURED):
            await _service(repository, retrieval, composer).answer(
                ChatRequest(question="q", agent_id="agent-1")
            )
        retrieval.retrieve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retrieval_failure_is_generic(self, trained_repository, retrieval, composer) -> None:
        retrieval.retrieve.side_effect = EmbeddingError(message="HF token rejected: hf_abc")

        with pytest.raises(ChatError) as exc_info:
            await _service(trained_repository, retrieval, composer).answer(
                ChatRequest(question="q", agent_id="agent-1")
            )

        assert str(exc_info.value) == SEARCH_FAILED
        assert "hf_abc" not in str(exc_info.value)
        composer.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generation_failure_is_generic(self, trained_repository, retrieval, composer) -> None:
        composer.generate.side_effect = GenerationError(message="upstream 500")

        with pytest.raises(ChatError) as exc_info:
            await _service(trained_repository, retrieval, composer).answer(
                ChatRequest(question="q", agent_id="agent-1")
            )
        assert str(exc_info.value) == GENERATION_FAILED

    @pytest.mark.asyncio
    async def test_retrieval_timeout(self, trained_repository, retrieval, composer) -> None:
        async def slow_retrieve(*_args) -> str:
            await asyncio.sleep(1.0)
            return "late"

        retrieval.retrieve.side_effect = slow_retrieve

        with pytest.raises(ChatError, match=SEARCH_FAILED):
            await _service(trained_repository, retrieval, composer, timeout=0.05).answer(
                ChatRequest(question="q", agent_id="agent-1")
            )


# ======================================================================
# answer_public
# ======================================================================


class TestAnswerPublic:
    @pytest.mark.asyncio
    async def test_valid_key(self, trained_repository, retrieval, composer) -> None:
        await trained_repository.create_api_key("agent-1", "sk_widget")
        response = await _service(trained_repository, retrieval, composer).answer_public(
            "sk_widget", ChatRequest(question="q", agent_id="agent-1")
        )
        assert response.answer.startswith("You can get a refund")

    @pytest.mark.asyncio
    async def test_missing_key(self, trained_repository, retrieval, composer) -> None:
        with pytest.raises(InvalidApiKeyError, match="required"):
            await _service(trained_repository, retrieval, composer).answer_public(
                None, ChatRequest(question="q", agent_id="agent-1")
            )

    @pytest.mark.asyncio
    async def test_unknown_key(self, trained_repository, retrieval, composer) -> None:
        with pytest.raises(InvalidApiKeyError):
            await _service(trained_repository, retrieval, composer).answer_public(
                "sk_nope", ChatRequest(question="q", agent_id="agent-1")
            )
        retrieval.retrieve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_key_for_other_agent(self, trained_repository, retrieval, composer) -> None:
        await trained_repository.create_api_key("agent-2", "sk_other")
        with pytest.raises(InvalidApiKeyError, match="does not grant access"):
            await _service(trained_repository, retrieval, composer).answer_public(
                "sk_other", ChatRequest(question="q", agent_id="agent-1")
            )


# ======================================================================
# history
# ======================================================================


class TestHistory:
    @pytest.mark.asyncio
    async def test_turns_are_recorded_under_session(
        self, trained_repository, retrieval, composer
    ) -> None:
        service = _service(trained_repository, retrieval, composer)

        first = await service.answer(
            ChatRequest(question="Refunds?", agent_id="agent-1", user_ip="10.0.0.7")
        )
        await service.answer(
            ChatRequest(question="And exchanges?", agent_id="agent-1", session_id=first.session_id)
        )

        messages = await service.history(first.session_id, "agent-1")
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Refunds?"),
            (MessageRole.ASSISTANT, "You can get a refund within 30 days."),
            (MessageRole.USER, "And exchanges?"),
            (MessageRole.ASSISTANT, "You can get a refund within 30 days."),
        ]

    @pytest.mark.asyncio
    async def test_failed_answer_keeps_user_turn_only(
        self, trained_repository, retrieval, composer
    ) -> None:
        composer.generate.side_effect = GenerationError(message="upstream 500")
        service = _service(trained_repository, retrieval, composer)

        with pytest.raises(ChatError):
            await service.answer(ChatRequest(question="q", agent_id="agent-1", session_id="s-1"))

        messages = await service.history("s-1", "agent-1")
        assert [m.role for m in messages] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_history_scoped_to_agent(self, trained_repository, retrieval, composer) -> None:
        await trained_repository.create_agent(make_agent("agent-2"))
        service = _service(trained_repository, retrieval, composer)
        response = await service.answer(ChatRequest(question="q", agent_id="agent-1"))

        assert await service.history(response.session_id, "agent-2") == []

    @pytest.mark.asyncio
    async def test_history_for_missing_agent(self, trained_repository, retrieval, composer) -> None:
        with pytest.raises(DocumentNotFoundError):
            await _service(trained_repository, retrieval, composer).history("s-1", "ghost")

    @pytest.mark.asyncio
    async def test_store_failure_does_not_block_answer(
        self, trained_repository, retrieval, composer
    ) -> None:
        trained_repository.add_chat_message = AsyncMock(side_effect=RuntimeError("disk full"))
        trained_repository.create_chat_session = AsyncMock(side_effect=RuntimeError("disk full"))

        response = await _service(trained_repository, retrieval, composer).answer(
            ChatRequest(question="q", agent_id="agent-1")
        )

        assert response.answer == "You can get a refund within 30 days."
        assert trained_repository.add_chat_message.await_count == 2

    @pytest.mark.asyncio
    async def test_public_history_requires_matching_key(
        self, trained_repository, retrieval, composer
    ) -> None:
        await trained_repository.create_api_key("agent-1", "sk_widget")
        service = _service(trained_repository, retrieval, composer)
        response = await service.answer(ChatRequest(question="q", agent_id="agent-1"))

        messages = await service.history_public("sk_widget", response.session_id, "agent-1")
        assert len(messages) == 2
        with pytest.raises(InvalidApiKeyError):
            await service.history_public("sk_nope", response.session_id, "agent-1")
