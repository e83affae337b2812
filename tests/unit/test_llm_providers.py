"""Unit tests for the OpenAI and Anthropic LLM provider adapters.

The SDK clients are replaced with mocks passed through the ``client``
argument; no request leaves the process.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from tenantrag.providers.llm.anthropic_provider import AnthropicLLMProvider
from tenantrag.providers.llm.openai_provider import OpenAILLMProvider
from tenantrag.utils.errors import GenerationError, GenerationReason
from tests.conftest import make_settings


def _http_response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


# ======================================================================
# OpenAI
# ======================================================================


def _openai_completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture()
def openai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_openai_completion("Hello."))
    return client


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_sends_system_and_user_messages(self, openai_client) -> None:
        provider = OpenAILLMProvider(make_settings(openai_api_key="sk-test"), client=openai_client)
        answer = await provider.complete("SYSTEM", "USER", temperature=0.3, max_tokens=1024)

        assert answer == "Hello."
        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "SYSTEM"},
            {"role": "user", "content": "USER"},
        ]
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_model_override(self, openai_client) -> None:
        settings = make_settings(openai_api_key="sk-test", openai_text_model="gpt-4o")
        await OpenAILLMProvider(settings, client=openai_client).complete("s", "u")
        assert openai_client.chat.completions.create.await_args.kwargs["model"] == "gpt-4o"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_output(self, openai_client, content) -> None:
        openai_client.chat.completions.create.return_value = _openai_completion(content)
        provider = OpenAILLMProvider(make_settings(openai_api_key="sk-test"), client=openai_client)

        with pytest.raises(GenerationError) as exc_info:
            await provider.complete("s", "u")
        assert exc_info.value.reason is GenerationReason.EMPTY_GENERATION

    @pytest.mark.asyncio
    async def test_rate_limit_maps_to_reason(self, openai_client) -> None:
        openai_client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down",
            response=_http_response(429, "https://api.openai.com/v1/chat/completions"),
            body=None,
        )
        provider = OpenAILLMProvider(make_settings(openai_api_key="sk-test"), client=openai_client)

        with pytest.raises(GenerationError) as exc_info:
            await provider.complete("s", "u")
        assert exc_info.value.reason is GenerationReason.RATE_LIMITED
        assert exc_info.value.provider_name == "openai"

    def test_provider_label(self, openai_client) -> None:
        plain = OpenAILLMProvider(make_settings(openai_api_key="sk"), client=openai_client)
        compatible = OpenAILLMProvider(
            make_settings(openai_api_key="sk", openai_base_url="https://api.together.xyz/v1"),
            client=openai_client,
        )
        assert plain.get_provider_name() == "openai"
        assert compatible.get_provider_name() == "openai-compatible"

    def test_availability_follows_key(self, openai_client) -> None:
        assert OpenAILLMProvider(make_settings(openai_api_key="sk"), client=openai_client).is_available()
        assert not OpenAILLMProvider(make_settings(), client=openai_client).is_available()


# ======================================================================
# Anthropic
# ======================================================================


def _anthropic_message(*blocks: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


@pytest.fixture()
def anthropic_client() -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=_anthropic_message(SimpleNamespace(type="text", text="Hi there."))
    )
    return client


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_system_prompt_is_top_level(self, anthropic_client) -> None:
        provider = AnthropicLLMProvider(
            make_settings(anthropic_api_key="sk-ant"), client=anthropic_client
        )
        answer = await provider.complete("SYSTEM", "USER", temperature=0.3, max_tokens=256)

        assert answer == "Hi there."
        kwargs = anthropic_client.messages.create.await_args.kwargs
        assert kwargs["system"] == "SYSTEM"
        assert kwargs["messages"] == [{"role": "user", "content": "USER"}]
        assert kwargs["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_only_text_blocks_kept(self, anthropic_client) -> None:
        anthropic_client.messages.create.return_value = _anthropic_message(
            SimpleNamespace(type="text", text="Part one."),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text="Part two."),
        )
        provider = AnthropicLLMProvider(
            make_settings(anthropic_api_key="sk-ant"), client=anthropic_client
        )
        assert await provider.complete("s", "u") == "Part one.\nPart two."

    @pytest.mark.asyncio
    async def test_empty_output(self, anthropic_client) -> None:
        anthropic_client.messages.create.return_value = _anthropic_message()
        provider = AnthropicLLMProvider(
            make_settings(anthropic_api_key="sk-ant"), client=anthropic_client
        )
        with pytest.raises(GenerationError) as exc_info:
            await provider.complete("s", "u")
        assert exc_info.value.reason is GenerationReason.EMPTY_GENERATION

    @pytest.mark.asyncio
    async def test_bad_key_maps_to_unauthorized(self, anthropic_client) -> None:
        anthropic_client.messages.create.side_effect = anthropic.AuthenticationError(
            "invalid x-api-key",
            response=_http_response(401, "https://api.anthropic.com/v1/messages"),
            body=None,
        )
        provider = AnthropicLLMProvider(
            make_settings(anthropic_api_key="sk-ant"), client=anthropic_client
        )
        with pytest.raises(GenerationError) as exc_info:
            await provider.complete("s", "u")
        assert exc_info.value.reason is GenerationReason.UNAUTHORIZED
        assert exc_info.value.provider_name == "anthropic"
