"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.
Unlike the OpenAI adapter, the system prompt is a top-level parameter of
the Messages API, and the response is a list of content blocks from
which only the text blocks are kept.
"""

from __future__ import annotations

import anthropic
import structlog

from tenantrag.config.settings import Settings
from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.utils.errors import GenerationError, GenerationReason

logger = structlog.get_logger(logger_name=__name__)


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude Messages API."""

    def __init__(
        self,
        settings: Settings,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = settings.anthropic_api_key
        self._client = client or anthropic.AsyncAnthropic(
            api_key=self._api_key or "missing",
            timeout=settings.chat_timeout_seconds,
            max_retries=0,
        )
        self._model = settings.anthropic_model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a completion via the Anthropic Messages API."""
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
        except anthropic.AuthenticationError as exc:
            raise GenerationError(
                message="Anthropic rejected the API key",
                reason=GenerationReason.UNAUTHORIZED,
                provider_name=self.get_provider_name(),
            ) from exc
        except anthropic.RateLimitError as exc:
            raise GenerationError(
                message="Anthropic rate limit exceeded",
                reason=GenerationReason.RATE_LIMITED,
                provider_name=self.get_provider_name(),
            ) from exc
        except anthropic.APIError as exc:
            raise GenerationError(
                message=f"Anthropic API error: {exc}",
                reason=GenerationReason.PROVIDER_ERROR,
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        result = "\n".join(text_blocks)
        if not result.strip():
            raise GenerationError(
                message="No response generated",
                reason=GenerationReason.EMPTY_GENERATION,
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return result

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        return bool(self._api_key)
