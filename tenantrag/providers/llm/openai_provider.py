"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When ``OPENAI_BASE_URL`` is set (TogetherAI, Groq, Fireworks, a local
vLLM server, ...) the same adapter talks to that endpoint instead.
"""

from __future__ import annotations

import openai
import structlog

from tenantrag.config.settings import Settings
from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.utils.errors import GenerationError, GenerationReason

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` unless ``OPENAI_TEXT_MODEL`` overrides it.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {
            "api_key": self._api_key or "missing",
            "timeout": openai.Timeout(settings.chat_timeout_seconds, connect=5.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = client or openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a completion via the chat completions API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.AuthenticationError as exc:
            raise GenerationError(
                message=f"{self._provider_label} rejected the API key",
                reason=GenerationReason.UNAUTHORIZED,
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.RateLimitError as exc:
            raise GenerationError(
                message=f"{self._provider_label} rate limit exceeded",
                reason=GenerationReason.RATE_LIMITED,
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} timed out",
                reason=GenerationReason.PROVIDER_ERROR,
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                reason=GenerationReason.PROVIDER_ERROR,
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise GenerationError(
                message="No response generated",
                reason=GenerationReason.EMPTY_GENERATION,
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "openai_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)
