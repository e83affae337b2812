"""Abstract base class for generative model providers.

Defines the single-turn completion contract used by the response composer.
Implementations may wrap OpenAI (or any OpenAI-compatible endpoint) or
Anthropic; call sites never import a vendor SDK directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider
# Located in: tenantrag/providers/llm/
class ILLMProvider(ABC):
    """Contract for generative models used to answer chat questions."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a single-turn text completion.

        Parameters
        ----------
        system_prompt:
            The persona and directives block.
        user_prompt:
            Retrieved context plus the user's question.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response (never empty).

        Raises
        ------
        tenantrag.utils.errors.GenerationError
            ``EMPTY_GENERATION`` when no text came back; ``UNAUTHORIZED``
            / ``RATE_LIMITED`` for the matching provider responses;
            ``PROVIDER_ERROR`` for anything else.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
