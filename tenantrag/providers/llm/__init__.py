"""Generative model provider adapters.

Two concrete implementations of ILLMProvider (tenantrag/interfaces/llm_provider.py):
    - OpenAILLMProvider    - gpt-4o-mini (also any OpenAI-compatible API)
    - AnthropicLLMProvider - Claude via the Messages API

At startup, main.py picks the first provider whose API key is configured.
"""

from tenantrag.providers.llm.anthropic_provider import AnthropicLLMProvider
from tenantrag.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider", "AnthropicLLMProvider"]
