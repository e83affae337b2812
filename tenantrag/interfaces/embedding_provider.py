"""Abstract base class for text-embedding service providers.

Defines the contract for turning one piece of text into an embedding
vector.  Provider-specific HTTP failures are normalized into
:class:`~tenantrag.utils.errors.EmbeddingError` reason codes so the
ingestion pipeline can tolerate them per chunk and the retrieval path can
fail fast on them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation:
#   HuggingFaceEmbeddingProvider - sentence-transformers/all-MiniLM-L6-v2
#   over the Hugging Face Inference API (384 dimensions).
# Located in: tenantrag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline.

    No retry happens inside a provider.  Bulk ingestion records a failed
    chunk and moves on; retrieval treats a failure as fatal.
    """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            Non-empty text.  Callers truncate chunks to 2000 characters
            before calling.

        Returns
        -------
        list[float]
            The embedding vector with length equal to :meth:`get_dimension`.

        Raises
        ------
        tenantrag.utils.errors.EmbeddingError
            With one of the :class:`EmbeddingReason` codes.
        tenantrag.utils.errors.ConfigurationError
            If credentials are missing (raised before any network call).
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors (e.g. ``384``)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
