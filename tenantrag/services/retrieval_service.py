"""Query-time retrieval: embed a question, search a namespace, build context.

The context string handed to the generative model is the stored chunk
text of every match, best match first, separated by blank lines.  When
the namespace holds nothing relevant the model still receives a fixed
placeholder so it can fall back to its refusal phrases.
"""

from __future__ import annotations

import structlog

from tenantrag.interfaces.embedding_provider import IEmbeddingProvider
from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider
from tenantrag.models.rag import VectorMatch
from tenantrag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

NO_CONTEXT_FALLBACK = "No specific context found for this query."
DEFAULT_TOP_K = 40


class RetrievalService:
    """Embeds a query and assembles context from the nearest chunks."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._top_k = top_k

    async def search(
        self,
        query: str,
        namespace: str | None,
        top_k: int | None = None,
    ) -> list[VectorMatch]:
        """Return the ranked matches for *query* in *namespace*.

        Raises
        ------
        ConfigurationError
            If *namespace* is missing.
        EmbeddingError
            If the query cannot be embedded (fatal at query time).
        """
        if not namespace:
            raise ConfigurationError(message="Namespace is required for retrieval")

        vector = await self._embedding_provider.embed_single(query)
        matches = await self._vector_store.query(
            namespace, vector, top_k=top_k or self._top_k
        )
        logger.info(
            "retrieval_complete",
            namespace=namespace,
            matches=len(matches),
            top_score=round(matches[0].score, 4) if matches else None,
        )
        return matches

    async def retrieve(
        self,
        query: str,
        namespace: str | None,
        top_k: int | None = None,
    ) -> str:
        """Return the context string for *query* in *namespace*."""
        matches = await self.search(query, namespace, top_k)
        return build_context(matches)


def build_context(matches: list[VectorMatch]) -> str:
    """Join the non-empty texts of *matches* with blank lines."""
    texts = [m.text for m in matches if m.text.strip()]
    if not texts:
        return NO_CONTEXT_FALLBACK
    return "\n\n".join(texts)
