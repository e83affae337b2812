"""Abstract base class for namespace-partitioned vector stores.

Every operation takes a ``namespace``: queries, deletes and listings never
cross namespace boundaries.  Records are identified by content-addressed
ids (``{documentId}_{chunkId}``), so upserting the same document twice
overwrites instead of duplicating.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from tenantrag.models.rag import VectorMatch, VectorRecord


# Concrete implementation: ChromaDBProvider (tenantrag/providers/vector_store/)
# Each namespace maps to its own Chroma collection inside one persistent
# client, which keeps tenants physically separated on disk.
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the RAG pipeline.

    **Filter syntax** is exact-match on metadata, e.g.
    ``{"documentId": "doc-1"}``.  Multiple keys are AND-ed.
    """

    @abstractmethod
    async def ensure_namespace_ready(self, namespace: str) -> None:
        """Create the namespace if needed (idempotent).

        A dimension mismatch between existing data and the configured
        dimension is logged as a warning, never raised.
        """

    @abstractmethod
    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Write one batch of records, all-or-nothing.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        tenantrag.utils.errors.VectorStoreError
            ``transient=True`` for timeouts / 504 / 429.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 40,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Similarity search ranked by score (descending)."""

    @abstractmethod
    async def delete_by_filter(self, namespace: str, filters: dict[str, Any]) -> int:
        """Delete every record in *namespace* matching *filters*.

        Returns the number of records deleted.
        """

    @abstractmethod
    async def list_by_document(
        self,
        namespace: str,
        document_id: str,
        limit: int = 10000,
    ) -> list[VectorRecord]:
        """Return every stored record (values included) of one document."""

    @abstractmethod
    async def count(self, namespace: str) -> int:
        """Return the number of records stored in *namespace*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this vector store."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is reachable."""
