"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement
:class:`IVectorStoreProvider`.  Every namespace is its own collection,
named ``<index>__<namespace>``, so a query or delete can never touch
another tenant's vectors.  Cosine distance is used for similarity.
"""

from __future__ import annotations

import hashlib
import os
import re
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  The PostHog client
# bundled with some ChromaDB releases is incompatible with the installed
# posthog version and logs "capture() takes 1 positional argument" errors.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import httpx
import structlog

from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider
from tenantrag.models.rag import VectorMatch, VectorRecord
from tenantrag.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_MAX_COLLECTION_NAME = 63
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_TRANSIENT_STATUS_CODES = frozenset({429, 504})


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that keeps ChromaDB from loading its default model.

    Vectors always arrive pre-computed from the embedding provider, so
    ChromaDB's own embedding is never invoked.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "tenantrag passes pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Namespace-partitioned vector store backed by a persistent ChromaDB client.

    Parameters
    ----------
    persist_directory:
        On-disk location of the Chroma database.
    index_name:
        Fixed index identifier; prefixes every collection name.
    dimension:
        Configured vector dimension.  Existing collections with another
        dimension are used as-is after a warning.
    client:
        Optional pre-built client (tests pass an ``EphemeralClient``).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        index_name: str = "tenantrag-index",
        dimension: int = 384,
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._index_name = index_name
        self._dimension = dimension
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def ensure_namespace_ready(self, namespace: str) -> None:
        """Create the namespace collection if missing and check its dimension."""
        collection = self._get_or_create(namespace)
        self._check_dimension(namespace, collection)

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Upsert one batch of records into the namespace collection."""
        if not records:
            return 0
        try:
            collection = self._get_or_create(namespace)
            collection.upsert(
                ids=[r.record_id for r in records],
                embeddings=[r.values for r in records],
                documents=[r.text for r in records],
                metadatas=[_clean_metadata(r.metadata) for r in records],
            )
        except VectorStoreError:
            raise
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
                transient=_is_transient(exc),
            ) from exc

        logger.info("chromadb_upsert", namespace=namespace, count=len(records))
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 40,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return up to *top_k* records nearest to *vector* within *namespace*."""
        collection = self._get_existing(namespace)
        if collection is None:
            logger.info("chromadb_query_missing_namespace", namespace=namespace)
            return []

        try:
            available = collection.count()
            if available == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": max(1, min(top_k, available)),
                "include": ["metadatas", "distances"],
            }
            where = _translate_filters(filters)
            if where:
                kwargs["where"] = where

            results = collection.query(**kwargs)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
                transient=_is_transient(exc),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)

        matches = [
            VectorMatch(
                record_id=record_id,
                score=1.0 - float(distance),
                metadata=dict(meta or {}),
            )
            for record_id, meta, distance in zip(ids, metadatas, distances, strict=True)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)

        logger.info(
            "chromadb_query",
            namespace=namespace,
            top_k=top_k,
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def delete_by_filter(self, namespace: str, filters: dict[str, Any]) -> int:
        """Delete every record in *namespace* matching *filters*."""
        where = _translate_filters(filters)
        if not where:
            raise ValueError("delete_by_filter requires a non-empty filter")

        collection = self._get_existing(namespace)
        if collection is None:
            return 0

        try:
            existing = collection.get(where=where, include=[])
            ids = existing["ids"] or []
            if ids:
                collection.delete(ids=ids)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
                transient=_is_transient(exc),
            ) from exc

        logger.info(
            "chromadb_delete_by_filter",
            namespace=namespace,
            filters=filters,
            deleted_count=len(ids),
        )
        return len(ids)

    async def list_by_document(
        self,
        namespace: str,
        document_id: str,
        limit: int = 10000,
    ) -> list[VectorRecord]:
        """Return every record of *document_id* via a filtered ``get``."""
        collection = self._get_existing(namespace)
        if collection is None:
            return []

        try:
            page = collection.get(
                where={"documentId": document_id},
                include=["embeddings", "metadatas"],
                limit=limit,
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB list_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
                transient=_is_transient(exc),
            ) from exc

        ids = page["ids"] or []
        embeddings = page.get("embeddings")
        metadatas = page.get("metadatas")
        if embeddings is None or len(embeddings) == 0:
            embeddings = [[] for _ in ids]
        if metadatas is None:
            metadatas = [{} for _ in ids]

        records = [
            VectorRecord(
                record_id=record_id,
                values=[float(v) for v in values],
                metadata=dict(meta or {}),
            )
            for record_id, values, meta in zip(ids, embeddings, metadatas, strict=True)
        ]
        logger.info(
            "chromadb_list_by_document",
            namespace=namespace,
            document_id=document_id,
            count=len(records),
        )
        return records

    async def count(self, namespace: str) -> int:
        collection = self._get_existing(namespace)
        if collection is None:
            return 0
        return collection.count()

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def collection_name(self, namespace: str) -> str:
        """Map a namespace to a valid, deterministic Chroma collection name."""
        raw = _INVALID_NAME_CHARS.sub("_", f"{self._index_name}__{namespace}")
        if len(raw) <= _MAX_COLLECTION_NAME:
            return raw
        digest = hashlib.sha1(namespace.encode("utf-8")).hexdigest()[:12]
        return f"{raw[: _MAX_COLLECTION_NAME - 13]}_{digest}"

    def _get_or_create(self, namespace: str) -> Any:
        cached = self._collections.get(namespace)
        if cached is not None:
            return cached

        name = self.collection_name(namespace)
        metadata = {
            "hnsw:space": "cosine",
            "namespace": namespace,
            "dimension": self._dimension,
        }
        # Collections created by an older ChromaDB with the default embedding
        # function reject a different one; reopen those without it.
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata=metadata,
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(name=name, metadata=metadata)

        self._collections[namespace] = collection
        logger.debug("chromadb_collection_ready", namespace=namespace, collection=name)
        return collection

    def _get_existing(self, namespace: str) -> Any | None:
        cached = self._collections.get(namespace)
        if cached is not None:
            return cached
        name = self.collection_name(namespace)
        existing = {c if isinstance(c, str) else c.name for c in self._client.list_collections()}
        if name not in existing:
            return None
        return self._get_or_create(namespace)

    def _check_dimension(self, namespace: str, collection: Any) -> None:
        """Warn (never raise) when stored vectors differ from the configured dimension."""
        declared = (collection.metadata or {}).get("dimension")
        stored_dim: int | None = None
        if collection.count() > 0:
            sample = collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is not None and len(embeddings) > 0:
                stored_dim = len(embeddings[0])

        actual = stored_dim if stored_dim is not None else declared
        if actual is not None and int(actual) != self._dimension:
            logger.warning(
                "vector_dimension_mismatch",
                namespace=namespace,
                existing_dimension=int(actual),
                configured_dimension=self._dimension,
                action="continuing with existing index",
            )


def _translate_filters(filters: dict[str, Any] | None) -> dict[str, Any] | None:
    """Turn an exact-match filter dict into a Chroma ``where`` clause."""
    if not filters:
        return None
    clauses = [{key: value} for key, value in filters.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _is_transient(exc: BaseException) -> bool:
    """Timeouts and HTTP 429 / 504 responses are worth retrying."""
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return True
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    return status in _TRANSIENT_STATUS_CODES


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Chroma accepts only str/int/float/bool values; drop None, stringify the rest."""
    cleaned: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = str(value)
    return cleaned
