"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
They are stored per namespace in ChromaDB and compared at query time.

One implementation of IEmbeddingProvider:
    HuggingFaceEmbeddingProvider - sentence-transformers/all-MiniLM-L6-v2
    over the hosted Inference API (384 dims).  Needs HUGGINGFACE_API_KEY.
"""

from tenantrag.providers.embedding.huggingface_embedding_provider import (
    HuggingFaceEmbeddingProvider,
)

__all__ = ["HuggingFaceEmbeddingProvider"]
