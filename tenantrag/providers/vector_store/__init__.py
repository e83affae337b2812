"""Vector store provider implementations.

ChromaDB is the sole vector store implementation.  Each namespace is a
separate collection inside one persistent client, using cosine distance.
Data persists at CHROMADB_PERSIST_DIR (default: ./data/chromadb).

To swap ChromaDB for another vector database, implement
IVectorStoreProvider and register it in main.py.
"""

from tenantrag.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
