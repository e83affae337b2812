"""Public interface definitions for all external service providers.

Every external service tenantrag talks to is reached only through the
abstract base classes in this package.  Concrete adapters implement them
and are injected at startup (``tenantrag/main.py``), so business logic
never imports a vendor SDK and tests can pass mocks.

CONCRETE PROVIDER MAP:
    Interface               →  Concrete implementations (tenantrag/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider      →  HuggingFaceEmbeddingProvider
    IVectorStoreProvider    →  ChromaDBProvider
    ILLMProvider            →  OpenAILLMProvider, AnthropicLLMProvider
    IBlobStorage            →  LocalBlobStorage, S3BlobStorage
    IDocumentRepository     →  SQLiteDocumentRepository
"""

from tenantrag.interfaces.blob_storage import IBlobStorage, build_blob_path
from tenantrag.interfaces.document_repository import IDocumentRepository
from tenantrag.interfaces.embedding_provider import IEmbeddingProvider
from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IBlobStorage",
    "IDocumentRepository",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IVectorStoreProvider",
    "build_blob_path",
]
