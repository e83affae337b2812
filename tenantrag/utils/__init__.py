"""Utility modules for tenantrag.

- **errors** -- Exception hierarchy rooted at TenantRAGError; each
  pipeline stage raises its own subclass (with a ``reason`` code where
  callers need to branch) so failures are handled granularly.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
- **retry** -- The one retry-with-exponential-backoff helper used for
  every transient network call.
"""

from tenantrag.utils.errors import (
    ChatError,
    ConfigurationError,
    DocumentNotFoundError,
    EmbeddingError,
    EmbeddingReason,
    ExtractionError,
    ExtractionReason,
    GenerationError,
    GenerationReason,
    InvalidApiKeyError,
    NoVectorsCreatedError,
    ScrapeError,
    StepTimeoutError,
    StorageError,
    TenantRAGError,
    VectorStoreError,
)
from tenantrag.utils.logging import configure_logging, get_logger
from tenantrag.utils.retry import retry_with_backoff

__all__ = [
    "ChatError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "EmbeddingError",
    "EmbeddingReason",
    "ExtractionError",
    "ExtractionReason",
    "GenerationError",
    "GenerationReason",
    "InvalidApiKeyError",
    "NoVectorsCreatedError",
    "ScrapeError",
    "StepTimeoutError",
    "StorageError",
    "TenantRAGError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "retry_with_backoff",
]
