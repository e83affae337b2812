"""Custom exception hierarchy for tenantrag.

All application exceptions inherit from :class:`TenantRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "huggingface", "chromadb", "openai") caused the
failure.

The hierarchy is organized by pipeline stage:

    TenantRAGError  (base -- catch-all for any tenantrag error)
    +-- ExtractionError        (raw bytes -> text; fatal, never retried)
    +-- EmbeddingError         (embedding provider call; tolerated per chunk)
    +-- VectorStoreError       (vector store call; retried when transient)
    +-- NoVectorsCreatedError  (every chunk failed to embed)
    +-- StorageError           (blob storage download / upload / delete)
    +-- DocumentNotFoundError  (repository lookup miss)
    +-- StepTimeoutError       (an ingestion step exceeded its time box)
    +-- GenerationError        (generative model call)
    +-- ConfigurationError     (missing namespace / credentials)
    +-- ChatError              (user-facing chat failure, generic text only)
    +-- InvalidApiKeyError     (public chat bearer key unknown or inactive)
    +-- ScrapeError            (invalid URL or unreadable page)

Errors that need a machine-readable cause carry a ``reason`` enum so the
pipeline can branch on it without string matching.
"""

from __future__ import annotations

from enum import Enum


class TenantRAGError(Exception):
    """Base exception for all tenantrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[huggingface] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Reason codes
# ---------------------------------------------------------------------------


class ExtractionReason(str, Enum):
    """Why text extraction failed."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    EMPTY_CONTENT = "empty_content"
    CONTENT_TOO_SHORT = "content_too_short"
    PARSE_FAILED = "parse_failed"


class EmbeddingReason(str, Enum):
    """Normalized embedding provider failure causes."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    MODEL_LOADING = "model_loading"
    PROVIDER_ERROR = "provider_error"
    NO_EMBEDDING_RETURNED = "no_embedding_returned"
    EMPTY_INPUT = "empty_input"


class GenerationReason(str, Enum):
    """Normalized generative model failure causes."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    EMPTY_GENERATION = "empty_generation"
    PROVIDER_ERROR = "provider_error"


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------


class ExtractionError(TenantRAGError):
    """Raised when raw document bytes cannot be turned into usable text.

    Extraction is a pure function of the input bytes, so these errors are
    terminal for the ingestion job and are never retried.
    """

    def __init__(
        self,
        message: str = "Text extraction failed",
        reason: ExtractionReason = ExtractionReason.PARSE_FAILED,
        provider_name: str | None = None,
    ) -> None:
        self._reason = reason
        super().__init__(message=message, provider_name=provider_name)

    @property
    def reason(self) -> ExtractionReason:
        return self._reason


class EmbeddingError(TenantRAGError):
    """Raised when the embedding provider rejects or fails a request.

    Tolerated per chunk during bulk ingestion, fatal during query-time
    retrieval.
    """

    def __init__(
        self,
        message: str = "Embedding request failed",
        reason: EmbeddingReason = EmbeddingReason.PROVIDER_ERROR,
        provider_name: str | None = None,
    ) -> None:
        self._reason = reason
        super().__init__(message=message, provider_name=provider_name)

    @property
    def reason(self) -> EmbeddingReason:
        return self._reason


class VectorStoreError(TenantRAGError):
    """Raised when a vector store operation fails.

    ``transient`` marks failures (timeouts, HTTP 504 / 429) that the batch
    uploader retries with exponential backoff.  The adapter that catches
    the underlying exception decides it; the default is permanent.
    """

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
        transient: bool = False,
    ) -> None:
        self._transient = transient
        super().__init__(message=message, provider_name=provider_name)

    @property
    def transient(self) -> bool:
        return self._transient


class NoVectorsCreatedError(TenantRAGError):
    """Raised when an ingestion run produced zero vectors."""

    def __init__(
        self,
        message: str = "No vectors were created",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(TenantRAGError):
    """Raised when a blob storage object is missing or cannot be read."""

    def __init__(
        self,
        message: str = "Blob storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(TenantRAGError):
    """Raised when a document, agent, or API key lookup misses."""

    def __init__(
        self,
        message: str = "Record not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StepTimeoutError(TenantRAGError):
    """Raised when an ingestion step exceeds its time box."""

    def __init__(
        self,
        message: str = "Ingestion step timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Generation / chat errors
# ---------------------------------------------------------------------------


class GenerationError(TenantRAGError):
    """Raised when the generative model fails or returns no text."""

    def __init__(
        self,
        message: str = "Response generation failed",
        reason: GenerationReason = GenerationReason.PROVIDER_ERROR,
        provider_name: str | None = None,
    ) -> None:
        self._reason = reason
        super().__init__(message=message, provider_name=provider_name)

    @property
    def reason(self) -> GenerationReason:
        return self._reason


class ChatError(TenantRAGError):
    """User-facing chat failure.

    The message is always one of the generic texts in
    :mod:`tenantrag.services.chat_service`; provider details stay in logs.
    """

    def __init__(
        self,
        message: str = "Failed to process your message",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class InvalidApiKeyError(TenantRAGError):
    """Raised when a public chat request carries a missing or inactive API key."""

    def __init__(
        self,
        message: str = "Invalid or inactive API key",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ScrapeError(TenantRAGError):
    """Raised when a URL is invalid or its page cannot be fetched / read."""

    def __init__(
        self,
        message: str = "Failed to scrape URL",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(TenantRAGError):
    """Raised when configuration is invalid or missing (fails before any network call)."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
