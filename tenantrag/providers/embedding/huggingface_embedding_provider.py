"""Hugging Face Inference API embedding provider.

Implements :class:`IEmbeddingProvider` over the hosted feature-extraction
pipeline using ``httpx``.  The default model,
``sentence-transformers/all-MiniLM-L6-v2``, produces 384-dimensional
vectors, matching the vector index dimension.

Provider HTTP failures are normalized into
:class:`~tenantrag.utils.errors.EmbeddingError` reasons:

    401  → UNAUTHORIZED
    429  → RATE_LIMITED
    503  → MODEL_LOADING
    other 4xx/5xx, transport errors → PROVIDER_ERROR
    200 with an empty or non-numeric body → NO_EMBEDDING_RETURNED
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from tenantrag.config.settings import Settings
from tenantrag.interfaces.embedding_provider import IEmbeddingProvider
from tenantrag.utils.errors import ConfigurationError, EmbeddingError, EmbeddingReason

logger = structlog.get_logger(logger_name=__name__)

_STATUS_REASONS: dict[int, tuple[EmbeddingReason, str]] = {
    401: (EmbeddingReason.UNAUTHORIZED, "Invalid Hugging Face API token"),
    429: (EmbeddingReason.RATE_LIMITED, "Hugging Face API rate limit exceeded"),
    503: (
        EmbeddingReason.MODEL_LOADING,
        "Hugging Face model is loading, please try again in a few moments",
    ),
}


class HuggingFaceEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Hugging Face Inference API.

    One POST per text, body ``{"inputs": text}``, bearer-token auth.  The
    response is the raw vector (or a single-row matrix, which is
    flattened).  No retries happen here.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.huggingface_api_key
        self._model = settings.huggingface_embedding_model
        self._endpoint = f"{settings.huggingface_api_url.rstrip('/')}/{self._model}"
        self._dimension = settings.embedding_dimension
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.embedding_timeout_seconds, connect=5.0),
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed_single(self, text: str) -> list[float]:
        """POST *text* to the feature-extraction endpoint and return its vector."""
        if not self._api_key:
            raise ConfigurationError(
                message="HUGGINGFACE_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )
        cleaned = text.strip() if text else ""
        if not cleaned:
            raise EmbeddingError(
                message="Cannot embed empty text",
                reason=EmbeddingReason.EMPTY_INPUT,
                provider_name=self.get_provider_name(),
            )

        try:
            response = await self._client.post(
                self._endpoint,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json={"inputs": cleaned},
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingError(
                message=f"Hugging Face request timed out: {exc}",
                reason=EmbeddingReason.PROVIDER_ERROR,
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(
                message=f"Hugging Face request failed: {exc}",
                reason=EmbeddingReason.PROVIDER_ERROR,
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code != 200:
            raise self._error_for_response(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingError(
                message="Hugging Face returned a non-JSON body",
                reason=EmbeddingReason.NO_EMBEDDING_RETURNED,
                provider_name=self.get_provider_name(),
            ) from exc

        vector = _coerce_vector(payload)
        if vector is None:
            raise EmbeddingError(
                message="No embeddings generated",
                reason=EmbeddingReason.NO_EMBEDDING_RETURNED,
                provider_name=self.get_provider_name(),
            )

        if len(vector) != self._dimension:
            logger.warning(
                "embedding_dimension_unexpected",
                model=self._model,
                expected=self._dimension,
                received=len(vector),
            )
        logger.debug("huggingface_embedding", model=self._model, text_length=len(cleaned))
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "huggingface"

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _error_for_response(self, response: httpx.Response) -> EmbeddingError:
        status = response.status_code
        known = _STATUS_REASONS.get(status)
        if known is not None:
            reason, message = known
        else:
            reason = EmbeddingReason.PROVIDER_ERROR
            message = _body_error(response) or f"Hugging Face API error: HTTP {status}"
        logger.warning(
            "huggingface_embedding_failed",
            status=status,
            reason=reason.value,
        )
        return EmbeddingError(
            message=message,
            reason=reason,
            provider_name=self.get_provider_name(),
        )


def _body_error(response: httpx.Response) -> str | None:
    """Return the ``error`` field of a JSON error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_vector(payload: Any) -> list[float] | None:
    """Normalize ``[f, ...]`` or ``[[f, ...]]`` to a flat float list."""
    if not isinstance(payload, list) or not payload:
        return None
    if isinstance(payload[0], list):
        if len(payload) != 1:
            return None
        payload = payload[0]
        if not payload:
            return None
    if not all(_is_number(v) for v in payload):
        return None
    return [float(v) for v in payload]
