"""API middleware: CORS, request logging, and error handling.

Starlette middleware runs LIFO (last added, first executed).  ``main.py``
adds ErrorHandlingMiddleware first and RequestLoggingMiddleware second,
so a request flows

    Client -> RequestLogging -> ErrorHandling -> route handler

and the logging middleware sees the final status code, including the
ones produced by the error handler.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tenantrag.api.schemas import ErrorResponse
from tenantrag.utils.errors import (
    ChatError,
    ConfigurationError,
    DocumentNotFoundError,
    ExtractionError,
    InvalidApiKeyError,
    ScrapeError,
    TenantRAGError,
)
from tenantrag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First match wins; anything else is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[TenantRAGError], int], ...] = (
    (DocumentNotFoundError, 404),
    (InvalidApiKeyError, 401),
    (ScrapeError, 400),
    (ExtractionError, 400),
    (ChatError, 500),
    (ConfigurationError, 500),
)


def status_for(exc: TenantRAGError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; defaults to ``["*"]`` for development."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``TenantRAGError`` subclasses into JSON :class:`ErrorResponse` bodies.

    The client sees the error class name and its message only; provider
    names and stack traces stay in the server log.  Chat failures already
    carry a generic message, so nothing provider-specific leaks through
    the chat endpoints.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except TenantRAGError as exc:
            status_code = status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
