"""tenantrag API layer: routes, schemas, and middleware."""

from tenantrag.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from tenantrag.api.routes import router
from tenantrag.api.schemas import (
    ChatRequestBody,
    ChatResponseBody,
    DeleteDocumentResponse,
    DocumentAcceptedResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    QAPairRequest,
    ScrapeUrlRequest,
    TrainAgentRequest,
    TrainAgentResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "ChatRequestBody",
    "ChatResponseBody",
    "DeleteDocumentResponse",
    "DocumentAcceptedResponse",
    "DocumentResponse",
    "ErrorResponse",
    "HealthResponse",
    "QAPairRequest",
    "ScrapeUrlRequest",
    "TrainAgentRequest",
    "TrainAgentResponse",
]
