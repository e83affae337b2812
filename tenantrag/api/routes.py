"""FastAPI routes for document ingestion, agent training and chat.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern; ``main.py`` populates the
state at startup.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents/upload              POST    Upload a file → file/process
# /api/v1/documents/url                 POST    Scrape a page → url/process
# /api/v1/documents/qa                  POST    Add a Q&A pair → qa/process
# /api/v1/documents/{id}                GET     Document + ingestion status
# /api/v1/documents/{id}                DELETE  Cascade delete (vectors, blob, record)
# /api/v1/agents/{id}/train             POST    Train agent → agent/train
# /api/v1/chat                          POST    Ask an agent a question
# /api/v1/chat/public                   POST    Same, authenticated by API key
# /api/v1/chat/{sid}/history            GET     Stored turns of a session (?agent_id=)
# /api/v1/chat/public/{sid}/history     GET     Same, authenticated by API key
# /api/v1/health                        GET     Health check + provider status
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query, Request, UploadFile

from tenantrag.api.schemas import (
    ChatHistoryResponse,
    ChatMessageBody,
    ChatRequestBody,
    ChatResponseBody,
    DeleteDocumentResponse,
    DocumentAcceptedResponse,
    DocumentResponse,
    HealthResponse,
    QAPairRequest,
    ScrapeUrlRequest,
    TrainAgentRequest,
    TrainAgentResponse,
)
from tenantrag.interfaces.blob_storage import IBlobStorage, build_blob_path
from tenantrag.interfaces.document_repository import IDocumentRepository
from tenantrag.models.chat import ChatMessage, ChatRequest
from tenantrag.models.document import Document, SourceKind
from tenantrag.models.job import EventKind, IngestionEvent, JobState
from tenantrag.pipeline.job_runner import JobRunner
from tenantrag.services.chat_service import ChatService
from tenantrag.services.ingestion.ingestion_service import IngestionService
from tenantrag.services.url_scraper import UrlScraper
from tenantrag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_UPLOAD_CHUNK_SIZE = 64 * 1024

_DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024
_DEFAULT_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "text/csv": "csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/json": "json",
    "text/plain": "txt",
}
_DEFAULT_MAX_QUESTION = 1000
_DEFAULT_MAX_ANSWER = 10000


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_repository(request: Request) -> IDocumentRepository:
    return request.app.state.repository


def _get_blob_storage(request: Request) -> IBlobStorage:
    return request.app.state.blob_storage


def _get_job_runner(request: Request) -> JobRunner:
    return request.app.state.job_runner


def _get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def _get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def _get_url_scraper(request: Request) -> UrlScraper:
    return request.app.state.url_scraper


def _get_config(request: Request) -> dict[str, Any]:
    """Return the merged YAML + env config, or ``{}`` when not loaded."""
    return getattr(request.app.state, "config", None) or {}


RepositoryDep = Annotated[IDocumentRepository, Depends(_get_repository)]
BlobStorageDep = Annotated[IBlobStorage, Depends(_get_blob_storage)]
JobRunnerDep = Annotated[JobRunner, Depends(_get_job_runner)]
IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
ChatServiceDep = Annotated[ChatService, Depends(_get_chat_service)]
ScraperDep = Annotated[UrlScraper, Depends(_get_url_scraper)]
ConfigDep = Annotated[dict[str, Any], Depends(_get_config)]


async def _queue_event(
    runner: JobRunner,
    repository: IDocumentRepository,
    event: IngestionEvent,
) -> None:
    """Send *event*; mark the document failed if it cannot be queued."""
    try:
        await runner.send(event)
    except Exception as exc:
        _logger.error(
            "event_send_failed",
            event=event.kind.value,
            document_id=event.document_id,
            error=str(exc),
        )
        if event.document_id:
            await repository.update_document_status(event.document_id, JobState.ERROR)
        raise HTTPException(
            status_code=500, detail="Failed to start background processing"
        ) from exc


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post("/documents/upload", response_model=DocumentAcceptedResponse, status_code=202)
async def upload_document(
    file: UploadFile,
    tenant_id: Annotated[str, Form(min_length=1)],
    repository: RepositoryDep,
    blob_storage: BlobStorageDep,
    runner: JobRunnerDep,
    config: ConfigDep,
) -> DocumentAcceptedResponse:
    """Store an uploaded file and queue it for ingestion."""
    uploads = config.get("uploads", {})
    content_types: dict[str, str] = uploads.get("content_types") or _DEFAULT_CONTENT_TYPES
    max_bytes = int(uploads.get("max_file_bytes", _DEFAULT_MAX_FILE_BYTES))

    content_type = (file.content_type or "").split(";")[0].strip().lower()
    file_type = content_types.get(content_type)
    if file_type is None:
        raise HTTPException(
            status_code=415,
            detail=(
                "File type not supported. Please upload PDF, CSV, XLSX, DOCX, JSON, or TXT files."
            ),
        )

    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File size must be less than {max_bytes // (1024 * 1024)}MB",
            )
        chunks.append(chunk)
    data = b"".join(chunks)
    if not data:
        raise HTTPException(status_code=400, detail="No file provided")

    file_name = file.filename or f"upload.{file_type}"
    storage_path = build_blob_path(tenant_id, file_name)
    await blob_storage.upload(storage_path, data, content_type=content_type)

    try:
        document = await repository.create_document(
            Document(
                document_id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                name=file_name,
                source_kind=SourceKind(file_type),
                size=len(data),
                storage_path=storage_path,
            )
        )
    except Exception:
        _logger.warning("orphan_blob_removed", storage_path=storage_path)
        await blob_storage.delete(storage_path)
        raise

    await _queue_event(
        runner,
        repository,
        IngestionEvent(
            kind=EventKind.FILE,
            tenant_id=tenant_id,
            document_id=document.document_id,
            file_name=file_name,
            file_type=file_type,
            storage_path=storage_path,
        ),
    )

    _logger.info(
        "document_uploaded",
        document_id=document.document_id,
        tenant_id=tenant_id,
        file_type=file_type,
        size=len(data),
    )
    return DocumentAcceptedResponse(
        document_id=document.document_id,
        status=document.status.value,
        message="File uploaded successfully and is being processed in the background",
    )


@router.post("/documents/url", response_model=DocumentAcceptedResponse, status_code=202)
async def scrape_url(
    body: ScrapeUrlRequest,
    repository: RepositoryDep,
    runner: JobRunnerDep,
    scraper: ScraperDep,
) -> DocumentAcceptedResponse:
    """Scrape a web page and queue its text for ingestion."""
    page = await scraper.scrape(body.url)

    document = await repository.create_document(
        Document(
            document_id=str(uuid.uuid4()),
            tenant_id=body.tenant_id,
            name=page.title,
            source_kind=SourceKind.URL,
            size=page.size,
            content=page.content,
            source_url=page.url,
        )
    )
    await _queue_event(
        runner,
        repository,
        IngestionEvent(
            kind=EventKind.URL,
            tenant_id=body.tenant_id,
            document_id=document.document_id,
            content=page.content,
            url=page.url,
        ),
    )
    return DocumentAcceptedResponse(
        document_id=document.document_id,
        status=document.status.value,
        message="URL scraped successfully and is being processed in the background",
    )


@router.post("/documents/qa", response_model=DocumentAcceptedResponse, status_code=202)
async def add_qa_pair(
    body: QAPairRequest,
    repository: RepositoryDep,
    runner: JobRunnerDep,
    config: ConfigDep,
) -> DocumentAcceptedResponse:
    """Store a question/answer pair and queue it for ingestion."""
    limits = config.get("qa", {})
    max_question = int(limits.get("max_question_length", _DEFAULT_MAX_QUESTION))
    max_answer = int(limits.get("max_answer_length", _DEFAULT_MAX_ANSWER))

    question = body.question.strip()
    answer = body.answer.strip()
    if not question or len(body.question) > max_question:
        raise HTTPException(
            status_code=400,
            detail=f"Question must be between 1 and {max_question} characters",
        )
    if not answer or len(body.answer) > max_answer:
        raise HTTPException(
            status_code=400,
            detail=f"Answer must be between 1 and {max_answer} characters",
        )

    content = f"Question: {question}\n\nAnswer: {answer}"
    name = f"Q&A: {question[:50]}{'...' if len(question) > 50 else ''}"

    document = await repository.create_document(
        Document(
            document_id=str(uuid.uuid4()),
            tenant_id=body.tenant_id,
            name=name,
            source_kind=SourceKind.QA,
            size=len(content.encode("utf-8")),
            content=content,
        )
    )
    await _queue_event(
        runner,
        repository,
        IngestionEvent(
            kind=EventKind.QA,
            tenant_id=body.tenant_id,
            document_id=document.document_id,
            content=content,
            question=question,
            answer=answer,
        ),
    )
    return DocumentAcceptedResponse(
        document_id=document.document_id,
        status=document.status.value,
        message="Q&A pair created successfully and is being processed in the background",
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str, repository: RepositoryDep) -> DocumentResponse:
    document = await repository.get_document(document_id)
    return DocumentResponse.from_document(document)


@router.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
async def delete_document(
    document_id: str,
    ingestion: IngestionDep,
) -> DeleteDocumentResponse:
    """Delete a document together with its vectors and stored file."""
    removed = await ingestion.delete_document(document_id)
    return DeleteDocumentResponse(document_id=document_id, vectors_removed=removed)


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


@router.post("/agents/{agent_id}/train", response_model=TrainAgentResponse, status_code=202)
async def train_agent(
    agent_id: str,
    repository: RepositoryDep,
    runner: JobRunnerDep,
    body: TrainAgentRequest | None = None,
) -> TrainAgentResponse:
    """Queue training of an agent from its ready documents."""
    agent = await repository.get_agent(agent_id)
    queued = await runner.send(
        IngestionEvent(
            kind=EventKind.AGENT_TRAIN,
            tenant_id=agent.tenant_id,
            agent_id=agent.agent_id,
            agent_name=agent.name,
            document_ids=(body.document_ids if body else []),
        )
    )
    return TrainAgentResponse(
        agent_id=agent.agent_id,
        status=JobState.QUEUED.value,
        message="Training started" if queued else "Training already in progress",
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chat", response_model=ChatResponseBody)
async def chat(
    body: ChatRequestBody, request: Request, chat_service: ChatServiceDep
) -> ChatResponseBody:
    response = await chat_service.answer(_chat_request(body, request))
    return ChatResponseBody(**response.model_dump())


@router.post("/chat/public", response_model=ChatResponseBody)
async def chat_public(
    body: ChatRequestBody,
    request: Request,
    chat_service: ChatServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> ChatResponseBody:
    """Widget chat endpoint gated by an ``Authorization: Bearer <key>`` header."""
    api_key = _bearer_token(authorization)
    response = await chat_service.answer_public(api_key, _chat_request(body, request))
    return ChatResponseBody(**response.model_dump())


@router.get("/chat/{session_id}/history", response_model=ChatHistoryResponse)
async def chat_history(
    session_id: str,
    agent_id: Annotated[str, Query(min_length=1)],
    chat_service: ChatServiceDep,
) -> ChatHistoryResponse:
    messages = await chat_service.history(session_id, agent_id)
    return _history_response(session_id, agent_id, messages)


@router.get("/chat/public/{session_id}/history", response_model=ChatHistoryResponse)
async def chat_history_public(
    session_id: str,
    agent_id: Annotated[str, Query(min_length=1)],
    chat_service: ChatServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> ChatHistoryResponse:
    messages = await chat_service.history_public(
        _bearer_token(authorization), session_id, agent_id
    )
    return _history_response(session_id, agent_id, messages)


def _chat_request(body: ChatRequestBody, request: Request) -> ChatRequest:
    headers = request.headers
    user_ip = (
        headers.get("x-forwarded-for")
        or headers.get("x-real-ip")
        or (request.client.host if request.client else None)
        or "unknown"
    )
    return ChatRequest(
        question=body.question,
        agent_id=body.agent_id,
        session_id=body.session_id,
        user_ip=user_ip,
        user_agent=headers.get("user-agent") or "unknown",
    )


def _history_response(
    session_id: str, agent_id: str, messages: list[ChatMessage]
) -> ChatHistoryResponse:
    return ChatHistoryResponse(
        session_id=session_id,
        agent_id=agent_id,
        messages=[ChatMessageBody.from_message(m) for m in messages],
    )


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Report configured providers and whether each is usable."""
    state = request.app.state
    providers: dict[str, Any] = {}
    for key in ("embedding_provider", "vector_store", "llm_provider"):
        provider = getattr(state, key, None)
        if provider is None:
            providers[key] = {"name": None, "available": False}
            continue
        providers[key] = {
            "name": provider.get_provider_name(),
            "available": provider.is_available(),
        }
    blob_storage = getattr(state, "blob_storage", None)
    providers["blob_storage"] = {
        "name": blob_storage.get_provider_name() if blob_storage else None,
        "available": blob_storage is not None,
    }

    version = (getattr(state, "config", None) or {}).get("app", {}).get("version", "0.1.0")
    return HealthResponse(status="healthy", version=version, providers=providers)
