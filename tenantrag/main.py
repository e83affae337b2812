"""tenantrag FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``,
configures structured logging, starts the ingestion job runner on
startup and stops it on shutdown.

:func:`build_components` exposes the same wiring to the CLI, which runs
ingestion flows without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from tenantrag.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from tenantrag.api.routes import router as api_router
from tenantrag.config.loader import load_config
from tenantrag.config.settings import Settings
from tenantrag.interfaces.blob_storage import IBlobStorage
from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.pipeline.job_runner import JobRunner, register_ingestion_handlers
from tenantrag.pipeline.progress_tracker import ProgressTracker
from tenantrag.providers.embedding.huggingface_embedding_provider import (
    HuggingFaceEmbeddingProvider,
)
from tenantrag.providers.llm.anthropic_provider import AnthropicLLMProvider
from tenantrag.providers.llm.openai_provider import OpenAILLMProvider
from tenantrag.providers.repository.sqlite_repository import SQLiteDocumentRepository
from tenantrag.providers.storage.local_blob_storage import LocalBlobStorage
from tenantrag.providers.storage.s3_blob_storage import S3BlobStorage
from tenantrag.providers.vector_store.chromadb_provider import ChromaDBProvider
from tenantrag.services.chat_service import ChatService
from tenantrag.services.ingestion.chunker import TextChunker
from tenantrag.services.ingestion.ingestion_service import IngestionService, StepTimeouts
from tenantrag.services.ingestion.text_extractor import TextExtractor
from tenantrag.services.ingestion.vector_uploader import VectorUploader
from tenantrag.services.response_composer import ResponseComposer
from tenantrag.services.retrieval_service import RetrievalService
from tenantrag.services.url_scraper import UrlScraper
from tenantrag.utils.errors import ConfigurationError
from tenantrag.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the generative provider based on configured API keys.

    Priority: OpenAI / OpenAI-compatible -> Anthropic.  With no key at
    all the OpenAI adapter is still returned so the health endpoint can
    report it as unavailable; chat requests then fail with a generic
    error.
    """
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    _logger.warning("no_llm_provider_configured")
    return OpenAILLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> HuggingFaceEmbeddingProvider:
    """Hugging Face is the only embedding backend; a missing key surfaces per call."""
    provider = HuggingFaceEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning("embedding_provider_unconfigured", provider=provider.get_provider_name())
    return provider


def _build_blob_storage(app_settings: Settings) -> IBlobStorage:
    backend = app_settings.blob_storage_backend.strip().lower()
    if backend == "s3":
        if not app_settings.s3_bucket:
            raise ConfigurationError(
                message="S3_BUCKET must be set when BLOB_STORAGE_BACKEND=s3",
                provider_name="s3",
            )
        return S3BlobStorage(bucket=app_settings.s3_bucket, region=app_settings.aws_region)
    if backend == "local":
        return LocalBlobStorage(root=app_settings.blob_storage_dir)
    raise ConfigurationError(message=f"Unknown blob storage backend: {backend}")


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    resolved_config = app_config if app_config is not None else load_config(settings=app_settings)

    # -- Providers --
    embedding_provider = _build_embedding_provider(app_settings)
    vector_store = ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        index_name=app_settings.vector_index_name,
        dimension=app_settings.embedding_dimension,
    )
    llm_provider = _build_llm_provider(app_settings)
    blob_storage = _build_blob_storage(app_settings)
    repository = SQLiteDocumentRepository(db_path=app_settings.database_path)

    # -- Ingestion --
    progress_tracker = ProgressTracker()
    uploader = VectorUploader(
        vector_store=vector_store,
        batch_size=app_settings.upload_batch_size,
        max_attempts=app_settings.upload_max_attempts,
        base_delay=app_settings.upload_base_delay_seconds,
        batch_delay=app_settings.upload_batch_delay_seconds,
    )
    ingestion_service = IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        ),
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        uploader=uploader,
        blob_storage=blob_storage,
        repository=repository,
        timeouts=StepTimeouts.from_settings(app_settings),
        progress_tracker=progress_tracker,
    )
    job_runner = JobRunner(workers=app_settings.job_workers)
    register_ingestion_handlers(job_runner, ingestion_service, repository)

    # -- Retrieval / chat --
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        top_k=app_settings.retrieval_top_k,
    )
    response_composer = ResponseComposer(
        llm_provider=llm_provider,
        temperature=app_settings.generation_temperature,
        max_tokens=app_settings.generation_max_tokens,
    )
    chat_service = ChatService(
        repository=repository,
        retrieval=retrieval_service,
        composer=response_composer,
        timeout=app_settings.chat_timeout_seconds,
        top_k=app_settings.retrieval_top_k,
    )

    scrape_config = resolved_config.get("scrape", {})
    url_scraper = UrlScraper(
        max_url_length=int(scrape_config.get("max_url_length", 2048)),
        max_content_bytes=int(scrape_config.get("max_content_bytes", 5 * 1024 * 1024)),
        timeout=float(scrape_config.get("timeout_seconds", 30)),
    )

    return {
        "settings": app_settings,
        "config": resolved_config,
        "embedding_provider": embedding_provider,
        "vector_store": vector_store,
        "llm_provider": llm_provider,
        "blob_storage": blob_storage,
        "repository": repository,
        "progress_tracker": progress_tracker,
        "ingestion_service": ingestion_service,
        "job_runner": job_runner,
        "retrieval_service": retrieval_service,
        "response_composer": response_composer,
        "chat_service": chat_service,
        "url_scraper": url_scraper,
    }


def build_components(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Build the full component graph for scripts and the CLI."""
    return _build_all(custom_settings or settings)


async def close_components(components: dict[str, Any]) -> None:
    """Release the HTTP clients owned by the components."""
    await components["embedding_provider"].aclose()
    await components["url_scraper"].aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["repository"].initialize()
    await components["job_runner"].start(settings.job_workers)

    _logger.info(
        "app_startup",
        version=config.get("app", {}).get("version", "0.1.0"),
        environment=settings.app_env,
        llm_provider=components["llm_provider"].get_provider_name(),
        blob_storage=components["blob_storage"].get_provider_name(),
        workers=settings.job_workers,
    )

    yield

    await components["job_runner"].stop()
    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="tenantrag API",
        version=config.get("app", {}).get("version", "0.1.0"),
        description=(
            "Multi-tenant document ingestion and retrieval-augmented chat: upload "
            "files, web pages and Q&A pairs, train agents on them, and ask questions "
            "answered only from the tenant's own material."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "tenantrag.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
