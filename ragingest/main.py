"""ragingest FastAPI application entry point.

Wires together providers, the progress store, the document processor and
the routes via dependency injection.  Loads configuration from ``.env``
and ``config/config.yaml`` and configures structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from ragingest import __version__
from ragingest.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from ragingest.api.routes import router as api_router
from ragingest.api.websocket import websocket_progress
from ragingest.config.loader import load_config
from ragingest.config.settings import Settings
from ragingest.interfaces.embedding_provider import IEmbeddingProvider
from ragingest.models.document import FileType
from ragingest.pipeline.processor import DocumentProcessor, ProcessorConfig
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.pipeline.supervisor import TaskSupervisor
from ragingest.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
from ragingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragingest.providers.store.sqlite_document_store import SQLiteDocumentStore
from ragingest.services.document_service import DocumentService
from ragingest.services.parsers import detect_file_type
from ragingest.services.progress_stream import ProgressStreamServer
from ragingest.utils.errors import ConfigurationError
from ragingest.utils.logging import configure_logging, get_logger

# Seconds in-flight runs get to finish on shutdown before being cancelled.
_SHUTDOWN_DRAIN_TIMEOUT = 30.0

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


def _build_embedding_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IEmbeddingProvider:
    """Select the first configured embedding provider.

    Priority: Cohere -> OpenAI/OpenAI-compatible.  With no key configured
    the Cohere provider is still returned so the app starts; every run then
    fails at the embedding stage and ``/health`` reports ``degraded``.
    """
    if app_settings.cohere_api_key:
        return CohereEmbeddingProvider(settings=app_settings, http_client=http_client)
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)

    _logger.warning("no_embedding_provider_configured")
    return CohereEmbeddingProvider(settings=app_settings, http_client=http_client)


def _check_embedding_dimension(
    embedding_provider: IEmbeddingProvider, app_settings: Settings
) -> None:
    """Refuse to start when the provider's vector width differs from the store's.

    Raises
    ------
    ConfigurationError
        If a fixed-width model (e.g. ``text-embedding-ada-002``) is paired
        with a different ``EMBEDDING_DIMENSION``.
    """
    provider_dimension = embedding_provider.get_dimension()
    if provider_dimension != app_settings.embedding_dimension:
        raise ConfigurationError(
            message=(
                f"Embedding model produces {provider_dimension}-dimensional vectors "
                f"but EMBEDDING_DIMENSION is {app_settings.embedding_dimension}"
            ),
            provider_name=embedding_provider.get_provider_name(),
        )


def _processor_config(app_settings: Settings, app_config: dict[str, Any]) -> ProcessorConfig:
    """Merge YAML processing values over Settings defaults."""
    processing = app_config.get("processing", {})
    base = ProcessorConfig.from_settings(app_settings)
    overrides = {
        "chunk_size": processing.get("chunk_size"),
        "chunk_overlap": processing.get("chunk_overlap"),
        "max_embedding_retries": processing.get("max_embedding_retries"),
        "batch_size": processing.get("embedding_batch_size"),
        "retry_base_delay": processing.get("retry_base_delay"),
        "retry_max_delay": processing.get("retry_max_delay"),
        "cleanup_partial_chunks": processing.get("cleanup_partial_chunks"),
    }
    return ProcessorConfig(
        **{**base.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
    )


def _allowed_types(app_config: dict[str, Any]) -> frozenset[FileType] | None:
    extensions = app_config.get("upload", {}).get("allowed_extensions")
    if not extensions:
        return None
    detected = {detect_file_type(f"upload{ext}") for ext in extensions}
    return frozenset(t for t in detected if t is not None)


def _max_upload_bytes(app_settings: Settings, app_config: dict[str, Any]) -> int:
    if "max_upload_bytes" in app_settings.model_fields_set:
        return app_settings.max_upload_bytes
    return int(app_config.get("upload", {}).get("max_bytes", app_settings.max_upload_bytes))


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(
        base_url=app_settings.cohere_base_url,
        timeout=app_settings.embedding_timeout,
    )

    # -- Providers --
    embedding_provider = _build_embedding_provider(app_settings, http_client)
    _check_embedding_dimension(embedding_provider, app_settings)
    document_store = SQLiteDocumentStore(
        db_path=app_settings.document_db_path,
        dimension=app_settings.embedding_dimension,
    )

    # -- Progress tracking --
    progress = app_config.get("progress", {})
    progress_store = ProgressStore(
        retention=progress.get("retention_seconds", app_settings.progress_retention_seconds),
        orphan_ttl=progress.get("orphan_ttl_seconds", app_settings.progress_orphan_ttl_seconds),
        sweep_interval=progress.get(
            "sweep_interval_seconds", app_settings.progress_sweep_interval_seconds
        ),
        max_entries=progress.get("max_entries", app_settings.progress_max_entries),
    )
    progress_stream = ProgressStreamServer(
        progress_store,
        poll_interval=progress.get(
            "poll_interval_seconds", app_settings.progress_poll_interval_seconds
        ),
    )

    # -- Processing --
    supervisor = TaskSupervisor()
    processor = DocumentProcessor(
        config=_processor_config(app_settings, app_config),
        embedding_provider=embedding_provider,
        chunk_store=document_store,
        record_store=document_store,
        progress_store=progress_store,
    )
    document_service = DocumentService(
        processor=processor,
        progress_store=progress_store,
        record_store=document_store,
        supervisor=supervisor,
        max_upload_bytes=_max_upload_bytes(app_settings, app_config),
        allowed_types=_allowed_types(app_config),
    )

    provider_registry: dict[str, Any] = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "embedding_dimension": embedding_provider.get_dimension(),
        "store": document_store.get_provider_name(),
    }

    return {
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "document_store": document_store,
        "progress_store": progress_store,
        "progress_stream": progress_stream,
        "supervisor": supervisor,
        "processor": processor,
        "document_service": document_service,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    app_settings: Settings = application.state.settings
    components = _build_all(app_settings, application.state.config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()
    components["progress_store"].start()

    _logger.info(
        "app_startup",
        version=__version__,
        environment=app_settings.app_env,
        embedding_provider=components["provider_registry"]["embedding_provider"],
        embedding_available=components["provider_registry"]["embedding"],
    )

    yield

    # -- Shutdown: let in-flight runs finish, then release resources --
    await components["supervisor"].drain(timeout=_SHUTDOWN_DRAIN_TIMEOUT)
    await components["progress_store"].stop()
    await components["embedding_provider"].aclose()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="Background tasks drained, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    app_config: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    app_settings:
        Settings to use instead of the module-level ones (tests).
    app_config:
        Resolved configuration dict; loaded from ``config/config.yaml``
        when omitted and *app_settings* is given.
    """
    if app_settings is None:
        app_settings, app_config = settings, config
    elif app_config is None:
        app_config = load_config(settings=app_settings)

    application = FastAPI(
        title="ragingest API",
        version=__version__,
        description=(
            "Upload markdown, JSON or text documents, split them into "
            "overlapping chunks, embed and store every chunk, and follow "
            "processing progress live over SSE or WebSocket."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = app_settings
    application.state.config = app_config

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=app_settings.cors_origins)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/documents/{document_id}/progress")
    async def ws_progress(websocket: WebSocket, document_id: str) -> None:
        await websocket_progress(websocket, document_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "ragingest.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
