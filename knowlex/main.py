"""Knowlex FastAPI application entry point.

Wires together the store, parsers, chunker, queue and lifecycle service via
dependency injection.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

``build_components`` is also used by the CLI so both entry points share the
same wiring.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from knowlex import __version__
from knowlex.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from knowlex.api.routes import router as api_router
from knowlex.api.websocket import websocket_events
from knowlex.config.loader import load_config
from knowlex.config.settings import Settings
from knowlex.models.project_file import UploadLimits
from knowlex.providers.parser import OfficeParser, PDFParser, PlainTextParser
from knowlex.providers.store.sqlite_file_store import SQLiteProjectFileStore
from knowlex.services.ingestion.chunker import TextChunker
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.parser_registry import ParserRegistry
from knowlex.services.ingestion.processing_queue import ProcessingQueue
from knowlex.services.ingestion.project_file_service import ProjectFileService
from knowlex.utils.errors import ConfigurationError
from knowlex.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings,
    app_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``.
    Must be called from within a running event loop's lifetime (the queue
    creates its scheduler task lazily on first enqueue).
    """
    app_config = app_config or {}

    try:
        limits = UploadLimits(
            max_files_per_project=app_settings.max_files_per_project,
            max_file_size=app_settings.max_file_size,
            max_total_size=app_settings.max_total_size,
        )
        chunker = TextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid ingestion settings: {exc}") from exc

    encodings = app_config.get("parsers", {}).get("text_encodings")
    parser_registry = ParserRegistry(
        [PlainTextParser(encodings=encodings), PDFParser(), OfficeParser()]
    )

    store = SQLiteProjectFileStore(app_settings.database_path)
    broadcaster = EventBroadcaster()
    queue = ProcessingQueue(
        max_concurrent=app_settings.queue_max_concurrent,
        max_retries=app_settings.queue_max_retries,
        backoff_base=app_settings.queue_backoff_base,
        broadcaster=broadcaster,
    )
    file_service = ProjectFileService(
        store=store,
        queue=queue,
        parsers=parser_registry,
        chunker=chunker,
        storage_root=app_settings.storage_dir,
        broadcaster=broadcaster,
        limits=limits,
    )

    return {
        "settings": app_settings,
        "config": app_config,
        "store": store,
        "parser_registry": parser_registry,
        "chunker": chunker,
        "broadcaster": broadcaster,
        "queue": queue,
        "file_service": file_service,
    }


async def start_components(components: dict[str, Any]) -> int:
    """Initialize the store and, if enabled, reconcile stranded files.

    Returns the number of files re-enqueued by reconciliation.
    """
    await components["store"].initialize()
    if components["settings"].reconcile_on_startup:
        return await components["file_service"].reconcile_pending_files()
    return 0


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build and start all components on startup, drain the queue on shutdown."""
    app_settings: Settings = application.state.settings
    app_config: dict[str, Any] = application.state.config
    components = build_components(app_settings, app_config)

    for key, value in components.items():
        setattr(application.state, key, value)

    reconciled = await start_components(components)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=app_settings.app_env,
        store=components["store"].get_provider_name(),
        reconciled=reconciled,
    )

    yield

    await components["queue"].shutdown()
    await components["broadcaster"].drain()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    app_config: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or Settings()
    if app_config is None:
        app_config = load_config(settings=app_settings)

    application = FastAPI(
        title="Knowlex Ingest API",
        version=__version__,
        description=(
            "Upload documents to a project, extract their text, and split it "
            "into overlapping chunks ready for retrieval."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = app_settings
    application.state.config = app_config

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(
        application,
        allowed_origins=app_config.get("api", {}).get("cors_origins"),
    )

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/events")
    async def ws_events(websocket: WebSocket, project_id: str | None = None) -> None:
        await websocket_events(websocket, project_id)

    return application


def main() -> None:
    """Run the API server with uvicorn."""
    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
        quiet_loggers=app_settings.log_quiet_loggers,
    )
    uvicorn.run(
        "knowlex.main:create_app",
        factory=True,
        host=app_settings.app_host,
        port=app_settings.app_port,
        reload=(app_settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
