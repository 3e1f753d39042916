"""FastAPI application and routes."""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import ConfigError, ConfigManager
from ..core.kv_backend import open_backend
from ..core.sync_manager import SyncManager
from ..core.sync_store import SyncStore
from ..models.config import AppConfig
from .deps import path_sync_id

logger = logging.getLogger(__name__)

API_TITLE = "marksync API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database on startup and close it on shutdown.

    When the app was built around an existing SyncManager nothing is opened.
    """
    logger.info("Starting marksync API...")

    backend = None
    if app.state.sync_manager is None:
        if app.state.config is None:
            try:
                app.state.config = ConfigManager().load()
            except ConfigError as e:
                logger.error(f"Failed to load configuration: {e}")
                raise

        config: AppConfig = app.state.config
        backend = open_backend(config.db_path)
        store = SyncStore(backend)
        app.state.sync_manager = SyncManager(store, id_length=config.id_length)

        logger.info(f"Serving {store.count()} sync(s) from {config.db_path}")

    yield

    logger.info("Shutting down marksync API...")
    if backend is not None:
        backend.close()
        app.state.sync_manager = None


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Render HTTP errors as a bare status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return Response(status_code=exc.status_code, headers=getattr(exc, "headers", None))


def _boot_origins() -> List[str]:
    try:
        return ConfigManager().load_app_config().allowed_origins
    except ConfigError:
        # Config is optional at import time (tests, `marksync --help`)
        return []


def create_app(
    config: Optional[AppConfig] = None,
    sync_manager: Optional[SyncManager] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Resolved configuration. Loaded from the config directory at
            startup when omitted.
        sync_manager: Pre-built manager. When given, the app does not open a
            database of its own.
    """
    if sync_manager is not None and config is None:
        config = AppConfig()

    app = FastAPI(
        title=API_TITLE,
        description="xBrowserSync compatible bookmark sync service",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.sync_manager = sync_manager
    app.state.sync_id_extractor = path_sync_id

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    origins = config.allowed_origins if config is not None else _boot_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=r"^(chrome|moz|edge)-extension://.*$",
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    from .bookmarks import router as bookmarks_router
    from .info import router as info_router

    app.include_router(info_router, tags=["info"])
    app.include_router(bookmarks_router, tags=["bookmarks"])

    return app


app = create_app()
