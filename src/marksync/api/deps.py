"""Request dependencies shared by the routers."""

from typing import Callable

from fastapi import HTTPException, Request

from ..core.sync_manager import SyncManager
from ..models.config import AppConfig

# Reads the sync ID from a request; swap it out on app.state to change routing.
SyncIdExtractor = Callable[[Request], str]


def path_sync_id(request: Request) -> str:
    """Sync ID from the ``sync_id`` path parameter."""
    return request.path_params.get("sync_id", "").strip()


def get_sync_id(request: Request) -> str:
    extractor: SyncIdExtractor = request.app.state.sync_id_extractor
    return extractor(request)


def get_sync_manager(request: Request) -> SyncManager:
    manager = request.app.state.sync_manager
    if manager is None:
        raise HTTPException(status_code=500, detail="Sync manager is not initialized")
    return manager


def get_config(request: Request) -> AppConfig:
    return request.app.state.config or AppConfig()
