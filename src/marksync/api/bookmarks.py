"""Bookmark sync endpoints (xBrowserSync API)."""

import json
import logging
from datetime import datetime
from typing import Any, Type, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from ..core.sync_manager import InvalidSyncIdError, SyncManager
from ..core.sync_store import PersistenceError, StaleSyncError, SyncNotFoundError
from ..models.sync import check_precision, format_timestamp
from ..utils.id_gen import RandomnessUnavailableError
from .deps import get_sync_id, get_sync_manager

logger = logging.getLogger(__name__)

router = APIRouter()

M = TypeVar("M", bound=BaseModel)


# Request/Response Models
class CreateSyncRequest(BaseModel):
    """Request body for creating a sync."""

    version: str = ""


class UpdateSyncRequest(BaseModel):
    """Request body for updating a sync."""

    bookmarks: str
    last_updated: datetime = Field(..., alias="lastUpdated")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("last_updated", mode="before")
    @classmethod
    def validate_last_updated(cls, v):
        return check_precision(v)


class LastUpdatedResponse(BaseModel):
    last_updated: datetime = Field(..., alias="lastUpdated")

    model_config = ConfigDict(populate_by_name=True)

    @field_serializer("last_updated")
    def serialize_last_updated(self, v: datetime) -> str:
        return format_timestamp(v)


class CreateSyncResponse(LastUpdatedResponse):
    id: str
    version: str


class SyncResponse(LastUpdatedResponse):
    bookmarks: str
    version: str


class VersionResponse(BaseModel):
    version: str


async def _parse_body(request: Request, model: Type[M], error_status: int) -> M:
    """Decode and validate a JSON request body, failing with error_status."""
    try:
        data: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=error_status, detail=f"Invalid JSON body: {e}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=error_status, detail=f"Invalid request body: {e}")


# Endpoints
@router.post("/bookmarks", response_model=CreateSyncResponse)
async def create_sync(
    request: Request,
    manager: SyncManager = Depends(get_sync_manager),
):
    """Create a new (empty) bookmark sync and return its ID."""
    body = await _parse_body(request, CreateSyncRequest, error_status=500)

    try:
        sync = await manager.create_sync(body.version)
    except RandomnessUnavailableError as e:
        raise HTTPException(status_code=500, detail=f"ID generation failed: {e}")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")

    return CreateSyncResponse(id=sync.id, last_updated=sync.last_updated, version=sync.version)


@router.get("/bookmarks/{sync_id}", response_model=SyncResponse)
async def get_sync(
    requested_id: str = Depends(get_sync_id),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Retrieve the bookmark sync for a sync ID."""
    try:
        sync = await manager.get_sync(requested_id)
    except InvalidSyncIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")

    return SyncResponse(
        bookmarks=sync.bookmarks,
        last_updated=sync.last_updated,
        version=sync.version,
    )


@router.put("/bookmarks/{sync_id}", response_model=LastUpdatedResponse)
async def update_sync(
    request: Request,
    requested_id: str = Depends(get_sync_id),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Update the encrypted bookmarks of a sync.

    The body's lastUpdated must equal the stored value; otherwise the client
    is out of date and must fetch the sync before retrying.
    """
    if not requested_id:
        raise HTTPException(status_code=400, detail="Sync ID is required")

    body = await _parse_body(request, UpdateSyncRequest, error_status=400)

    try:
        sync = await manager.update_sync(requested_id, body.bookmarks, body.last_updated)
    except InvalidSyncIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StaleSyncError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")

    return LastUpdatedResponse(last_updated=sync.last_updated)


@router.get("/bookmarks/{sync_id}/lastUpdated", response_model=LastUpdatedResponse)
async def get_last_updated(
    requested_id: str = Depends(get_sync_id),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Retrieve the lastUpdated timestamp of a sync."""
    try:
        last_updated = await manager.get_last_updated(requested_id)
    except InvalidSyncIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")

    return LastUpdatedResponse(last_updated=last_updated)


@router.get("/bookmarks/{sync_id}/version", response_model=VersionResponse)
async def get_version(
    requested_id: str = Depends(get_sync_id),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Retrieve the client version that created a sync."""
    try:
        version = await manager.get_version(requested_id)
    except InvalidSyncIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")

    return VersionResponse(version=version)
