"""Service info endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..models.config import AppConfig
from .deps import get_config

router = APIRouter()


class InfoResponse(BaseModel):
    """Information describing the sync service."""

    max_sync_size: int = Field(..., alias="maxSyncSize")
    message: str
    status: int = Field(..., description="1 = Online, 2 = Offline, 3 = Not accepting new syncs")
    version: str = Field(..., description="API version the service implements")

    model_config = ConfigDict(populate_by_name=True)


@router.get("/info", response_model=InfoResponse)
async def service_info(config: AppConfig = Depends(get_config)):
    """Retrieve information describing the service."""
    return InfoResponse(
        max_sync_size=config.max_sync_size,
        message=config.service_message,
        status=config.service_status,
        version=config.api_version,
    )
