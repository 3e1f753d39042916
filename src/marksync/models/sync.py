"""Bookmark sync data model."""

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FRACTION = re.compile(r"[Tt _]\d{2}:\d{2}:\d{2}[.,](\d+)")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as RFC3339 UTC with microsecond precision.

    Example: ``2016-07-06T12:43:16.866000Z``
    """
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def check_precision(value: Any) -> Any:
    """Reject timestamp strings with non-zero digits below one microsecond.

    pydantic drops such digits when parsing, so the value could not be
    compared exactly. Other values pass through unchanged.

    Raises:
        ValueError: If the fraction is finer than a microsecond
    """
    if isinstance(value, str):
        match = _FRACTION.search(value)
        if match and match.group(1)[6:].strip("0"):
            raise ValueError(f"Timestamp is more precise than a microsecond: {value}")
    return value


def normalize_timestamp(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are assumed to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookmarkSync(BaseModel):
    """A single sync: the encrypted bookmarks blob plus its metadata.

    Fields default to their zero values so that a partially written entry
    can still be decoded; ``is_complete`` decides whether it is usable.
    """

    id: str = Field(default="", description="32 character alphanumeric sync ID")
    bookmarks: str = Field(default="", description="Client-encrypted bookmark data")
    last_updated: datetime = Field(
        default=EPOCH,
        alias="lastUpdated",
        description="Last updated timestamp, used as the optimistic concurrency token",
    )
    version: str = Field(default="", description="Client version that created the sync")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "52758cb942814faa9ab255208025ae59",
                "bookmarks": "DWCx6wR9ggPqPRrhU4O4oLN5P09oULX4Xt+ckxswtFNds...",
                "lastUpdated": "2016-07-06T12:43:16.866000Z",
                "version": "1.0.0",
            }
        },
    )

    @field_validator("last_updated")
    @classmethod
    def validate_last_updated(cls, v: datetime) -> datetime:
        """Store timestamps as aware UTC datetimes."""
        return normalize_timestamp(v)

    @field_serializer("last_updated")
    def serialize_last_updated(self, v: datetime) -> str:
        return format_timestamp(v)

    def is_complete(self) -> bool:
        """Whether every required field carries a non-zero value."""
        return bool(self.id) and self.last_updated != EPOCH and bool(self.version)
