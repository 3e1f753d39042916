"""JSON serialization and deserialization of stored syncs."""

import json

from pydantic import ValidationError

from ..models.sync import BookmarkSync


class CodecError(Exception):
    """Record encoding or decoding error."""

    pass


def serialize_sync(sync: BookmarkSync) -> str:
    """Serialize a BookmarkSync to its stored JSON form.

    Args:
        sync: BookmarkSync instance to serialize

    Returns:
        JSON object with keys id, bookmarks, lastUpdated and version

    Raises:
        CodecError: If serialization fails
    """
    try:
        return sync.model_dump_json(by_alias=True)
    except Exception as e:
        raise CodecError(f"Failed to serialize sync {sync.id}: {e}") from e


def deserialize_sync(raw: str) -> BookmarkSync:
    """Deserialize a BookmarkSync from stored JSON.

    Missing fields take their zero values; callers decide whether the result
    is complete.

    Raises:
        CodecError: If the value is not a valid JSON record
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CodecError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CodecError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return BookmarkSync.model_validate(data)
    except ValidationError as e:
        raise CodecError(f"Failed to deserialize sync: {e}") from e
