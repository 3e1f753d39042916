"""Persistence of bookmark syncs in the key-value backend."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Protocol, Tuple

from ..models.sync import BookmarkSync, normalize_timestamp
from ..utils.json_codec import CodecError, deserialize_sync, serialize_sync
from .kv_backend import BackendError, KeyNotFoundError, KeyValueBackend

logger = logging.getLogger(__name__)

KEY_PREFIX = "bookmarks:"


class PersistenceError(Exception):
    """Sync could not be written to or read from the backend."""

    pass


class SyncNotFoundError(Exception):
    """No usable sync stored under the requested ID."""

    pass


class StaleSyncError(Exception):
    """Client's lastUpdated does not match the stored sync."""

    pass


class SyncStorage(Protocol):
    """Storage capabilities required by SyncManager."""

    async def put(self, sync: BookmarkSync) -> None: ...

    async def get(self, sync_id: str) -> BookmarkSync: ...

    async def compare_and_swap(
        self,
        sync_id: str,
        expected_last_updated: datetime,
        bookmarks: str,
        now: datetime,
    ) -> BookmarkSync: ...


def sync_key(sync_id: str) -> str:
    """Backend key for a sync ID."""
    return f"{KEY_PREFIX}{sync_id}"


class SyncStore:
    """Stores BookmarkSync records as JSON under ``bookmarks:{id}`` keys."""

    def __init__(self, backend: KeyValueBackend):
        """Initialize sync store.

        Args:
            backend: Shared key-value backend, opened once per process
        """
        self.backend = backend

    async def put(self, sync: BookmarkSync) -> None:
        """Insert or replace a sync.

        Raises:
            PersistenceError: If serialization or the backend write fails
        """
        try:
            value = serialize_sync(sync)
        except CodecError as e:
            raise PersistenceError(str(e)) from e

        try:
            await asyncio.to_thread(self.backend.set, sync_key(sync.id), value)
        except BackendError as e:
            logger.error(f"Failed to store sync {sync.id}: {e}")
            raise PersistenceError(f"Failed to store sync {sync.id}: {e}") from e

    async def get(self, sync_id: str) -> BookmarkSync:
        """Load a sync by ID.

        Raises:
            SyncNotFoundError: If the sync is absent, undecodable or incomplete
            PersistenceError: If the backend read fails
        """
        try:
            _, sync = await asyncio.to_thread(self._read, sync_id)
        except BackendError as e:
            raise PersistenceError(f"Failed to read sync {sync_id}: {e}") from e
        return sync

    async def compare_and_swap(
        self,
        sync_id: str,
        expected_last_updated: datetime,
        bookmarks: str,
        now: datetime,
    ) -> BookmarkSync:
        """Replace a sync's bookmarks if its lastUpdated still matches.

        The write is conditional on the stored value being exactly the one the
        comparison was made against, so of several callers presenting the same
        token (in any process) only one succeeds.

        Args:
            sync_id: Sync ID
            expected_last_updated: lastUpdated the client last saw
            bookmarks: New encrypted bookmarks
            now: Proposed new lastUpdated; bumped by one microsecond if it
                does not advance past the stored value

        Returns:
            The stored sync after the update

        Raises:
            SyncNotFoundError: If the sync does not exist
            StaleSyncError: If expected_last_updated differs from the stored value
            PersistenceError: If the backend fails
        """
        expected = normalize_timestamp(expected_last_updated)
        now = normalize_timestamp(now)

        def swap() -> BookmarkSync:
            raw, current = self._read(sync_id)
            if current.last_updated != expected:
                raise StaleSyncError(
                    f"Sync {sync_id} was updated at {current.last_updated.isoformat()}, "
                    f"client has {expected.isoformat()}"
                )

            last_updated = now
            if last_updated <= current.last_updated:
                last_updated = current.last_updated + timedelta(microseconds=1)

            updated = BookmarkSync(
                id=current.id,
                bookmarks=bookmarks,
                last_updated=last_updated,
                version=current.version,
            )
            try:
                value = serialize_sync(updated)
            except CodecError as e:
                raise PersistenceError(str(e)) from e

            if not self.backend.compare_and_set(sync_key(sync_id), raw, value):
                raise StaleSyncError(f"Sync {sync_id} was updated concurrently")
            return updated

        try:
            return await asyncio.to_thread(swap)
        except BackendError as e:
            logger.error(f"Failed to update sync {sync_id}: {e}")
            raise PersistenceError(f"Failed to update sync {sync_id}: {e}") from e

    def count(self) -> int:
        """Number of stored syncs."""
        return self.backend.count(KEY_PREFIX)

    def _read(self, sync_id: str) -> Tuple[str, BookmarkSync]:
        """Stored JSON and decoded sync for sync_id."""
        try:
            raw = self.backend.get(sync_key(sync_id))
        except KeyNotFoundError:
            raise SyncNotFoundError(f"Sync not found: {sync_id}") from None

        try:
            sync = deserialize_sync(raw)
        except CodecError as e:
            logger.warning(f"Unreadable entry for sync {sync_id}, treating as missing: {e}")
            raise SyncNotFoundError(f"Sync not found: {sync_id}") from e

        if not sync.is_complete():
            logger.warning(f"Incomplete entry for sync {sync_id}, treating as missing")
            raise SyncNotFoundError(f"Sync not found: {sync_id}")

        return raw, sync
