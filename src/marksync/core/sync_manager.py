"""Sync manager implementing the xBrowserSync bookmark operations."""

import logging
from datetime import datetime
from typing import Callable

from ..models.sync import BookmarkSync, utc_now
from ..utils.id_gen import DEFAULT_ID_LENGTH, generate_sync_id
from .sync_store import StaleSyncError, SyncStorage

logger = logging.getLogger(__name__)


class InvalidSyncIdError(Exception):
    """Sync ID missing from the request."""

    pass


class SyncManager:
    """Creates, reads and updates bookmark syncs."""

    def __init__(
        self,
        storage: SyncStorage,
        id_generator: Callable[[int], str] = generate_sync_id,
        id_length: int = DEFAULT_ID_LENGTH,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize sync manager.

        Args:
            storage: Storage providing put, get and compare_and_swap
            id_generator: Function returning a random ID of the given length
            id_length: Length of generated sync IDs
            clock: Returns the current UTC time
        """
        self.storage = storage
        self.id_generator = id_generator
        self.id_length = id_length
        self.clock = clock

    async def create_sync(self, version: str = "") -> BookmarkSync:
        """Create a new, empty sync.

        Args:
            version: Version of the client creating the sync

        Returns:
            Created BookmarkSync

        Raises:
            RandomnessUnavailableError: If an ID cannot be generated
            PersistenceError: If the sync cannot be stored
        """
        sync = BookmarkSync(
            id=self.id_generator(self.id_length),
            bookmarks="",
            last_updated=self.clock(),
            version=version,
        )
        await self.storage.put(sync)

        logger.info(f"Created sync {sync.id} (client version {version or 'unknown'})")

        return sync

    async def get_sync(self, sync_id: str) -> BookmarkSync:
        """Get sync by ID.

        Raises:
            InvalidSyncIdError: If sync_id is empty
            SyncNotFoundError: If the sync doesn't exist
        """
        self._check_id(sync_id)
        return await self.storage.get(sync_id)

    async def update_sync(
        self, sync_id: str, bookmarks: str, last_updated: datetime
    ) -> BookmarkSync:
        """Replace a sync's bookmarks.

        Args:
            sync_id: Sync ID
            bookmarks: New encrypted bookmarks
            last_updated: lastUpdated the client believes is current

        Returns:
            Updated BookmarkSync with a new lastUpdated

        Raises:
            InvalidSyncIdError: If sync_id is empty
            SyncNotFoundError: If the sync doesn't exist
            StaleSyncError: If last_updated doesn't match the stored value
            PersistenceError: If the sync cannot be stored
        """
        self._check_id(sync_id)

        try:
            updated = await self.storage.compare_and_swap(
                sync_id, last_updated, bookmarks, self.clock()
            )
        except StaleSyncError as e:
            logger.warning(f"Rejected stale update: {e}")
            raise

        logger.info(f"Updated sync {sync_id} ({len(bookmarks)} bytes)")

        return updated

    async def get_last_updated(self, sync_id: str) -> datetime:
        """Get the lastUpdated timestamp of a sync."""
        sync = await self.get_sync(sync_id)
        return sync.last_updated

    async def get_version(self, sync_id: str) -> str:
        """Get the client version that created a sync."""
        sync = await self.get_sync(sync_id)
        return sync.version

    @staticmethod
    def _check_id(sync_id: str) -> None:
        if not sync_id or not sync_id.strip():
            raise InvalidSyncIdError("Sync ID is required")
