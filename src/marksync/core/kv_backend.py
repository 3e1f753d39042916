"""Key-value storage on SQLite through peewee.

Keys and values are strings kept in one ``kv_entries`` table. Every process
opening the same file reads and writes the same rows, and conditional updates
are decided by SQLite itself, so ``compare_and_set`` holds across workers.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

import peewee

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
DEFAULT_TIMEOUT = 5.0

T = TypeVar("T")


class BackendError(Exception):
    """Key-value backend error."""

    pass


class KeyNotFoundError(BackendError):
    """Requested key does not exist."""

    pass


class BackendClosedError(BackendError):
    """Backend has been closed."""

    pass


class KeyValueEntry(peewee.Model):
    """A stored value. Queries bind it to the backend's database explicitly."""

    key = peewee.CharField(primary_key=True)
    value = peewee.TextField()

    class Meta:
        table_name = "kv_entries"


class KeyValueBackend:
    """String key-value store in a SQLite database. Safe for use across threads.

    The backend owns a single connection; a re-entrant lock serializes its use
    inside the process and SQLite's own locking orders writes between
    processes.
    """

    def __init__(self, path: str = MEMORY_PATH, timeout: float = DEFAULT_TIMEOUT):
        """Open (or create) the database at path.

        Args:
            path: Database file path, or ``:memory:`` for a private in-memory database
            timeout: Seconds to wait for another writer to release the database

        Raises:
            BackendError: If the database cannot be opened
        """
        self.path = str(path)
        self._lock = threading.RLock()
        self._closed = False

        try:
            if self.path != MEMORY_PATH:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)

            self.database = peewee.SqliteDatabase(
                self.path,
                pragmas={"journal_mode": "wal", "synchronous": "normal"},
                timeout=timeout,
                check_same_thread=False,
                thread_safe=False,
            )
            with self.database.bind_ctx([KeyValueEntry]):
                self.database.create_tables([KeyValueEntry], safe=True)
        except (OSError, peewee.PeeweeException) as e:
            raise BackendError(f"Cannot open database {self.path}: {e}") from e

        logger.info(f"Opened database {self.path}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size_bytes(self) -> int:
        """Size of the database file and its write-ahead log (0 in memory)."""
        if self.path == MEMORY_PATH:
            return 0

        total = 0
        for file_path in (Path(self.path), Path(self.path + "-wal")):
            try:
                total += file_path.stat().st_size
            except FileNotFoundError:
                pass
        return total

    def get(self, key: str) -> str:
        """Return the value stored under key.

        Raises:
            KeyNotFoundError: If the key does not exist
            BackendError: If the database fails
        """
        entry = self._run(
            lambda: KeyValueEntry.select(KeyValueEntry.value)
            .where(KeyValueEntry.key == key)
            .bind(self.database)
            .first()
        )
        if entry is None:
            raise KeyNotFoundError(f"Key not found: {key}")
        return entry.value

    def set(self, key: str, value: str) -> None:
        """Insert or replace the value stored under key."""
        self._run(
            lambda: KeyValueEntry.insert(key=key, value=value)
            .on_conflict_replace()
            .bind(self.database)
            .execute()
        )

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        """Replace the value under key only if it still equals expected.

        Runs as a single conditional UPDATE, so a concurrent writer in this or
        any other process either lands before it (and this call returns False)
        or after it.

        Returns:
            True if the value was replaced
        """
        updated = self._run(
            lambda: KeyValueEntry.update(value=value)
            .where((KeyValueEntry.key == key) & (KeyValueEntry.value == expected))
            .bind(self.database)
            .execute()
        )
        return updated == 1

    def count(self, prefix: str = "") -> int:
        """Number of keys starting with prefix."""
        return self._run(
            lambda: KeyValueEntry.select()
            .where(KeyValueEntry.key.startswith(prefix))
            .bind(self.database)
            .count()
        )

    def compact(self) -> None:
        """Reclaim unused space in the database file.

        Safe while other processes use the database; they wait for it to finish.
        """
        if self.path == MEMORY_PATH:
            return

        before = self.size_bytes
        self._run(lambda: self.database.execute_sql("VACUUM"))
        self._run(lambda: self.database.execute_sql("PRAGMA wal_checkpoint(TRUNCATE)"))
        logger.info(f"Compacted {self.path}: {before} -> {self.size_bytes} bytes")

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self.database.close()
                self._closed = True

    def _run(self, operation: Callable[[], T]) -> T:
        with self._lock:
            if self._closed:
                raise BackendClosedError("Backend is closed")
            try:
                return operation()
            except peewee.PeeweeException as e:
                raise BackendError(f"Database error on {self.path}: {e}") from e


def open_backend(path: Optional[str]) -> KeyValueBackend:
    """Open a backend at path. The special path ``:memory:`` is not persisted."""
    if path is None or str(path) == MEMORY_PATH:
        logger.info("Using in-memory database; data will not survive restarts")
        return KeyValueBackend(MEMORY_PATH)
    return KeyValueBackend(str(path))
