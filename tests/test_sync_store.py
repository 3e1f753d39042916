"""Tests for SyncStore."""

import asyncio
import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from marksync.core.kv_backend import KeyValueBackend
from marksync.core.sync_store import (
    PersistenceError,
    StaleSyncError,
    SyncNotFoundError,
    SyncStore,
    sync_key,
)
from marksync.models.sync import BookmarkSync

T0 = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
SYNC_ID = "k3j5n7b9v1c3x5z7l9h1g3f5d7s9a1q3"


def make_sync(**overrides) -> BookmarkSync:
    data = {"id": SYNC_ID, "bookmarks": "", "last_updated": T0, "version": "1.0.0"}
    data.update(overrides)
    return BookmarkSync(**data)


class TestSyncStore:
    """Test put and get."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        store = SyncStore(KeyValueBackend())
        sync = make_sync(bookmarks="encrypted")

        await store.put(sync)

        assert await store.get(SYNC_ID) == sync

    @pytest.mark.asyncio
    async def test_key_namespace(self):
        """Test syncs are stored as JSON under bookmarks:{id}."""
        backend = KeyValueBackend()
        store = SyncStore(backend)

        await store.put(make_sync())

        raw = backend.get(f"bookmarks:{SYNC_ID}")
        assert json.loads(raw) == {
            "id": SYNC_ID,
            "bookmarks": "",
            "lastUpdated": "2024-05-01T10:00:00.123456Z",
            "version": "1.0.0",
        }
        assert sync_key(SYNC_ID) == f"bookmarks:{SYNC_ID}"

    @pytest.mark.asyncio
    async def test_put_overwrites(self):
        store = SyncStore(KeyValueBackend())
        await store.put(make_sync(bookmarks="one"))
        await store.put(make_sync(bookmarks="two"))

        assert (await store.get(SYNC_ID)).bookmarks == "two"
        assert store.count() == 1

    @pytest.mark.asyncio
    async def test_get_missing(self):
        store = SyncStore(KeyValueBackend())

        with pytest.raises(SyncNotFoundError):
            await store.get("doesnotexist")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps({"id": SYNC_ID, "bookmarks": "x"}),
            json.dumps({"id": SYNC_ID, "lastUpdated": "2024-05-01T10:00:00Z", "version": ""}),
            json.dumps({"id": "", "lastUpdated": "2024-05-01T10:00:00Z", "version": "1.0.0"}),
        ],
    )
    async def test_corrupt_or_partial_entry_is_not_found(self, raw):
        """Test undecodable or incomplete entries are reported as missing."""
        backend = KeyValueBackend()
        store = SyncStore(backend)
        backend.set(sync_key(SYNC_ID), raw)

        with pytest.raises(SyncNotFoundError):
            await store.get(SYNC_ID)

    @pytest.mark.asyncio
    async def test_put_on_closed_backend(self):
        backend = KeyValueBackend()
        store = SyncStore(backend)
        backend.close()

        with pytest.raises(PersistenceError):
            await store.put(make_sync())

    @pytest.mark.asyncio
    async def test_get_on_closed_backend(self):
        backend = KeyValueBackend()
        store = SyncStore(backend)
        backend.close()

        with pytest.raises(PersistenceError):
            await store.get(SYNC_ID)

    @pytest.mark.asyncio
    async def test_count_after_reopen(self):
        """Test syncs are read back from the database file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "test.db"
            store = SyncStore(KeyValueBackend(str(db_path)))
            await store.put(make_sync(id="a" * 32))
            await store.put(make_sync(id="b" * 32))

            reopened = SyncStore(KeyValueBackend(str(db_path)))

            assert reopened.count() == 2
            assert (await reopened.get("b" * 32)).version == "1.0.0"


class TestCompareAndSwap:
    """Test the optimistic update."""

    @pytest.mark.asyncio
    async def test_matching_token_updates(self):
        store = SyncStore(KeyValueBackend())
        await store.put(make_sync())
        now = T0 + timedelta(seconds=5)

        updated = await store.compare_and_swap(SYNC_ID, T0, "abc", now)

        assert updated.bookmarks == "abc"
        assert updated.last_updated == now
        assert updated.id == SYNC_ID
        assert updated.version == "1.0.0"
        assert await store.get(SYNC_ID) == updated

    @pytest.mark.asyncio
    async def test_stale_token_rejected(self):
        store = SyncStore(KeyValueBackend())
        await store.put(make_sync(bookmarks="original"))

        with pytest.raises(StaleSyncError):
            await store.compare_and_swap(
                SYNC_ID, T0 - timedelta(microseconds=1), "abc", T0 + timedelta(seconds=1)
            )

        assert (await store.get(SYNC_ID)).bookmarks == "original"

    @pytest.mark.asyncio
    async def test_token_compared_as_instant(self):
        """Test an equal instant in another timezone matches."""
        store = SyncStore(KeyValueBackend())
        await store.put(make_sync())
        same_instant = T0.astimezone(timezone(timedelta(hours=-5)))

        updated = await store.compare_and_swap(SYNC_ID, same_instant, "abc", T0 + timedelta(1))

        assert updated.bookmarks == "abc"

    @pytest.mark.asyncio
    async def test_timestamp_always_advances(self):
        """Test a clock that has not moved still yields a later lastUpdated."""
        store = SyncStore(KeyValueBackend())
        await store.put(make_sync())

        updated = await store.compare_and_swap(SYNC_ID, T0, "abc", T0)

        assert updated.last_updated == T0 + timedelta(microseconds=1)

    @pytest.mark.asyncio
    async def test_missing_sync(self):
        store = SyncStore(KeyValueBackend())

        with pytest.raises(SyncNotFoundError):
            await store.compare_and_swap(SYNC_ID, T0, "abc", T0)

    @pytest.mark.asyncio
    async def test_concurrent_swaps_single_winner(self):
        """Test only one of many concurrent updates with the same token succeeds."""
        with tempfile.TemporaryDirectory() as temp_dir:
            store = SyncStore(KeyValueBackend(str(Path(temp_dir) / "test.db")))
            await store.put(make_sync())

            results = await asyncio.gather(
                *[
                    store.compare_and_swap(
                        SYNC_ID, T0, f"payload-{i}", T0 + timedelta(seconds=1)
                    )
                    for i in range(20)
                ],
                return_exceptions=True,
            )

            winners = [r for r in results if isinstance(r, BookmarkSync)]
            losers = [r for r in results if isinstance(r, StaleSyncError)]
            assert len(winners) == 1
            assert len(losers) == 19
            assert await store.get(SYNC_ID) == winners[0]

    @pytest.mark.asyncio
    async def test_swap_across_handles(self):
        """Test two stores on one file (two server workers) honour each other's updates."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = str(Path(temp_dir) / "test.db")
            first = SyncStore(KeyValueBackend(db_path))
            second = SyncStore(KeyValueBackend(db_path))
            await first.put(make_sync())

            await second.compare_and_swap(SYNC_ID, T0, "from-second", T0 + timedelta(seconds=1))

            with pytest.raises(StaleSyncError):
                await first.compare_and_swap(SYNC_ID, T0, "from-first", T0 + timedelta(seconds=2))
            assert (await first.get(SYNC_ID)).bookmarks == "from-second"

    @pytest.mark.asyncio
    async def test_write_between_read_and_swap_wins(self):
        """Test a write landing after the token check makes the swap stale."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = str(Path(temp_dir) / "test.db")
            other = KeyValueBackend(db_path)

            class InterleavedBackend(KeyValueBackend):
                def get(self, key):
                    raw = super().get(key)
                    sync = BookmarkSync.model_validate_json(raw)
                    sync.bookmarks = "from-other-worker"
                    sync.last_updated = T0 + timedelta(seconds=3)
                    other.set(key, sync.model_dump_json(by_alias=True))
                    return raw

            store = SyncStore(InterleavedBackend(db_path))
            await SyncStore(other).put(make_sync())

            with pytest.raises(StaleSyncError, match="concurrently"):
                await store.compare_and_swap(SYNC_ID, T0, "mine", T0 + timedelta(seconds=1))

            stored = await SyncStore(other).get(SYNC_ID)
            assert stored.bookmarks == "from-other-worker"
