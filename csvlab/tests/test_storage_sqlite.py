"""Tests for the SQLite row store."""

import sqlite3
from unittest.mock import patch

import pytest
import pytest_asyncio

from ..errors import StoreError, StoreReadError, StoreWriteError
from ..storage import open_row_store
from ..storage.sqlite import SQLiteRowStore


def make_rows(ids):
    return [{"id": row_id, "score": float(i), "label": f"row {row_id}"} for i, row_id in enumerate(ids)]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "nested" / "rows.db")


@pytest_asyncio.fixture
async def store(db_path):
    """Create an opened SQLite store with small chunks."""
    store = SQLiteRowStore(path=db_path, write_chunk_size=2, scan_chunk_size=2)
    await store.open()
    yield store
    await store.close()


class TestSQLiteRowStore:
    """Test cases for SQLiteRowStore."""

    @pytest.mark.asyncio
    async def test_open_creates_parent_directory(self, store, tmp_path):
        assert (tmp_path / "nested" / "rows.db").exists()

    @pytest.mark.asyncio
    async def test_upsert_count_and_get(self, store):
        assert await store.upsert_many(make_rows(["b", "a", "c"])) == 3
        assert await store.count() == 3
        assert await store.get("a") == {"id": "a", "score": 1.0, "label": "row a"}

    @pytest.mark.asyncio
    async def test_unicode_round_trip(self, store):
        await store.upsert_many([{"id": "u1", "label": "héllo wörld 日本"}])
        assert (await store.get("u1"))["label"] == "héllo wörld 日本"

    @pytest.mark.asyncio
    async def test_duplicate_ids_overwrite(self, store):
        await store.upsert_many([{"id": "a", "v": 1.0}, {"id": "a", "v": 2.0}, {"id": "b", "v": 0.0}])
        assert await store.count() == 2
        assert (await store.get("a"))["v"] == 2.0

    @pytest.mark.asyncio
    async def test_store_order_is_ascending_id(self, store):
        await store.upsert_many(make_rows(["c", "a", "e", "b", "d"]))
        assert await store.all_ids() == ["a", "b", "c", "d", "e"]
        assert [r["id"] async for r in store.iter_rows()] == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_cursor_read(self, store):
        await store.upsert_many(make_rows(["a", "b", "c", "d", "e"]))
        assert [r["id"] for r in await store.cursor_read(2, 2)] == ["c", "d"]
        assert [r["id"] for r in await store.cursor_read(4, 10)] == ["e"]

    @pytest.mark.asyncio
    async def test_iter_rows_exact_chunk_multiple(self, store):
        await store.upsert_many(make_rows(["a", "b", "c", "d"]))
        assert len([r async for r in store.iter_rows()]) == 4

    @pytest.mark.asyncio
    async def test_scan_stops_early(self, store):
        await store.upsert_many(make_rows(["a", "b", "c", "d", "e"]))
        assert await store.scan(lambda row: row["id"] != "b") == 2

    @pytest.mark.asyncio
    async def test_fetch_all(self, store):
        await store.upsert_many(make_rows(["a", "b", "c"]))
        assert len(await store.fetch_all()) == 3

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.upsert_many(make_rows(["a", "b", "c"]))
        assert await store.clear() == 3
        assert await store.count() == 0
        assert await store.fetch_all() == []

    @pytest.mark.asyncio
    async def test_persists_across_reopen(self, db_path):
        async with SQLiteRowStore(path=db_path) as store:
            await store.upsert_many(make_rows(["a", "b"]))

        async with SQLiteRowStore(path=db_path) as store:
            assert await store.count() == 2
            assert await store.all_ids() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_invalid_row_reports_committed_rows(self, store):
        rows = make_rows(["a", "b", "c"]) + [{"id": ""}]
        with pytest.raises(StoreWriteError) as exc_info:
            await store.upsert_many(rows)
        assert exc_info.value.rows_written == 2
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_sqlite_failure_reports_committed_rows(self, store):
        original = store._upsert_sync
        calls = []

        def flaky(payload):
            calls.append(len(payload))
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return original(payload)

        with patch.object(store, "_upsert_sync", side_effect=flaky):
            with pytest.raises(StoreWriteError) as exc_info:
                await store.upsert_many(make_rows(["a", "b", "c", "d", "e"]))

        assert exc_info.value.rows_written == 2
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_read_failure_is_store_read_error(self, store):
        with patch.object(store, "_count_sync", side_effect=sqlite3.DatabaseError("malformed")):
            with pytest.raises(StoreReadError):
                await store.count()

    @pytest.mark.asyncio
    async def test_closed_store_raises(self, db_path):
        store = SQLiteRowStore(path=db_path)
        with pytest.raises(StoreError):
            await store.count()

    @pytest.mark.asyncio
    async def test_storage_stats(self, store, db_path):
        await store.upsert_many(make_rows(["a"]))
        stats = await store.get_storage_stats()
        assert stats["backend"] == "sqlite"
        assert stats["path"] == db_path
        assert stats["row_count"] == 1

    @pytest.mark.asyncio
    async def test_open_row_store_sqlite(self, db_path):
        store = await open_row_store(backend="sqlite", path=db_path)
        try:
            assert isinstance(store, SQLiteRowStore)
            assert store.is_open
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        async with SQLiteRowStore(path=":memory:") as store:
            await store.upsert_many(make_rows(["a", "b"]))
            assert await store.count() == 2
