"""SQLite-backed row store.

Rows are kept as JSON documents in a single ``rows`` table keyed by ``id``.
Every statement runs on one dedicated worker thread, so the event loop never
blocks and at most one statement is in flight against the database.
"""

import asyncio
import functools
import json
import os
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from config import env_manager

from ..errors import StoreError, StoreReadError, StoreWriteError
from ..models import ID_COLUMN, Row
from .base import BaseRowStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS rows (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL
) WITHOUT ROWID
"""

_UPSERT = (
    "INSERT INTO rows (id, data) VALUES (?, ?) "
    "ON CONFLICT(id) DO UPDATE SET data = excluded.data"
)


class SQLiteRowStore(BaseRowStore):
    """Persistent row store on a local SQLite file."""

    backend_name = "sqlite"

    def __init__(
        self,
        path: Optional[str] = None,
        write_chunk_size: Optional[int] = None,
        scan_chunk_size: Optional[int] = None,
    ):
        super().__init__(write_chunk_size=write_chunk_size, scan_chunk_size=scan_chunk_size)
        self.path = str(path or env_manager.get_setting("row_store_path"))
        self._conn: Optional[sqlite3.Connection] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        """Open the database file, creating it and the schema if needed."""
        if self._conn is not None:
            return
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csvlab-rowstore")
        try:
            self._conn = await self._run(self._open_sync)
        except sqlite3.Error as e:
            self._executor.shutdown(wait=False)
            self._executor = None
            raise StoreError(f"Failed to open row store at {self.path}: {e}") from e
        self._logger.info(f"Opened SQLite row store at {self.path}")

    def _open_sync(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode; transactions are opened explicitly
        conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute(_SCHEMA)
        return conn

    async def close(self) -> None:
        """Close the connection and stop the worker thread."""
        if self._conn is None:
            return
        async with self._lock:
            await self._run(self._conn.close)
            self._conn = None
        self._executor.shutdown(wait=True)
        self._executor = None
        self._logger.info(f"Closed SQLite row store at {self.path}")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def _require_open(self) -> None:
        if self._conn is None:
            raise StoreError("Row store is not open")

    async def clear(self) -> int:
        """Remove every row in one transaction."""
        self._require_open()
        async with self._lock:
            try:
                removed = await self._run(self._clear_sync)
            except sqlite3.Error as e:
                self._logger.error(f"Failed to clear row store: {e}")
                raise StoreWriteError(f"Failed to clear row store: {e}") from e
        self._logger.info(f"Cleared {removed} rows from {self.path}")
        return removed

    def _clear_sync(self) -> int:
        cur = self._conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        try:
            removed = cur.execute("SELECT COUNT(*) FROM rows").fetchone()[0]
            cur.execute("DELETE FROM rows")
            cur.execute("COMMIT")
        except BaseException:
            cur.execute("ROLLBACK")
            raise
        return removed

    async def upsert_many(self, rows: Iterable[Row]) -> int:
        """Insert or replace rows, committing one transaction per chunk."""
        self._require_open()
        written = 0
        async with self._lock:
            for chunk in self._chunked(rows):
                try:
                    payload = [self._encode(self._normalize_row(row)) for row in chunk]
                    await self._run(self._upsert_sync, payload)
                except StoreWriteError as e:
                    e.rows_written = written
                    self._logger.error(f"Row write failed after {written} rows: {e}")
                    raise
                except sqlite3.Error as e:
                    self._logger.error(f"Row write failed after {written} rows: {e}")
                    raise StoreWriteError(
                        f"Failed to write rows: {e}", rows_written=written
                    ) from e
                written += len(payload)
                self._logger.debug(f"Committed {len(payload)} rows ({written} in this call)")
        return written

    @staticmethod
    def _encode(row: Row) -> Tuple[str, str]:
        return row[ID_COLUMN], json.dumps(row, ensure_ascii=False, allow_nan=False)

    def _upsert_sync(self, payload: List[Tuple[str, str]]) -> None:
        cur = self._conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        try:
            cur.executemany(_UPSERT, payload)
            cur.execute("COMMIT")
        except BaseException:
            cur.execute("ROLLBACK")
            raise

    async def _read(self, fn, *args):
        self._require_open()
        async with self._lock:
            try:
                return await self._run(fn, *args)
            except sqlite3.Error as e:
                self._logger.error(f"Row store read failed: {e}")
                raise StoreReadError(f"Failed to read rows: {e}") from e
            except json.JSONDecodeError as e:
                self._logger.error(f"Corrupt row document: {e}")
                raise StoreReadError(f"Corrupt row document: {e}") from e

    async def count(self) -> int:
        return await self._read(self._count_sync)

    def _count_sync(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM rows").fetchone()[0]

    async def cursor_read(self, offset: int = 0, limit: int = 10000) -> List[Row]:
        self._check_window(offset, limit)
        return await self._read(self._cursor_read_sync, offset, limit)

    def _cursor_read_sync(self, offset: int, limit: int) -> List[Row]:
        cur = self._conn.execute(
            "SELECT data FROM rows ORDER BY id LIMIT ? OFFSET ?", (limit, offset)
        )
        return [json.loads(data) for (data,) in cur.fetchall()]

    async def iter_rows(self, chunk_size: Optional[int] = None) -> AsyncIterator[Row]:
        """Keyset-paginated scan; the lock is released between chunks."""
        size = chunk_size or self.scan_chunk_size
        last_id: Optional[str] = None
        while True:
            chunk = await self._read(self._page_sync, last_id, size)
            if not chunk:
                return
            for row in chunk:
                yield row
            if len(chunk) < size:
                return
            last_id = chunk[-1][ID_COLUMN]
            await asyncio.sleep(0)

    def _page_sync(self, after_id: Optional[str], size: int) -> List[Row]:
        if after_id is None:
            cur = self._conn.execute("SELECT data FROM rows ORDER BY id LIMIT ?", (size,))
        else:
            cur = self._conn.execute(
                "SELECT data FROM rows WHERE id > ? ORDER BY id LIMIT ?", (after_id, size)
            )
        return [json.loads(data) for (data,) in cur.fetchall()]

    async def fetch_all(self) -> List[Row]:
        rows = []
        async for row in self.iter_rows():
            rows.append(row)
        return rows

    async def get(self, row_id: str) -> Optional[Row]:
        return await self._read(self._get_sync, row_id)

    def _get_sync(self, row_id: str) -> Optional[Row]:
        found = self._conn.execute("SELECT data FROM rows WHERE id = ?", (row_id,)).fetchone()
        return json.loads(found[0]) if found else None

    async def all_ids(self) -> List[str]:
        return await self._read(self._all_ids_sync)

    def _all_ids_sync(self) -> List[str]:
        return [row_id for (row_id,) in self._conn.execute("SELECT id FROM rows ORDER BY id")]

    async def get_storage_stats(self) -> Dict[str, Any]:
        row_count = await self.count()
        size_bytes = 0
        if self.path != ":memory:" and os.path.exists(self.path):
            size_bytes = os.path.getsize(self.path)
        return {
            "backend": self.backend_name,
            "path": self.path,
            "row_count": row_count,
            "file_size_mb": size_bytes / (1024 * 1024),
            "write_chunk_size": self.write_chunk_size,
            "scan_chunk_size": self.scan_chunk_size,
        }
