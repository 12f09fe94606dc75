"""In-memory row store implementation."""

import asyncio
import bisect
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from ..errors import StoreError, StoreWriteError
from ..models import ID_COLUMN, Row
from .base import BaseRowStore


class InMemoryRowStore(BaseRowStore):
    """Dict-backed row store with the same ordering and chunking as SQLite."""

    backend_name = "memory"

    def __init__(
        self,
        write_chunk_size: Optional[int] = None,
        scan_chunk_size: Optional[int] = None,
    ):
        super().__init__(write_chunk_size=write_chunk_size, scan_chunk_size=scan_chunk_size)
        self._lock = asyncio.Lock()
        self._rows: Dict[str, Row] = {}
        self._sorted_ids: Optional[List[str]] = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self._open = True
        self._logger.debug("Opened in-memory row store")

    async def close(self) -> None:
        self._open = False

    def _require_open(self) -> None:
        if not self._open:
            raise StoreError("Row store is not open")

    def _ids(self) -> List[str]:
        """Sorted id list, rebuilt lazily after writes (assumes lock held)."""
        if self._sorted_ids is None:
            self._sorted_ids = sorted(self._rows)
        return self._sorted_ids

    async def clear(self) -> int:
        self._require_open()
        async with self._lock:
            removed = len(self._rows)
            # Swap rather than mutate so no reader sees a half-cleared dict
            self._rows = {}
            self._sorted_ids = None
        self._logger.info(f"Cleared {removed} rows from memory")
        return removed

    async def upsert_many(self, rows: Iterable[Row]) -> int:
        self._require_open()
        written = 0
        async with self._lock:
            for chunk in self._chunked(rows):
                try:
                    staged = [self._normalize_row(row) for row in chunk]
                except StoreWriteError as e:
                    e.rows_written = written
                    self._logger.error(f"Row write failed after {written} rows: {e}")
                    raise
                for row in staged:
                    self._rows[row[ID_COLUMN]] = row
                self._sorted_ids = None
                written += len(staged)
                await asyncio.sleep(0)
        return written

    async def count(self) -> int:
        self._require_open()
        return len(self._rows)

    async def cursor_read(self, offset: int = 0, limit: int = 10000) -> List[Row]:
        self._require_open()
        self._check_window(offset, limit)
        async with self._lock:
            ids = self._ids()[offset:offset + limit]
            return [dict(self._rows[row_id]) for row_id in ids]

    async def iter_rows(self, chunk_size: Optional[int] = None) -> AsyncIterator[Row]:
        self._require_open()
        size = chunk_size or self.scan_chunk_size
        last_id: Optional[str] = None
        while True:
            async with self._lock:
                ids = self._ids()
                start = 0 if last_id is None else bisect.bisect_right(ids, last_id)
                chunk = [dict(self._rows[row_id]) for row_id in ids[start:start + size]]
            if not chunk:
                return
            for row in chunk:
                yield row
            if len(chunk) < size:
                return
            last_id = chunk[-1][ID_COLUMN]
            await asyncio.sleep(0)

    async def fetch_all(self) -> List[Row]:
        self._require_open()
        async with self._lock:
            return [dict(self._rows[row_id]) for row_id in self._ids()]

    async def get(self, row_id: str) -> Optional[Row]:
        self._require_open()
        row = self._rows.get(row_id)
        return dict(row) if row is not None else None

    async def all_ids(self) -> List[str]:
        self._require_open()
        async with self._lock:
            return list(self._ids())

    async def get_storage_stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend_name,
            "path": None,
            "row_count": len(self._rows),
            "write_chunk_size": self.write_chunk_size,
            "scan_chunk_size": self.scan_chunk_size,
        }
