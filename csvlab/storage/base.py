"""Row store interface and shared backend functionality."""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from config import env_manager

from ..errors import StoreWriteError
from ..models import ID_COLUMN, Row

logger = logging.getLogger(__name__)


class RowStoreInterface(ABC):
    """Abstract interface for persistent row stores.

    Rows are keyed by their ``id`` column. Every read returns rows in the
    store order, which is ascending ``id``.
    """

    @abstractmethod
    async def open(self) -> None:
        """Create or open the underlying storage."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying storage."""
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Remove every row. Returns count of removed rows."""
        pass

    @abstractmethod
    async def upsert_many(self, rows: Iterable[Row]) -> int:
        """Insert or replace rows by id. Returns count of rows written.

        Raises:
            StoreWriteError: with ``rows_written`` set to the rows of this call
                that were durably committed before the failure.
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the exact number of stored rows."""
        pass

    @abstractmethod
    async def cursor_read(self, offset: int = 0, limit: int = 10000) -> List[Row]:
        """Return up to ``limit`` rows after skipping ``offset`` rows."""
        pass

    @abstractmethod
    def iter_rows(self, chunk_size: Optional[int] = None) -> AsyncIterator[Row]:
        """Iterate every row once, fetching ``chunk_size`` rows at a time."""
        pass

    @abstractmethod
    async def fetch_all(self) -> List[Row]:
        """Materialize every row."""
        pass

    @abstractmethod
    async def get(self, row_id: str) -> Optional[Row]:
        """Get one row by id."""
        pass

    @abstractmethod
    async def all_ids(self) -> List[str]:
        """Return every stored id in store order."""
        pass

    @abstractmethod
    async def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage statistics (backend, row count, etc.)."""
        pass

    async def scan(self, visit: Callable[[Row], Optional[bool]], chunk_size: Optional[int] = None) -> int:
        """Call ``visit`` once per row until it returns ``False``.

        Returns the number of rows visited.
        """
        visited = 0
        async for row in self.iter_rows(chunk_size):
            visited += 1
            if visit(row) is False:
                break
        return visited


class BaseRowStore(RowStoreInterface):
    """Base implementation with common functionality for row stores."""

    backend_name = "base"

    def __init__(
        self,
        write_chunk_size: Optional[int] = None,
        scan_chunk_size: Optional[int] = None,
    ):
        self.write_chunk_size = write_chunk_size or env_manager.get_setting("store_write_chunk_size", 10000)
        self.scan_chunk_size = scan_chunk_size or env_manager.get_setting("scan_chunk_size", 10000)
        self._logger = logger.getChild(self.__class__.__name__)

    async def __aenter__(self) -> "BaseRowStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _normalize_row(self, row: Row) -> Row:
        """Validate a row before writing and return a detached copy.

        Raises:
            StoreWriteError: if the row has no id or holds a value that is not
                a finite number or a string.
        """
        if not isinstance(row, dict):
            raise StoreWriteError(f"Row must be a mapping, got {type(row).__name__}")

        row_id = row.get(ID_COLUMN)
        if not isinstance(row_id, str) or not row_id:
            raise StoreWriteError(f"Row is missing a non-empty '{ID_COLUMN}': {row!r}")

        normalized: Row = {}
        for column, value in row.items():
            if column == ID_COLUMN or isinstance(value, str):
                normalized[column] = value
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                if not math.isfinite(value):
                    raise StoreWriteError(
                        f"Row {row_id!r} column {column!r} holds a non-finite number",
                        row_id=row_id,
                    )
                normalized[column] = float(value)
            else:
                raise StoreWriteError(
                    f"Row {row_id!r} column {column!r} has unsupported type {type(value).__name__}",
                    row_id=row_id,
                )
        return normalized

    def _chunked(self, rows: Iterable[Row]) -> Iterable[List[Row]]:
        chunk: List[Row] = []
        for row in rows:
            chunk.append(row)
            if len(chunk) >= self.write_chunk_size:
                yield chunk
                chunk = []
        if chunk:
            yield chunk

    @staticmethod
    def _check_window(offset: int, limit: int) -> None:
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
