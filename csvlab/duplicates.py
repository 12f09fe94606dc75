"""Repeated text value analysis."""

import logging
import time
from typing import Any, Dict, List, Optional

from config import env_manager

from .models import ID_COLUMN, is_text
from .sampling import text_column_for_word_count
from .storage.base import RowStoreInterface

logger = logging.getLogger(__name__)


class DuplicateGroup:
    """Rows sharing one text value."""

    def __init__(self, text: str, count: int, row_ids: List[str], has_more_ids: bool):
        self.text = text
        self.count = count
        self.row_ids = row_ids
        self.has_more_ids = has_more_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "count": self.count,
            "row_ids": list(self.row_ids),
            "has_more_ids": self.has_more_ids,
        }


class DuplicateReport:
    def __init__(
        self,
        column: Optional[str],
        threshold: int,
        groups: List[DuplicateGroup],
        rows_scanned: int,
        distinct_values: int,
        execution_time_ms: float,
    ):
        self.column = column
        self.threshold = threshold
        self.groups = groups
        self.rows_scanned = rows_scanned
        self.distinct_values = distinct_values
        self.execution_time_ms = execution_time_ms

    @property
    def duplicated_rows(self) -> int:
        return sum(group.count for group in self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "threshold": self.threshold,
            "groups": [group.to_dict() for group in self.groups],
            "rows_scanned": self.rows_scanned,
            "distinct_values": self.distinct_values,
            "duplicated_rows": self.duplicated_rows,
        }


class _Tally:
    __slots__ = ("count", "row_ids")

    def __init__(self):
        self.count = 0
        self.row_ids: List[str] = []


class DuplicateAnalyzer:
    """Count identical text values of one column across the whole store."""

    def __init__(
        self,
        store: RowStoreInterface,
        max_ids: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ):
        self.store = store
        self.max_ids = max_ids or env_manager.get_setting("duplicate_max_ids", 100)
        self.chunk_size = chunk_size
        self._logger = logger.getChild(self.__class__.__name__)

    async def analyze(self, column: Optional[str] = None, threshold: Optional[int] = None) -> DuplicateReport:
        """Report values repeated at least ``threshold`` times, most frequent first.

        When ``column`` is omitted, the word-count text column of the first
        stored row is used.
        """
        if threshold is None:
            threshold = env_manager.get_setting("duplicate_threshold", 10)
        if threshold < 1:
            raise ValueError(f"threshold must be >= 1, got {threshold}")

        start_time = time.time()
        if column is None:
            first = await self.store.cursor_read(0, 1)
            column = text_column_for_word_count(first[0] if first else None)

        tallies: Dict[str, _Tally] = {}
        scanned = 0
        if column is not None:
            async for row in self.store.iter_rows(self.chunk_size):
                scanned += 1
                value = row.get(column)
                if not is_text(value):
                    continue
                text = value.strip()
                if not text:
                    continue
                tally = tallies.get(text)
                if tally is None:
                    tally = tallies[text] = _Tally()
                tally.count += 1
                if len(tally.row_ids) < self.max_ids:
                    tally.row_ids.append(row[ID_COLUMN])

        # Stable sort keeps first-seen order among equal counts
        groups = sorted(
            (
                DuplicateGroup(text, tally.count, tally.row_ids, tally.count > len(tally.row_ids))
                for text, tally in tallies.items()
                if tally.count >= threshold
            ),
            key=lambda group: group.count,
            reverse=True,
        )

        execution_time = (time.time() - start_time) * 1000
        self._logger.info(
            f"Found {len(groups)} values in {column!r} repeated >= {threshold} times "
            f"across {scanned} rows in {execution_time:.1f}ms"
        )
        return DuplicateReport(column, threshold, groups, scanned, len(tallies), execution_time)
