"""Conjunctive row filtering over a full store scan."""

import inspect
import logging
import time
import warnings
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from config import env_manager

from ..errors import EmptyResultWarning
from ..models import ID_COLUMN, Row, parse_filter_conditions
from ..storage.base import RowStoreInterface
from ..text_matching import WordMatcher

logger = logging.getLogger(__name__)

ScanProgressCallback = Callable[[int], Optional[Awaitable[None]]]


class QueryResult:
    """Result of a scan query."""

    def __init__(
        self,
        rows: List[Row],
        operation: str,
        parameters: Dict[str, Any],
        metadata: Dict[str, Any],
        execution_time_ms: float,
    ):
        self.rows = rows
        self.operation = operation
        self.parameters = parameters
        self.metadata = metadata
        self.execution_time_ms = execution_time_ms

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def ids(self) -> List[str]:
        return [row[ID_COLUMN] for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)


class ScanFilterEngine:
    """Return the rows that satisfy every condition, in store order."""

    def __init__(self, store: RowStoreInterface, progress_interval: Optional[int] = None):
        self.store = store
        self.progress_interval = progress_interval or env_manager.get_setting("scan_progress_interval", 10000)
        self._logger = logger.getChild(self.__class__.__name__)

    async def filter(
        self,
        conditions: Iterable[Any],
        progress: Optional[ScanProgressCallback] = None,
    ) -> QueryResult:
        """Scan the store once and keep rows matching all ``conditions``.

        An empty condition list yields an empty result without scanning.
        ``progress`` receives the absolute number of rows scanned so far.

        Raises:
            InvalidConditionError: before any scan, when a condition is invalid.
        """
        start_time = time.time()
        parsed = parse_filter_conditions(conditions)
        descriptions = [c.describe() for c in parsed]

        matched: List[Row] = []
        scanned = 0
        if parsed:
            self._logger.info(f"Filtering with {len(parsed)} conditions: {'; '.join(descriptions)}")
            async for row in self.store.iter_rows():
                scanned += 1
                if all(condition.matches(row) for condition in parsed):
                    matched.append(row)
                if progress is not None and scanned % self.progress_interval == 0:
                    outcome = progress(scanned)
                    if inspect.isawaitable(outcome):
                        await outcome
            if not matched:
                warnings.warn(
                    f"No rows matched filter: {'; '.join(descriptions)}",
                    EmptyResultWarning,
                    stacklevel=2,
                )

        execution_time = (time.time() - start_time) * 1000
        self._logger.info(f"Filter matched {len(matched)} of {scanned} rows in {execution_time:.1f}ms")

        return QueryResult(
            rows=matched,
            operation="filter",
            parameters={"conditions": [c.model_dump() for c in parsed]},
            metadata={
                "rows_scanned": scanned,
                "rows_matched": len(matched),
                "filter_ratio": len(matched) / scanned if scanned else 0.0,
                "applied_conditions": descriptions,
            },
            execution_time_ms=execution_time,
        )


def count_matches(rows: Iterable[Row], column: str, keyword: str) -> int:
    """Count rows whose ``column`` contains ``keyword`` as a word or word prefix."""
    matcher = WordMatcher(keyword)
    return sum(1 for row in rows if matcher(row.get(column)))
