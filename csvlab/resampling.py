"""Quota resampling of keyword-matched rows."""

import logging
import random
import time
import warnings
from typing import Any, Dict, Iterable, List, Optional

from .errors import EmptyResultWarning
from .models import Row, ResampleCondition, parse_resample_conditions
from .storage.base import RowStoreInterface
from .text_matching import WordMatcher

logger = logging.getLogger(__name__)

UNDERSAMPLED = "undersampled"
OVERSAMPLED = "oversampled"
UNCHANGED = "unchanged"
NO_MATCH = "no_match"


class PartitionOutcome:
    """What happened to the rows claimed by one condition."""

    def __init__(self, condition: ResampleCondition, matched: int, produced: int, action: str):
        self.keyword = condition.keyword
        self.column = condition.column
        self.target = condition.target_count
        self.matched = matched
        self.produced = produced
        self.action = action

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "column": self.column,
            "matched": self.matched,
            "target": self.target,
            "produced": self.produced,
            "action": self.action,
        }


class ResampleResult:
    def __init__(self, rows: List[Row], partitions: List[PartitionOutcome], untouched_count: int, execution_time_ms: float):
        self.rows = rows
        self.partitions = partitions
        self.untouched_count = untouched_count
        self.execution_time_ms = execution_time_ms

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def __len__(self) -> int:
        return len(self.rows)


class ResamplingEngine:
    """Resize each condition's matched rows to its target count.

    Rows are claimed first-match-wins in condition order. Unclaimed rows are
    kept exactly once and the combined result is shuffled.
    """

    def __init__(
        self,
        store: Optional[RowStoreInterface] = None,
        rng: Optional[random.Random] = None,
        chunk_size: Optional[int] = None,
    ):
        self.store = store
        self.rng = rng or random.Random()
        self.chunk_size = chunk_size
        self._logger = logger.getChild(self.__class__.__name__)

    async def resample(self, conditions: Iterable[Any], rows: Optional[Iterable[Row]] = None) -> ResampleResult:
        """Resample ``rows``, or the whole store when ``rows`` is None.

        Raises:
            InvalidConditionError: before any scan, when a condition is invalid.
        """
        start_time = time.time()
        parsed = parse_resample_conditions(conditions)
        if rows is None and self.store is None:
            raise ValueError("ResamplingEngine needs a store or an explicit row set")

        matchers = [WordMatcher(c.keyword) for c in parsed]
        partitions: List[List[Row]] = [[] for _ in parsed]
        untouched: List[Row] = []

        def claim(row: Row) -> None:
            for index, condition in enumerate(parsed):
                if matchers[index](row.get(condition.column)):
                    partitions[index].append(row)
                    return
            untouched.append(row)

        if rows is None:
            async for row in self.store.iter_rows(self.chunk_size):
                claim(row)
        else:
            for row in rows:
                claim(row)

        combined: List[Row] = []
        outcomes: List[PartitionOutcome] = []
        for condition, matched in zip(parsed, partitions):
            resized, action = self._resize(matched, condition.target_count)
            combined.extend(resized)
            outcomes.append(PartitionOutcome(condition, len(matched), len(resized), action))
            self._logger.debug(
                f"'{condition.keyword}' in {condition.column}: {len(matched)} -> {len(resized)} ({action})"
            )

        combined.extend(untouched)
        self.rng.shuffle(combined)

        execution_time = (time.time() - start_time) * 1000
        self._logger.info(
            f"Resampled to {len(combined)} rows ({len(untouched)} untouched) in {execution_time:.1f}ms"
        )
        if not combined:
            warnings.warn("Resampling produced no rows", EmptyResultWarning, stacklevel=2)
        return ResampleResult(combined, outcomes, len(untouched), execution_time)

    def _resize(self, matched: List[Row], target: int):
        k = len(matched)
        if k == 0:
            return [], NO_MATCH
        if k > target:
            return self.rng.sample(matched, target), UNDERSAMPLED
        if k < target:
            extra = [dict(self.rng.choice(matched)) for _ in range(target - k)]
            return list(matched) + extra, OVERSAMPLED
        return list(matched), UNCHANGED
