"""Bounded sampling, order statistics and histograms."""

import logging
import math
import time
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from config import env_manager

from .models import ID_COLUMN, LABEL_COLUMN, CAPTION_COLUMN, Row, count_words, is_numeric, is_text
from .storage.base import RowStoreInterface

logger = logging.getLogger(__name__)


class SampleSet:
    """Deterministic subsequence of the store used for statistics."""

    def __init__(self, rows: List[Row], total_rows: int, stride: int):
        self.rows = rows
        self.total_rows = total_rows
        self.stride = stride

    @property
    def is_sampled(self) -> bool:
        return len(self.rows) < self.total_rows

    def __len__(self) -> int:
        return len(self.rows)


class ColumnStatistics:
    """Order statistics for one column."""

    def __init__(
        self,
        column: str,
        count: int,
        min: float,
        max: float,
        mean: float,
        median: float,
        q1: float,
        q3: float,
        is_sampled: bool = False,
    ):
        self.column = column
        self.count = count
        self.min = min
        self.max = max
        self.mean = mean
        self.median = median
        self.q1 = q1
        self.q3 = q3
        self.is_sampled = is_sampled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "q1": self.q1,
            "q3": self.q3,
            "is_sampled": self.is_sampled,
        }


class Histogram:
    """Equal-width histogram; every bin is ``[start, end)`` except the last, which is closed."""

    def __init__(self, column: str, edges: List[float], counts: List[int]):
        self.column = column
        self.edges = edges
        self.counts = counts

    @property
    def bins(self) -> List[Dict[str, Any]]:
        return [
            {"start": self.edges[i], "end": self.edges[i + 1], "count": self.counts[i]}
            for i in range(len(self.counts))
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {"column": self.column, "bins": self.bins}


class WordCountExtreme:
    def __init__(self, row_id: str, text: str, word_count: int):
        self.row_id = row_id
        self.text = text
        self.word_count = word_count

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.row_id, "text": self.text, "word_count": self.word_count}


class WordCountExtremes:
    """Longest and shortest text over the full store."""

    def __init__(
        self,
        column: str,
        longest: Optional[WordCountExtreme],
        shortest: Optional[WordCountExtreme],
        text_row_count: int,
    ):
        self.column = column
        self.longest = longest
        self.shortest = shortest
        self.text_row_count = text_row_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "longest": self.longest.to_dict() if self.longest else None,
            "shortest": self.shortest.to_dict() if self.shortest else None,
            "text_row_count": self.text_row_count,
        }


class DatasetSummary:
    """Everything the statistics view needs for one import."""

    def __init__(
        self,
        total_rows: int,
        sample_size: int,
        stride: int,
        column_statistics: Dict[str, ColumnStatistics],
        histograms: Dict[str, Histogram],
        text_column: Optional[str] = None,
        word_count_statistics: Optional[ColumnStatistics] = None,
        word_count_histogram: Optional[Histogram] = None,
        extremes: Optional[WordCountExtremes] = None,
    ):
        self.total_rows = total_rows
        self.sample_size = sample_size
        self.stride = stride
        self.column_statistics = column_statistics
        self.histograms = histograms
        self.text_column = text_column
        self.word_count_statistics = word_count_statistics
        self.word_count_histogram = word_count_histogram
        self.extremes = extremes

    @property
    def is_sampled(self) -> bool:
        return self.sample_size < self.total_rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "sample_size": self.sample_size,
            "stride": self.stride,
            "is_sampled": self.is_sampled,
            "columns": {name: stats.to_dict() for name, stats in self.column_statistics.items()},
            "histograms": {name: hist.to_dict() for name, hist in self.histograms.items()},
            "text_column": self.text_column,
            "word_count_statistics": (
                self.word_count_statistics.to_dict() if self.word_count_statistics else None
            ),
            "word_count_histogram": (
                self.word_count_histogram.to_dict() if self.word_count_histogram else None
            ),
            "extremes": self.extremes.to_dict() if self.extremes else None,
        }


def compute_statistics(values: Iterable[float], column: str = "", is_sampled: bool = False) -> Optional[ColumnStatistics]:
    """Compute min, max, mean, median and quartiles without interpolation.

    Quartiles take the value at ``floor(n * 0.25)`` and ``floor(n * 0.75)`` of
    the sorted array; the median averages the two middle values when ``n`` is
    even. Returns None for an empty input.
    """
    arr = np.sort(np.asarray(list(values), dtype=float))
    n = len(arr)
    if n == 0:
        return None

    if n % 2:
        median = arr[n // 2]
    else:
        median = (arr[n // 2 - 1] + arr[n // 2]) / 2

    return ColumnStatistics(
        column=column,
        count=n,
        min=float(arr[0]),
        max=float(arr[-1]),
        mean=float(arr.mean()),
        median=float(median),
        q1=float(arr[math.floor(n * 0.25)]),
        q3=float(arr[math.floor(n * 0.75)]),
        is_sampled=is_sampled,
    )


def build_histogram(values: Iterable[float], bins: int = 20, column: str = "") -> Optional[Histogram]:
    """Bucket values into ``bins`` equal-width bins over their observed range."""
    if bins <= 0:
        raise ValueError(f"bins must be positive, got {bins}")
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return None

    low, high = float(arr.min()), float(arr.max())
    width = (high - low) / bins
    edges = low + np.arange(bins + 1) * width
    edges[-1] = high

    # Values equal to the top edge land in the last (closed) bin
    index = np.clip(np.searchsorted(edges, arr, side="right") - 1, 0, bins - 1)
    counts = np.bincount(index, minlength=bins)
    return Histogram(column, [float(e) for e in edges], [int(c) for c in counts])


def numeric_columns(sample_rows: List[Row]) -> List[str]:
    """Numeric columns of the first row, ``id`` excluded."""
    if not sample_rows:
        return []
    return [
        column for column, value in sample_rows[0].items()
        if column != ID_COLUMN and is_numeric(value)
    ]


def text_column_for_word_count(first_row: Optional[Row]) -> Optional[str]:
    """Pick the text column whose word counts are reported.

    Prefers ``label``, then ``caption`` (case-insensitive), then the first
    other text column.
    """
    if not first_row:
        return None
    text_columns = [c for c, v in first_row.items() if c != ID_COLUMN and is_text(v)]
    for preferred in (LABEL_COLUMN, CAPTION_COLUMN):
        for column in text_columns:
            if column.lower() == preferred:
                return column
    return text_columns[0] if text_columns else None


class SamplingEngine:
    """Statistics over a bounded, deterministic sample of the store."""

    def __init__(
        self,
        store: RowStoreInterface,
        threshold: Optional[int] = None,
        histogram_bins: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ):
        self.store = store
        self.threshold = threshold or env_manager.get_setting("sample_threshold", 100000)
        self.histogram_bins = histogram_bins or env_manager.get_setting("histogram_bins", 20)
        self.chunk_size = chunk_size
        self._logger = logger.getChild(self.__class__.__name__)

    async def sample(self) -> SampleSet:
        """Return the whole store when it fits, else every stride-th row.

        ``stride = ceil(total / threshold)``, so the sample never exceeds the
        threshold and depends on the row count alone.
        """
        total = await self.store.count()
        stride = max(1, math.ceil(total / self.threshold))

        rows: List[Row] = []
        index = 0
        async for row in self.store.iter_rows(self.chunk_size):
            if index % stride == 0:
                rows.append(row)
                if len(rows) >= self.threshold:
                    break
            index += 1

        self._logger.debug(f"Sampled {len(rows)} of {total} rows with stride {stride}")
        return SampleSet(rows, total, stride)

    async def word_count_extremes(self, column: str) -> WordCountExtremes:
        """Find the longest and shortest ``column`` text over every stored row.

        Ties keep the earliest row in store order.
        """
        longest: Optional[WordCountExtreme] = None
        shortest: Optional[WordCountExtreme] = None
        text_rows = 0
        async for row in self.store.iter_rows(self.chunk_size):
            text = row.get(column)
            if not is_text(text):
                continue
            text_rows += 1
            words = count_words(text)
            if longest is None or words > longest.word_count:
                longest = WordCountExtreme(row[ID_COLUMN], text, words)
            if shortest is None or words < shortest.word_count:
                shortest = WordCountExtreme(row[ID_COLUMN], text, words)
        return WordCountExtremes(column, longest, shortest, text_rows)

    async def summarize(self) -> DatasetSummary:
        """Build per-column statistics and histograms from the sample."""
        start_time = time.time()
        sample = await self.sample()
        rows = sample.rows

        column_statistics: Dict[str, ColumnStatistics] = {}
        histograms: Dict[str, Histogram] = {}
        for column in numeric_columns(rows):
            values = [row[column] for row in rows if is_numeric(row.get(column))]
            stats = compute_statistics(values, column=column, is_sampled=sample.is_sampled)
            if stats is None:
                continue
            column_statistics[column] = stats
            histograms[column] = build_histogram(values, self.histogram_bins, column=column)

        text_column = text_column_for_word_count(rows[0] if rows else None)
        word_count_statistics = None
        word_count_histogram = None
        extremes = None
        if text_column is not None:
            counts = [count_words(row[text_column]) for row in rows if is_text(row.get(text_column))]
            word_count_statistics = compute_statistics(counts, column=text_column, is_sampled=sample.is_sampled)
            word_count_histogram = build_histogram(counts, self.histogram_bins, column=text_column) if counts else None
            extremes = await self.word_count_extremes(text_column)

        execution_time = (time.time() - start_time) * 1000
        self._logger.info(
            f"Summarized {sample.total_rows} rows from a sample of {len(rows)} "
            f"({len(column_statistics)} numeric columns) in {execution_time:.1f}ms"
        )
        return DatasetSummary(
            total_rows=sample.total_rows,
            sample_size=len(rows),
            stride=sample.stride,
            column_statistics=column_statistics,
            histograms=histograms,
            text_column=text_column,
            word_count_statistics=word_count_statistics,
            word_count_histogram=word_count_histogram,
            extremes=extremes,
        )
