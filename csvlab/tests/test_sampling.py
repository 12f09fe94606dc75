"""Tests for sampling, statistics and histograms."""

import pytest
import pytest_asyncio

from ..models import build_row
from ..sampling import (
    SamplingEngine,
    build_histogram,
    compute_statistics,
    numeric_columns,
    text_column_for_word_count,
)
from ..storage.memory import InMemoryRowStore


def labelled_rows(n):
    return [
        build_row({"id": f"r{i:05d}", "score": str(i + 1), "label": " ".join(["w"] * (i + 1))})
        for i in range(n)
    ]


@pytest_asyncio.fixture
async def store():
    store = InMemoryRowStore(scan_chunk_size=4)
    await store.open()
    yield store
    await store.close()


class TestComputeStatistics:
    """Test cases for compute_statistics."""

    def test_quartile_scenario(self):
        stats = compute_statistics([10, 9, 8, 7, 6, 5, 4, 3, 2, 1])
        assert stats.min == 1
        assert stats.max == 10
        assert stats.mean == pytest.approx(5.5)
        assert stats.median == pytest.approx(5.5)
        assert stats.q1 == 3
        assert stats.q3 == 8
        assert stats.count == 10

    def test_odd_length(self):
        stats = compute_statistics([3, 1, 2])
        assert stats.median == 2
        assert stats.q1 == 1
        assert stats.q3 == 3

    def test_single_value(self):
        stats = compute_statistics([4.5])
        assert stats.min == stats.max == stats.median == stats.q1 == stats.q3 == 4.5

    def test_empty(self):
        assert compute_statistics([]) is None

    def test_to_dict(self):
        stats = compute_statistics([1, 2], column="score", is_sampled=True)
        data = stats.to_dict()
        assert data["column"] == "score"
        assert data["is_sampled"] is True


class TestBuildHistogram:
    """Test cases for build_histogram."""

    def test_equal_width_bins_with_closed_last_bin(self):
        hist = build_histogram(range(11), bins=5)
        assert hist.counts == [2, 2, 2, 2, 3]
        assert hist.edges == [0.0, 2.0, 4.0, 6.0, 8.0, 10.0]
        assert sum(hist.counts) == 11

    def test_default_bin_count(self):
        hist = build_histogram([1.0, 2.0, 3.0])
        assert len(hist.counts) == 20
        assert len(hist.bins) == 20
        assert hist.bins[-1]["end"] == 3.0

    def test_constant_values(self):
        hist = build_histogram([3, 3, 3], bins=4)
        assert sum(hist.counts) == 3

    def test_empty(self):
        assert build_histogram([], bins=4) is None

    def test_bins_must_be_positive(self):
        with pytest.raises(ValueError):
            build_histogram([1.0], bins=0)


class TestColumnSelection:
    """Test cases for numeric and text column selection."""

    def test_numeric_columns_from_first_row(self):
        rows = [
            {"id": "1", "score": 1.0, "label": "x", "label_word_count": 1.0},
            {"id": "2", "other": 2.0},
        ]
        assert numeric_columns(rows) == ["score", "label_word_count"]
        assert numeric_columns([]) == []

    @pytest.mark.parametrize("row, expected", [
        ({"id": "1", "title": "x", "caption": "y", "label": "y"}, "label"),
        ({"id": "1", "title": "x", "Caption": "y"}, "Caption"),
        ({"id": "1", "title": "x", "note": "y"}, "title"),
        ({"id": "1", "n": 1.0}, None),
        (None, None),
    ])
    def test_text_column_for_word_count(self, row, expected):
        assert text_column_for_word_count(row) == expected


class TestSamplingEngine:
    """Test cases for SamplingEngine."""

    @pytest.mark.asyncio
    async def test_small_store_is_not_sampled(self, store):
        await store.upsert_many(labelled_rows(10))
        sample = await SamplingEngine(store, threshold=10).sample()
        assert len(sample) == 10
        assert sample.stride == 1
        assert not sample.is_sampled

    @pytest.mark.asyncio
    async def test_stride_sampling(self, store):
        await store.upsert_many(labelled_rows(25))
        sample = await SamplingEngine(store, threshold=10).sample()
        assert sample.stride == 3
        assert sample.total_rows == 25
        assert sample.is_sampled
        assert [row["id"] for row in sample.rows] == [f"r{i:05d}" for i in range(0, 25, 3)]

    @pytest.mark.asyncio
    async def test_sampling_is_deterministic(self, store):
        await store.upsert_many(labelled_rows(47))
        engine = SamplingEngine(store, threshold=10)
        first = [row["id"] for row in (await engine.sample()).rows]
        second = [row["id"] for row in (await engine.sample()).rows]
        assert first == second
        assert len(first) <= 10

    @pytest.mark.asyncio
    async def test_word_count_extremes_keep_first_on_ties(self, store):
        await store.upsert_many([
            {"id": "1", "label": "a b"},
            {"id": "2", "label": "c d"},
            {"id": "3", "label": "e"},
            {"id": "4", "label": "f"},
            {"id": "5", "label": 3.0},
        ])
        extremes = await SamplingEngine(store).word_count_extremes("label")
        assert extremes.longest.row_id == "1"
        assert extremes.longest.word_count == 2
        assert extremes.shortest.row_id == "3"
        assert extremes.shortest.text == "e"
        assert extremes.text_row_count == 4

    @pytest.mark.asyncio
    async def test_extremes_scan_full_store_not_sample(self, store):
        rows = labelled_rows(25)
        await store.upsert_many(rows)
        # r00024 is not part of the stride-5 sample
        extremes = await SamplingEngine(store, threshold=5).word_count_extremes("label")
        assert extremes.longest.row_id == "r00024"
        assert extremes.longest.word_count == 25

    @pytest.mark.asyncio
    async def test_summarize(self, store):
        await store.upsert_many(labelled_rows(10))
        summary = await SamplingEngine(store, histogram_bins=5).summarize()

        assert summary.total_rows == 10
        assert summary.sample_size == 10
        assert not summary.is_sampled
        assert set(summary.column_statistics) == {"score", "label_word_count"}

        score = summary.column_statistics["score"]
        assert (score.min, score.max, score.median, score.q1, score.q3) == (1, 10, 5.5, 3, 8)
        assert sum(summary.histograms["score"].counts) == 10

        assert summary.text_column == "label"
        assert summary.word_count_statistics.max == 10
        assert summary.extremes.longest.word_count == 10
        assert summary.extremes.shortest.word_count == 1

        data = summary.to_dict()
        assert data["columns"]["score"]["mean"] == pytest.approx(5.5)

    @pytest.mark.asyncio
    async def test_summarize_marks_sampled_statistics(self, store):
        await store.upsert_many(labelled_rows(26))
        summary = await SamplingEngine(store, threshold=10).summarize()
        assert summary.is_sampled
        assert summary.column_statistics["score"].is_sampled
        assert summary.word_count_statistics.max == 25
        # Extremes still come from every row
        assert summary.extremes.longest.word_count == 26

    @pytest.mark.asyncio
    async def test_summarize_empty_store(self, store):
        summary = await SamplingEngine(store).summarize()
        assert summary.total_rows == 0
        assert summary.column_statistics == {}
        assert summary.text_column is None
        assert summary.extremes is None
