"""Tests for the scan filter engine."""

import warnings

import pytest
import pytest_asyncio

from ..errors import EmptyResultWarning, InvalidConditionError
from ..models import NumericFilter, TextFilter
from ..query.filter import QueryResult, ScanFilterEngine, count_matches
from ..storage.memory import InMemoryRowStore

ROWS = [
    {"id": "01", "score": 1.0, "label": "A cat sleeps"},
    {"id": "02", "score": 5.0, "label": "The dog and the cat"},
    {"id": "03", "score": 9.0, "label": "concatenate strings"},
    {"id": "04", "score": "n/a", "label": "cat"},
    {"id": "05", "label": "a bird"},
    {"id": "06", "score": 5.0},
]


@pytest_asyncio.fixture
async def store():
    store = InMemoryRowStore(scan_chunk_size=2)
    await store.open()
    await store.upsert_many(ROWS)
    yield store
    await store.close()


@pytest.fixture
def engine(store):
    return ScanFilterEngine(store, progress_interval=2)


class TestScanFilterEngine:
    """Test cases for ScanFilterEngine."""

    @pytest.mark.asyncio
    async def test_numeric_range_is_inclusive(self, engine):
        result = await engine.filter([NumericFilter(column="score", min=1, max=5)])
        assert isinstance(result, QueryResult)
        assert result.ids() == ["01", "02", "06"]

    @pytest.mark.asyncio
    async def test_non_numeric_and_missing_values_fail(self, engine):
        result = await engine.filter([{"column": "score", "min": -100, "max": 100}])
        assert "04" not in result.ids()
        assert "05" not in result.ids()

    @pytest.mark.asyncio
    async def test_text_include_is_plain_substring(self, engine):
        result = await engine.filter([{"column": "label", "include_keyword": "CAT"}])
        assert result.ids() == ["01", "02", "03", "04"]

    @pytest.mark.asyncio
    async def test_text_exclude(self, engine):
        result = await engine.filter([
            TextFilter(column="label", include_keyword="cat", exclude_keyword="dog"),
        ])
        assert result.ids() == ["01", "03", "04"]

    @pytest.mark.asyncio
    async def test_conjunction_is_intersection(self, engine):
        c1 = NumericFilter(column="score", min=0, max=6)
        c2 = TextFilter(column="label", include_keyword="cat")

        both = set((await engine.filter([c1, c2])).ids())
        only1 = set((await engine.filter([c1])).ids())
        only2 = set((await engine.filter([c2])).ids())

        assert both == only1 & only2
        assert both == {"01", "02"}

    @pytest.mark.asyncio
    async def test_empty_conditions_yield_empty_result(self, engine):
        result = await engine.filter([])
        assert result.is_empty
        assert result.metadata["rows_scanned"] == 0

    @pytest.mark.asyncio
    async def test_no_match_warns(self, engine):
        with pytest.warns(EmptyResultWarning):
            result = await engine.filter([{"column": "label", "include_keyword": "zebra"}])
        assert result.is_empty
        assert result.metadata["rows_scanned"] == len(ROWS)

    @pytest.mark.asyncio
    async def test_invalid_condition_rejected_before_scan(self, store):
        scanned = []
        engine = ScanFilterEngine(store, progress_interval=1)
        with pytest.raises(InvalidConditionError):
            await engine.filter([{"column": "score", "min": 5, "max": 1}], progress=scanned.append)
        assert scanned == []

    @pytest.mark.asyncio
    async def test_progress_reports_absolute_counts(self, engine):
        reported = []
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", EmptyResultWarning)
            await engine.filter([{"column": "score", "min": 0}], progress=reported.append)
        assert reported == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_metadata(self, engine):
        result = await engine.filter([{"column": "label", "include_keyword": "bird"}])
        assert result.operation == "filter"
        assert result.metadata["rows_matched"] == 1
        assert result.metadata["rows_scanned"] == 6
        assert result.metadata["filter_ratio"] == pytest.approx(1 / 6)
        assert result.metadata["applied_conditions"] == ["label contains 'bird'"]
        assert result.execution_time_ms >= 0


class TestCountMatches:
    """Test cases for count_matches."""

    def test_counts_word_matches_only(self):
        assert count_matches(ROWS, "label", "cat") == 3

    def test_missing_column(self):
        assert count_matches(ROWS, "nothing", "cat") == 0
