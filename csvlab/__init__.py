"""Import, query, sample and resample large delimited files on a local row store."""

import logging
from typing import Optional, Union

from config import env_manager

from .duplicates import DuplicateAnalyzer, DuplicateGroup, DuplicateReport
from .errors import (
    CsvLabError,
    EmptyResultWarning,
    InvalidConditionError,
    StoreError,
    StoreReadError,
    StoreWriteError,
    StreamParseError,
)
from .export import export_filename, export_ids, export_rows, export_store
from .ingest import IngestPipeline, IngestResult
from .manager import DatasetManager
from .models import (
    FileKind,
    NumericFilter,
    ResampleCondition,
    TextFilter,
    ValueKind,
    build_row,
    classify_cell,
    parse_filter_conditions,
    parse_resample_conditions,
)
from .query import QueryResult, ScanFilterEngine, count_matches
from .resampling import ResampleResult, ResamplingEngine
from .sampling import (
    ColumnStatistics,
    DatasetSummary,
    Histogram,
    SampleSet,
    SamplingEngine,
    build_histogram,
    compute_statistics,
)
from .storage import InMemoryRowStore, RowStoreInterface, SQLiteRowStore, open_row_store
from .text_matching import WordMatcher, matches_word


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Attach a stream handler to the ``csvlab`` logger at ``level``.

    Defaults to the ``log_level`` setting. Safe to call more than once.
    """
    if level is None:
        level = env_manager.get_setting("log_level", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        package_logger.addHandler(handler)
    return package_logger


__all__ = [
    # Session
    "DatasetManager",
    "configure_logging",

    # Errors
    "CsvLabError",
    "StreamParseError",
    "StoreError",
    "StoreWriteError",
    "StoreReadError",
    "InvalidConditionError",
    "EmptyResultWarning",

    # Model
    "FileKind",
    "ValueKind",
    "NumericFilter",
    "TextFilter",
    "ResampleCondition",
    "build_row",
    "classify_cell",
    "parse_filter_conditions",
    "parse_resample_conditions",
    "WordMatcher",
    "matches_word",

    # Storage
    "RowStoreInterface",
    "InMemoryRowStore",
    "SQLiteRowStore",
    "open_row_store",

    # Engines
    "IngestPipeline",
    "IngestResult",
    "ScanFilterEngine",
    "QueryResult",
    "count_matches",
    "SamplingEngine",
    "SampleSet",
    "ColumnStatistics",
    "Histogram",
    "DatasetSummary",
    "compute_statistics",
    "build_histogram",
    "ResamplingEngine",
    "ResampleResult",
    "DuplicateAnalyzer",
    "DuplicateReport",
    "DuplicateGroup",

    # Export
    "export_rows",
    "export_filename",
    "export_ids",
    "export_store",
]
