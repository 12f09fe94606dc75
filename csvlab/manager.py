"""Session facade tying the store to the import, query and export engines."""

import logging
import os
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from config import env_manager

from .duplicates import DuplicateAnalyzer, DuplicateReport
from .export import export_filename, export_ids, export_rows
from .ingest.pipeline import IngestPipeline, IngestResult, ProgressCallback, Source
from .models import FileKind, Row
from .query.filter import QueryResult, ScanFilterEngine, ScanProgressCallback
from .resampling import ResampleResult, ResamplingEngine
from .sampling import DatasetSummary, SamplingEngine
from .storage import open_row_store
from .storage.base import RowStoreInterface

logger = logging.getLogger(__name__)


class DatasetManager:
    """Main orchestrator for one dataset session.

    Holds an explicit store handle; every import clears and repopulates it.
    """

    def __init__(
        self,
        store: RowStoreInterface,
        pipeline: Optional[IngestPipeline] = None,
        filter_engine: Optional[ScanFilterEngine] = None,
        sampling_engine: Optional[SamplingEngine] = None,
        resampling_engine: Optional[ResamplingEngine] = None,
        duplicate_analyzer: Optional[DuplicateAnalyzer] = None,
    ):
        self._store = store
        self._pipeline = pipeline or IngestPipeline(store)
        self._filter_engine = filter_engine or ScanFilterEngine(store)
        self._sampling_engine = sampling_engine or SamplingEngine(store)
        self._resampling_engine = resampling_engine or ResamplingEngine(store)
        self._duplicate_analyzer = duplicate_analyzer or DuplicateAnalyzer(store)

        self._logger = logger.getChild(self.__class__.__name__)
        self._started = False
        self._import_info: Optional[IngestResult] = None

    @classmethod
    async def open(cls, backend: Optional[str] = None, path: Optional[str] = None) -> "DatasetManager":
        """Load settings, open a store and return a started manager around it.

        Settings from the environment and registered providers are applied
        before the store and engines read their defaults.
        """
        env_manager.load()
        store = await open_row_store(backend=backend, path=path)
        manager = cls(store)
        await manager.start()
        return manager

    @property
    def store(self) -> RowStoreInterface:
        """Get the row store."""
        return self._store

    @property
    def import_info(self) -> Optional[IngestResult]:
        """Result of the last successful import in this session."""
        return self._import_info

    async def start(self) -> None:
        if self._started:
            return

        try:
            await self._store.open()
            self._started = True
            self._logger.info("Dataset manager started successfully")

        except Exception as e:
            self._logger.error(f"Failed to start dataset manager: {e}")
            raise

    async def shutdown(self) -> None:
        if not self._started:
            return

        try:
            await self._store.close()
            self._started = False
            self._logger.info("Dataset manager shutdown completed")

        except Exception as e:
            self._logger.error(f"Error during dataset manager shutdown: {e}")
            raise

    async def __aenter__(self) -> "DatasetManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def _require_import(self) -> IngestResult:
        if self._import_info is None:
            raise RuntimeError("No dataset has been imported in this session")
        return self._import_info

    async def import_file(
        self,
        source: Source,
        kind: Optional[Union[FileKind, str]] = None,
        filename: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> IngestResult:
        """Replace the stored dataset with the contents of ``source``.

        The file kind comes from ``kind`` when given, otherwise from
        ``filename`` (or ``source`` when it is a path).
        """
        if not self._started:
            await self.start()

        if kind is not None:
            file_kind = FileKind.parse(kind)
        else:
            name = filename or (os.fspath(source) if isinstance(source, (str, os.PathLike)) else "")
            file_kind = FileKind.from_filename(name)

        self._import_info = None
        try:
            result = await self._pipeline.run(source, file_kind, progress=progress)
        except Exception as e:
            self._logger.error(f"Failed to import {filename or 'stream'}: {e}")
            raise

        self._import_info = result
        self._logger.info(
            f"Imported {result.row_count} rows ({result.stored_count} stored) "
            f"from {filename or 'stream'} in {result.elapsed_ms:.1f}ms"
        )
        return result

    async def summarize(self) -> DatasetSummary:
        self._require_import()
        return await self._sampling_engine.summarize()

    async def filter_rows(
        self,
        conditions: Iterable[Any],
        progress: Optional[ScanProgressCallback] = None,
    ) -> QueryResult:
        self._require_import()
        return await self._filter_engine.filter(conditions, progress=progress)

    async def resample(self, conditions: Iterable[Any], rows: Optional[Iterable[Row]] = None) -> ResampleResult:
        """Resample the whole dataset, or ``rows`` when given."""
        self._require_import()
        return await self._resampling_engine.resample(conditions, rows=rows)

    async def analyze_duplicates(self, column: Optional[str] = None, threshold: Optional[int] = None) -> DuplicateReport:
        self._require_import()
        return await self._duplicate_analyzer.analyze(column=column, threshold=threshold)

    def export(self, rows: Iterable[Row], filename_prefix: str) -> Tuple[str, bytes]:
        """Serialize ``rows`` in the imported file's format and column order.

        Returns the suggested file name and the encoded content.
        """
        info = self._require_import()
        payload = export_rows(rows, info.columns, info.file_kind)
        filename = export_filename(filename_prefix, info.file_kind)
        self._logger.info(f"Prepared export {filename} ({len(payload)} bytes)")
        return filename, payload

    def export_ids(self, rows: Iterable[Row]) -> str:
        return export_ids(rows)

    async def get_storage_stats(self) -> Dict[str, Any]:
        stats = await self._store.get_storage_stats()
        stats["import"] = self._import_info.to_dict() if self._import_info else None
        return stats
