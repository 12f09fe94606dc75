"""Streaming import of delimited text files into a row store.

Parsing runs on a worker thread one chunk at a time while a single writer
task drains finished batches into the store. The parser never waits for a
write; at most one batch write is in flight at any moment.
"""

import asyncio
import functools
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from typing import IO, Any, Awaitable, Callable, Dict, List, Optional, Union

import pandas as pd

from config import env_manager

from ..errors import StoreError, StoreWriteError, StreamParseError
from ..models import FileKind, Row, build_row
from ..storage.base import RowStoreInterface

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Optional[Awaitable[None]]]
Source = Union[str, IO[str], IO[bytes]]

_BOM = "\ufeff"


def _log_with_context(log_level: int, msg: str, context: Optional[Dict[str, Any]] = None) -> None:
    """Helper function for structured logging with context

    Args:
        log_level: The logging level to use
        msg: The message to log
        context: Optional dictionary of contextual information
    """
    if context is None:
        context = {}

    context["timestamp"] = datetime.now(timezone.utc).isoformat()

    structured_msg = f"{msg} | Context: {json.dumps(context, default=str)}"
    logger.log(log_level, structured_msg)


class IngestResult:
    """Outcome of a completed import."""

    def __init__(
        self,
        row_count: int,
        stored_count: int,
        records_read: int,
        skipped_records: int,
        file_kind: FileKind,
        columns: List[str],
        batches_written: int,
        elapsed_ms: float,
    ):
        self.row_count = row_count
        self.stored_count = stored_count
        self.records_read = records_read
        self.skipped_records = skipped_records
        self.file_kind = file_kind
        self.columns = columns
        self.batches_written = batches_written
        self.elapsed_ms = elapsed_ms

    @property
    def delimiter(self) -> str:
        return self.file_kind.delimiter

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_count": self.row_count,
            "stored_count": self.stored_count,
            "records_read": self.records_read,
            "skipped_records": self.skipped_records,
            "file_kind": self.file_kind.name,
            "delimiter": self.delimiter,
            "columns": list(self.columns),
            "batches_written": self.batches_written,
            "elapsed_ms": self.elapsed_ms,
        }

    def __repr__(self) -> str:
        return (
            f"IngestResult(row_count={self.row_count}, stored_count={self.stored_count}, "
            f"file_kind={self.file_kind.name}, columns={self.columns!r})"
        )


class _WriteState:
    """Counters shared between the parser and the writer task."""

    def __init__(self):
        self.rows_written = 0
        self.batches_written = 0
        self.error: Optional[StoreError] = None
        self.aborted = False


class IngestPipeline:
    """Parse a delimited stream into typed rows and persist them in batches."""

    def __init__(
        self,
        store: RowStoreInterface,
        batch_size: Optional[int] = None,
        progress_interval: Optional[int] = None,
        expected_rows: Optional[int] = None,
        progress_cap: Optional[float] = None,
    ):
        self.store = store
        self.batch_size = batch_size or env_manager.get_setting("ingest_batch_size", 5000)
        self.progress_interval = progress_interval or env_manager.get_setting("ingest_progress_interval", 10000)
        self.expected_rows = expected_rows or env_manager.get_setting("ingest_expected_rows", 1000000)
        self.progress_cap = progress_cap if progress_cap is not None else env_manager.get_setting("ingest_progress_cap", 95.0)
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.progress_interval <= 0:
            raise ValueError(f"progress_interval must be positive, got {self.progress_interval}")
        if not 0 <= self.progress_cap < 100:
            raise ValueError(f"progress_cap must be in [0, 100), got {self.progress_cap}")
        self._logger = logger.getChild(self.__class__.__name__)

    async def run(
        self,
        source: Source,
        kind: Union[FileKind, str],
        progress: Optional[ProgressCallback] = None,
        clear_first: bool = True,
    ) -> IngestResult:
        """Import ``source`` into the store.

        Args:
            source: Path or open file object holding UTF-8 delimited text with a header row.
            kind: ``FileKind`` or its name ("csv"/"tsv"); fixes the delimiter.
            progress: Called with an estimated percentage, ending with exactly 100.0.
            clear_first: Empty the store before loading.

        Raises:
            StreamParseError: the input is malformed. Rows already written stay in the store.
            StoreWriteError: a batch failed to persist. ``rows_written`` counts the
                rows committed by this import before the failure.
        """
        file_kind = FileKind.parse(kind)
        start_time = time.time()
        _log_with_context(
            logging.INFO,
            "Import started",
            {"file_kind": file_kind.name, "batch_size": self.batch_size, "clear_first": clear_first},
        )

        if clear_first:
            await self.store.clear()

        state = _WriteState()
        queue: asyncio.Queue = asyncio.Queue()
        writer = asyncio.create_task(self._writer(queue, state))
        reporter = _ProgressReporter(progress, self.expected_rows, self.progress_cap)

        records_read = 0
        accepted = 0
        columns: List[str] = []
        try:
            loop = asyncio.get_running_loop()
            reader = await self._open_reader(loop, source, file_kind)
            try:
                batch: List[Row] = []
                while state.error is None:
                    chunk = await self._next_chunk(loop, reader, records_read)
                    if chunk is None:
                        break
                    if not columns:
                        columns = [str(c) for c in chunk.columns]
                        if columns and columns[0].startswith(_BOM):
                            columns[0] = columns[0][len(_BOM):]
                    chunk.columns = columns

                    for record in chunk.to_dict(orient="records"):
                        records_read += 1
                        row = build_row(record)
                        if row is not None:
                            batch.append(row)
                            accepted += 1
                            if len(batch) >= self.batch_size:
                                queue.put_nowait(batch)
                                batch = []
                        if records_read % self.progress_interval == 0:
                            await reporter.report(records_read)
                if batch and state.error is None:
                    queue.put_nowait(batch)
            finally:
                reader.close()

            queue.put_nowait(None)
            await writer
        except StreamParseError as e:
            state.aborted = True
            queue.put_nowait(None)
            await writer
            e.records_read = records_read
            e.rows_written = state.rows_written
            _log_with_context(
                logging.ERROR,
                "Import aborted on malformed input",
                {"error": str(e), "records_read": records_read, "rows_written": state.rows_written},
            )
            raise
        finally:
            if not writer.done():
                writer.cancel()

        if state.error is not None:
            _log_with_context(
                logging.ERROR,
                "Import aborted on store write failure",
                {"error": str(state.error), "records_read": records_read, "rows_written": state.rows_written},
            )
            raise StoreWriteError(
                f"Import failed after {state.rows_written} rows: {state.error}",
                rows_written=state.rows_written,
                row_id=getattr(state.error, "row_id", None),
            ) from state.error

        stored_count = await self.store.count()
        await reporter.finish()
        elapsed_ms = (time.time() - start_time) * 1000

        result = IngestResult(
            row_count=accepted,
            stored_count=stored_count,
            records_read=records_read,
            skipped_records=records_read - accepted,
            file_kind=file_kind,
            columns=columns,
            batches_written=state.batches_written,
            elapsed_ms=elapsed_ms,
        )
        _log_with_context(logging.INFO, "Import completed", result.to_dict())
        return result

    async def _open_reader(self, loop, source: Source, file_kind: FileKind):
        open_reader = functools.partial(
            pd.read_csv,
            source,
            sep=file_kind.delimiter,
            # The C engine truncates an over-long record that starts a chunk
            engine="python",
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
            chunksize=self.batch_size,
        )
        try:
            return await loop.run_in_executor(None, open_reader)
        except pd.errors.EmptyDataError as e:
            raise StreamParseError(f"Input has no header row: {e}") from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise StreamParseError(f"Malformed input: {e}") from e

    async def _next_chunk(self, loop, reader, records_read: int) -> Optional[pd.DataFrame]:
        try:
            return await loop.run_in_executor(None, functools.partial(next, reader, None))
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise StreamParseError(
                f"Malformed input after {records_read} records: {e}", records_read=records_read
            ) from e

    async def _writer(self, queue: asyncio.Queue, state: _WriteState) -> None:
        """Single consumer draining batches into the store in arrival order."""
        while True:
            batch = await queue.get()
            try:
                if batch is None:
                    return
                if state.aborted or state.error is not None:
                    continue
                try:
                    written = await self.store.upsert_many(batch)
                except StoreError as e:
                    state.rows_written += getattr(e, "rows_written", 0)
                    state.error = e
                    continue
                state.rows_written += written
                state.batches_written += 1
                self._logger.debug(
                    f"Wrote batch {state.batches_written} ({written} rows, {state.rows_written} total)"
                )
            finally:
                queue.task_done()


class _ProgressReporter:
    """Emit a monotonically non-decreasing percentage, capped until the end."""

    def __init__(self, callback: Optional[ProgressCallback], expected_rows: int, cap: float):
        self._callback = callback
        self._expected_rows = expected_rows
        self._cap = cap
        self.last = 0.0

    async def report(self, records_read: int) -> None:
        estimate = min(self._cap, records_read / self._expected_rows * 100)
        self.last = max(self.last, estimate)
        await self._emit(self.last)

    async def finish(self) -> None:
        self.last = 100.0
        await self._emit(100.0)

    async def _emit(self, value: float) -> None:
        if self._callback is None:
            return
        outcome = self._callback(value)
        if inspect.isawaitable(outcome):
            await outcome
