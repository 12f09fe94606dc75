"""Exception and warning types raised by csvlab operations."""

from typing import Optional


class CsvLabError(Exception):
    """Base class for all csvlab errors."""


class StreamParseError(CsvLabError):
    """Raised when the delimited input stream is malformed.

    The store keeps whatever was durably written before the failure; callers
    clear it before retrying with a corrected file.
    """

    def __init__(self, message: str, records_read: int = 0, rows_written: int = 0):
        super().__init__(message)
        self.records_read = records_read
        self.rows_written = rows_written


class StoreError(CsvLabError):
    """Base class for storage-layer failures."""


class StoreWriteError(StoreError):
    """Raised when a write to the row store fails.

    Attributes:
        rows_written: Rows durably committed before the failure. For
            ``RowStoreInterface.upsert_many`` this counts rows of the failing
            call; the ingest pipeline re-raises with the import-wide total.
    """

    def __init__(self, message: str, rows_written: int = 0, row_id: Optional[str] = None):
        super().__init__(message)
        self.rows_written = rows_written
        self.row_id = row_id


class StoreReadError(StoreError):
    """Raised when reading from the row store fails."""


class InvalidConditionError(CsvLabError, ValueError):
    """Raised when filter or resample conditions fail validation."""


class EmptyResultWarning(UserWarning):
    """Issued when a filter or resample produced no rows.

    Not an error: an empty result is a valid outcome.
    """
