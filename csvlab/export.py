"""Re-serialization of row sets to delimited text."""

import logging
import time
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from .models import ID_COLUMN, FileKind, Row, CellValue
from .storage.base import RowStoreInterface

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


def _format_cell(value: Optional[CellValue]) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e16:
            return str(int(value))
        return repr(value)
    return str(value)


def export_rows(rows: Iterable[Row], columns: Sequence[str], kind: Union[FileKind, str]) -> bytes:
    """Serialize ``rows`` with a header of ``columns`` only.

    Output is UTF-8 with a byte order mark, using the delimiter of ``kind``.
    Cells missing from a row are written empty.
    """
    file_kind = FileKind.parse(kind)
    columns = list(columns)
    records = [[_format_cell(row.get(column)) for column in columns] for row in rows]
    df = pd.DataFrame(records, columns=columns, dtype=object)
    text = df.to_csv(sep=file_kind.delimiter, index=False, lineterminator="\n")
    logger.debug(f"Exported {len(records)} rows x {len(columns)} columns as {file_kind.name}")
    return (_BOM + text).encode("utf-8")


def export_filename(prefix: str, kind: Union[FileKind, str], now: Optional[datetime] = None) -> str:
    """Timestamp-qualified file name, e.g. ``filtered_data_1700000000000.csv``."""
    file_kind = FileKind.parse(kind)
    epoch_ms = int((now.timestamp() if now is not None else time.time()) * 1000)
    return f"{prefix}_{epoch_ms}.{file_kind.extension}"


def export_ids(rows: Iterable[Row]) -> str:
    """Newline-joined ids of ``rows``."""
    return "\n".join(str(row[ID_COLUMN]) for row in rows)


async def export_store(store: RowStoreInterface, columns: Sequence[str], kind: Union[FileKind, str]) -> bytes:
    """Serialize every stored row."""
    rows: List[Row] = await store.fetch_all()
    return export_rows(rows, columns, kind)
