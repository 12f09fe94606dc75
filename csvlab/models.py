"""Row model, cell classification and query condition models."""

import math
import re
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from .errors import InvalidConditionError

CellValue = Union[float, str]
Row = Dict[str, CellValue]

ID_COLUMN = "id"
LABEL_COLUMN = "label"
CAPTION_COLUMN = "caption"
LABEL_WORD_COUNT = "label_word_count"

# Columns computed during ingest; never part of the original file.
DERIVED_COLUMNS = frozenset({LABEL_WORD_COUNT})

_WORD_COUNT_SOURCES = (LABEL_COLUMN, CAPTION_COLUMN)

# Plain decimal or scientific literal, e.g. "12", "-0.5", ".5", "1e-3"
_NUMERIC_LITERAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


class ValueKind(Enum):
    """Tag of a stored cell value."""
    NUMERIC = "numeric"
    TEXT = "text"


class FileKind(Enum):
    """Delimited file flavours, each with a fixed delimiter."""
    CSV = ","
    TSV = "\t"

    @property
    def delimiter(self) -> str:
        return self.value

    @property
    def extension(self) -> str:
        return self.name.lower()

    @classmethod
    def from_filename(cls, filename: str) -> "FileKind":
        """Pick the kind from a file name: ``.tsv`` is TSV, anything else CSV."""
        if filename.lower().endswith(".tsv"):
            return cls.TSV
        return cls.CSV

    @classmethod
    def parse(cls, kind: Union["FileKind", str]) -> "FileKind":
        """Accept a ``FileKind`` or its name ("csv", ".tsv", ...)."""
        if isinstance(kind, cls):
            return kind
        try:
            return cls[str(kind).strip().lstrip(".").upper()]
        except KeyError:
            raise ValueError(f"Unsupported file kind: {kind!r}. Expected 'csv' or 'tsv'") from None


def kind_of(value: Any) -> Optional[ValueKind]:
    """Return the tag of a stored value, or None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return ValueKind.NUMERIC
    if isinstance(value, str):
        return ValueKind.TEXT
    return None


def is_numeric(value: Any) -> bool:
    return kind_of(value) is ValueKind.NUMERIC


def is_text(value: Any) -> bool:
    return kind_of(value) is ValueKind.TEXT


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens."""
    return len(text.split())


def classify_cell(raw: Any) -> Optional[CellValue]:
    """Classify a raw cell into a numeric or text value.

    Returns None for empty or missing cells, which are omitted from the row.
    """
    if raw is None:
        return None
    if isinstance(raw, float) and math.isnan(raw):
        # pandas fills short records with NaN
        return None
    text = str(raw).strip()
    if not text:
        return None
    if _NUMERIC_LITERAL.match(text):
        number = float(text)
        if math.isfinite(number):
            return number
    return text


def refresh_derived(row: Row) -> Row:
    """Recompute ``label_word_count`` from the row's current label text."""
    label = row.get(LABEL_COLUMN)
    if is_text(label):
        row[LABEL_WORD_COUNT] = float(count_words(label))
    else:
        row.pop(LABEL_WORD_COUNT, None)
    return row


def build_row(record: Dict[str, Any]) -> Optional[Row]:
    """Turn one parsed record into a typed row.

    Returns None when the record has no usable ``id``; such records are
    excluded from the import.
    """
    raw_id = record.get(ID_COLUMN)
    if raw_id is None or (isinstance(raw_id, float) and math.isnan(raw_id)):
        return None
    row_id = str(raw_id).strip()
    if not row_id:
        return None

    row: Row = {ID_COLUMN: row_id}
    for column, raw in record.items():
        if column == ID_COLUMN:
            continue
        value = classify_cell(raw)
        if value is None:
            continue
        row[column] = value

        if isinstance(value, str) and column.lower() in _WORD_COUNT_SOURCES:
            if column.lower() == CAPTION_COLUMN:
                row[LABEL_COLUMN] = value
            row[LABEL_WORD_COUNT] = float(count_words(value))
    return row


class NumericFilter(BaseModel):
    """Inclusive range condition on a numeric column."""

    kind: Literal["numeric"] = "numeric"
    column: str = Field(..., description="Column to test")
    min: Optional[float] = Field(None, description="Inclusive lower bound, unbounded when omitted")
    max: Optional[float] = Field(None, description="Inclusive upper bound, unbounded when omitted")

    @field_validator("column")
    @classmethod
    def validate_column(cls, v):
        if not v or not v.strip():
            raise ValueError("Column name cannot be empty")
        return v.strip()

    @field_validator("min", "max")
    @classmethod
    def validate_bound(cls, v):
        if v is not None and not math.isfinite(v):
            raise ValueError("Range bounds must be finite numbers")
        return v

    @model_validator(mode="after")
    def validate_range(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) cannot be greater than max ({self.max})")
        return self

    def matches(self, row: Row) -> bool:
        value = row.get(self.column)
        if not is_numeric(value):
            return False
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def describe(self) -> str:
        low = "-inf" if self.min is None else f"{self.min:g}"
        high = "inf" if self.max is None else f"{self.max:g}"
        return f"{self.column} in [{low}, {high}]"


class TextFilter(BaseModel):
    """Case-insensitive substring condition on a text column."""

    kind: Literal["text"] = "text"
    column: str = Field(..., description="Column to test")
    include_keyword: str = Field(..., description="Substring the value must contain")
    exclude_keyword: Optional[str] = Field(None, description="Substring the value must not contain")

    @field_validator("column", "include_keyword")
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    @field_validator("exclude_keyword")
    @classmethod
    def validate_exclude(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    def matches(self, row: Row) -> bool:
        value = row.get(self.column)
        if not is_text(value):
            return False
        folded = value.lower()
        if self.include_keyword.lower() not in folded:
            return False
        if self.exclude_keyword and self.exclude_keyword.lower() in folded:
            return False
        return True

    def describe(self) -> str:
        text = f"{self.column} contains '{self.include_keyword}'"
        if self.exclude_keyword:
            text += f" and not '{self.exclude_keyword}'"
        return text


FilterCondition = Annotated[Union[NumericFilter, TextFilter], Field(discriminator="kind")]


class ResampleCondition(BaseModel):
    """Resize the rows matching ``keyword`` in ``column`` to ``target_count``."""

    column: str = Field(..., description="Text column to match against")
    keyword: str = Field(..., description="Word (or word stem) to match")
    target_count: int = Field(..., gt=0, description="Number of rows the partition is resized to")

    @field_validator("column", "keyword")
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()


_filter_list_adapter = TypeAdapter(List[FilterCondition])
_resample_list_adapter = TypeAdapter(List[ResampleCondition])


def _with_kind(raw: Any) -> Any:
    if isinstance(raw, dict) and "kind" not in raw:
        inferred = "text" if "include_keyword" in raw else "numeric"
        return {**raw, "kind": inferred}
    return raw


def parse_filter_conditions(conditions: Iterable[Any]) -> List[Union[NumericFilter, TextFilter]]:
    """Validate filter conditions given as models or plain dicts."""
    items = [c.model_dump() if isinstance(c, BaseModel) else _with_kind(c) for c in conditions]
    try:
        return _filter_list_adapter.validate_python(items)
    except ValidationError as e:
        raise InvalidConditionError(f"Invalid filter conditions: {e}") from e


def parse_resample_conditions(conditions: Iterable[Any]) -> List[ResampleCondition]:
    """Validate resample conditions given as models or plain dicts."""
    items = [c.model_dump() if isinstance(c, BaseModel) else c for c in conditions]
    try:
        return _resample_list_adapter.validate_python(items)
    except ValidationError as e:
        raise InvalidConditionError(f"Invalid resample conditions: {e}") from e
