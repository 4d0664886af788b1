"""
Row batch encoder: row events -> Polars DataFrame matching a destination schema.

Overview
- One output column per destination field, in schema order; one cell per input row, in
  input order.
- Cells are looked up by column name in each row. A missing column, a missing value slot,
  or an explicit None yields a null cell; none of these is an error.
- Coercion is type-directed and permissive (never format-validating):
  long/int            integers wrap to 64/32-bit two's complement; floats truncate;
                      numeric strings parse; booleans become 1/0; anything else is 0
  float/double        numeric conversion, unparsable values become 0.0
  boolean             truthiness of numbers, "true"/"false"/"1"/"0"/... for strings
  string              plain text conversion, or canonical JSON when the row's own schema
                      declares the source column with an unknown/dynamic type
  binary              bytes-like values only; anything else becomes null
  date                days since epoch (see to_date_days)
  timestamptz         milliseconds since epoch (see to_timestamp_ms)

Notes
- Input events are read-only.
- Dates and timestamps that cannot be interpreted fall back to 0 (the epoch) rather than
  raising; see DESIGN.md for this decision.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime
from typing import Any, Final

import polars as pl

from icesink.core.schema import DestinationField, DestinationSchema, RowEvent
from icesink.core.serde import json_dumps_canonical
from icesink.core.types import DestinationType, SourceType, source_type_from_value

__all__ = [
    "encode_batch",
    "polars_dtype",
    "to_date_days",
    "to_timestamp_ms",
]

_EPOCH: Final[datetime] = datetime(1970, 1, 1, tzinfo=UTC)
_EPOCH_DATE: Final[date] = date(1970, 1, 1)
# Largest millisecond count that still fits int64 microseconds
_MAX_TIMESTAMP_MS: Final[int] = (2**63 - 1) // 1000

_RFC3339_RE: Final[re.Pattern[str]] = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
# Tried in order after RFC3339; naive results are taken as UTC.
_TIMESTAMP_FORMATS: Final[tuple[str, ...]] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)
_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"1", "t", "true"})
# Source types whose values are stored as canonical JSON text.
_DYNAMIC_SOURCE_TYPES: Final[frozenset[SourceType]] = frozenset({SourceType.ANY, SourceType.INTERVAL})

_POLARS_DTYPES: Final[dict[DestinationType, Any]] = {
    DestinationType.LONG: pl.Int64,
    DestinationType.INT: pl.Int32,
    DestinationType.FLOAT: pl.Float32,
    DestinationType.DOUBLE: pl.Float64,
    DestinationType.BINARY: pl.Binary,
    DestinationType.STRING: pl.Utf8,
    DestinationType.BOOLEAN: pl.Boolean,
    DestinationType.DATE: pl.Date,
    DestinationType.TIMESTAMPTZ: pl.Datetime("ms", "UTC"),
}


def polars_dtype(dtype: DestinationType) -> Any:
    """Polars dtype used to hold a destination type in memory."""
    return _POLARS_DTYPES[dtype]


# -----------------------------------------------------------------------------
# Scalar coercions
# -----------------------------------------------------------------------------


def _wrap(value: int, bits: int) -> int:
    mask = (1 << bits) - 1
    value &= mask
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _to_int(value: Any, bits: int) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return _wrap(value, bits)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        return _wrap(int(value), bits)
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", "replace") if isinstance(value, bytes) else value
        try:
            return _wrap(int(text.strip(), 0), bits)
        except ValueError:
            pass
        try:
            return _to_int(float(text), bits)
        except ValueError:
            return 0
    try:
        return _wrap(int(value), bits)
    except (TypeError, ValueError, OverflowError):
        return 0


def _to_long(value: Any) -> int:
    return _to_int(value, 64)


def _to_int32(value: Any) -> int:
    return _to_int(value, 32)


def _to_float(value: Any) -> float:
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", "replace")
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (int, float)):
        return value != 0
    return bool(value)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _to_binary(value: Any) -> bytes | None:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _parse_timestamp(text: str) -> datetime | None:
    text = text.strip()
    if _RFC3339_RE.match(text):
        try:
            return datetime.fromisoformat(text.replace("t", "T").replace("z", "Z"))
        except ValueError:
            pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_date_days(value: Any) -> int:
    """
    Convert a value to whole days since 1970-01-01.

    Accepts a datetime (floored to its UTC day), a date, an integer day count, or a
    "YYYY-MM-DD" string. Anything else yields 0.

    Examples:
        >>> to_date_days("1970-01-11")
        10
        >>> to_date_days(datetime(1970, 1, 2, 12, tzinfo=UTC))
        1
        >>> to_date_days("01/02/2024")
        0
    """
    if isinstance(value, datetime):
        return (_as_utc(value) - _EPOCH).days
    if isinstance(value, date):
        return (value - _EPOCH_DATE).days
    if isinstance(value, int) and not isinstance(value, bool):
        return _wrap(value, 32)
    if isinstance(value, str):
        try:
            return (datetime.strptime(value.strip(), "%Y-%m-%d").date() - _EPOCH_DATE).days
        except ValueError:
            return 0
    return 0


def to_timestamp_ms(value: Any) -> int:
    """
    Convert a value to milliseconds since the Unix epoch (UTC).

    Accepts a datetime (naive values are taken as UTC), a date (midnight UTC), an integer
    millisecond count, or a string matched in order against RFC3339,
    "YYYY-MM-DD HH:MM:SS", "YYYY-MM-DDTHH:MM:SS", and "YYYY-MM-DD". The first format that
    parses wins; anything else yields 0. Integer counts are wrapped to 64 bits, and counts
    whose microsecond value would overflow int64 also yield 0.

    Examples:
        >>> to_timestamp_ms("2024-01-02 03:04:05")
        1704164645000
        >>> to_timestamp_ms("1970-01-01T00:00:01+00:00")
        1000
        >>> to_timestamp_ms("not-a-date")
        0
    """
    if isinstance(value, datetime):
        delta = _as_utc(value) - _EPOCH
        return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
    if isinstance(value, date):
        return (value - _EPOCH_DATE).days * 86_400_000
    if isinstance(value, int) and not isinstance(value, bool):
        ms = _wrap(value, 64)
        return ms if abs(ms) <= _MAX_TIMESTAMP_MS else 0
    if isinstance(value, str):
        parsed = _parse_timestamp(value)
        if parsed is not None:
            return to_timestamp_ms(parsed)
    return 0


_COERCERS: Final[dict[DestinationType, Callable[[Any], Any]]] = {
    DestinationType.LONG: _to_long,
    DestinationType.INT: _to_int32,
    DestinationType.FLOAT: _to_float,
    DestinationType.DOUBLE: _to_float,
    DestinationType.BINARY: _to_binary,
    DestinationType.STRING: _to_text,
    DestinationType.BOOLEAN: _to_bool,
    DestinationType.DATE: to_date_days,
    DestinationType.TIMESTAMPTZ: to_timestamp_ms,
}


# -----------------------------------------------------------------------------
# Batch encoding
# -----------------------------------------------------------------------------


def _is_dynamic_source(event: RowEvent, column: str) -> bool:
    declared = event.source_type_of(column)
    if declared is None:
        return False
    st = source_type_from_value(declared)
    return st is None or st in _DYNAMIC_SOURCE_TYPES


def _cell(event: RowEvent, field: DestinationField) -> Any:
    found, value = event.value_of(field.name)
    if not found or value is None:
        return None
    if field.type is DestinationType.STRING and _is_dynamic_source(event, field.name):
        try:
            return json_dumps_canonical(value)
        except TypeError:
            # No JSON form: store its text as a JSON string.
            return json_dumps_canonical(str(value))
    return _COERCERS[field.type](value)


def _column(name: str, dtype: DestinationType, cells: list[Any]) -> pl.Series:
    if dtype is DestinationType.DATE:
        return pl.Series(name, cells, dtype=pl.Int32).cast(pl.Date)
    if dtype is DestinationType.TIMESTAMPTZ:
        return (
            pl.Series(name, cells, dtype=pl.Int64)
            .cast(pl.Datetime("ms"))
            .dt.replace_time_zone("UTC")
        )
    return pl.Series(name, cells, dtype=polars_dtype(dtype))


def encode_batch(events: Sequence[RowEvent], schema: DestinationSchema) -> pl.DataFrame:
    """
    Encode row events targeting one table into a DataFrame shaped like `schema`.

    Args:
        events: Row events in arrival order (all for the same table).
        schema: The table's destination schema (field order and types).

    Returns:
        pl.DataFrame: len(schema.fields) columns, len(events) rows. An empty input yields
        an empty frame with the same columns and dtypes.

    Examples:
        >>> from icesink.core import ColumnSpec, RowEvent, to_destination_schema
        >>> cols = [ColumnSpec(name="id", data_type="int8")]
        >>> df = encode_batch(
        ...     [RowEvent(kind="insert", table="t", column_names=["id"], column_values=[7],
        ...               table_schema=cols)],
        ...     to_destination_schema(cols),
        ... )
        >>> df["id"].to_list(), str(df["id"].dtype)
        ([7], 'Int32')
    """
    columns = [
        _column(f.name, f.type, [_cell(event, f) for event in events]) for f in schema.fields
    ]
    return pl.DataFrame(columns)
