"""
Canonical type and event vocabularies for icesink.

Defines the source column types delivered by upstream row events, the destination
(Iceberg primitive) types written to tables, and the row/control event kinds.

Naming
------
- Enum classes: PascalCase
- Enum member names: UPPER_SNAKE
- Serialized values: lower_snake (source types), Iceberg type names (destination types)

Examples
--------
>>> from icesink.core.types import SourceType, source_type_from_value, EventKind
>>> source_type_from_value("INT64") is SourceType.INT64
True
>>> source_type_from_value("jsonb") is None
True
>>> EventKind.UPDATE.is_row_event
True
>>> EventKind.DONE_TABLE_LOAD.is_row_event
False
"""

from __future__ import annotations

from enum import Enum
from typing import Final

__all__ = [
    "SourceType",
    "DestinationType",
    "EventKind",
    "DDLKind",
    "source_type_from_value",
]


class SourceType(str, Enum):
    """Column types understood by the upstream event collaborator."""

    INT64 = "int64"
    INT32 = "int32"
    INT16 = "int16"
    INT8 = "int8"
    UINT64 = "uint64"
    UINT32 = "uint32"
    UINT16 = "uint16"
    UINT8 = "uint8"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BYTES = "bytes"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    INTERVAL = "interval"
    ANY = "any"


class DestinationType(str, Enum):
    """Iceberg primitive types produced by the type mapper."""

    LONG = "long"
    INT = "int"
    FLOAT = "float"
    DOUBLE = "double"
    BINARY = "binary"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMPTZ = "timestamptz"


class EventKind(str, Enum):
    """Kinds of events delivered in a batch."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DROP_TABLE = "drop_table"
    TRUNCATE_TABLE = "truncate_table"
    INIT_TABLE_LOAD = "init_table_load"
    DONE_TABLE_LOAD = "done_table_load"
    INIT_SHARDED_TABLE_LOAD = "init_sharded_table_load"
    DONE_SHARDED_TABLE_LOAD = "done_sharded_table_load"

    @property
    def is_row_event(self) -> bool:
        return self in _ROW_KINDS


class DDLKind(str, Enum):
    """Destructive operations supported by the table lifecycle manager."""

    DROP = "drop"
    TRUNCATE = "truncate"


_ROW_KINDS: Final[frozenset[EventKind]] = frozenset(
    {EventKind.INSERT, EventKind.UPDATE, EventKind.DELETE}
)

# Spellings seen in upstream schemas that map onto a canonical source type.
_SOURCE_ALIASES: Final[dict[str, SourceType]] = {
    "float": SourceType.FLOAT32,
    "double": SourceType.FLOAT64,
    "utf8": SourceType.STRING,
    "bool": SourceType.BOOLEAN,
}


def source_type_from_value(value: str | SourceType | None) -> SourceType | None:
    """
    Resolve a source type name case-insensitively.

    Args:
        value: Type name as declared by the upstream schema.

    Returns:
        SourceType | None: The canonical member, or None for unknown/dynamic types.
        Callers map None to a JSON-encoded string column.
    """
    if value is None:
        return None
    if isinstance(value, SourceType):
        return value
    s = str(value).strip().lower()
    try:
        return SourceType(s)
    except ValueError:
        return _SOURCE_ALIASES.get(s)
