"""
Source column type -> destination (Iceberg) type mapping.

Overview
- map_source_type(): fixed lookup table from SourceType to DestinationType.
- to_destination_schema(): ordered fields with sequential 1-based ids and identifier markers.

Mapping table
| Source type                        | Destination type |
|------------------------------------|------------------|
| int64, uint64, uint32              | long             |
| int32, int16, int8, uint16, uint8  | int              |
| float32 / float64                  | float / double   |
| bytes                              | binary           |
| string                             | string           |
| boolean                            | boolean          |
| date                               | date             |
| datetime, timestamp                | timestamptz      |
| anything else (any, interval, ...) | string (JSON)    |

Notes
- Field ids are assigned in input order starting at 1; mapping the same column
  sequence twice yields identical ids and identifier sets.
- A column is an identifier field only when it is both primary key and required.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from .errors import SchemaError
from .schema import ColumnSpec, DestinationField, DestinationSchema
from .types import DestinationType, SourceType, source_type_from_value

__all__ = [
    "map_source_type",
    "to_destination_schema",
]

_TYPE_MAP: Final[dict[SourceType, DestinationType]] = {
    SourceType.INT64: DestinationType.LONG,
    SourceType.INT32: DestinationType.INT,
    SourceType.INT16: DestinationType.INT,
    SourceType.INT8: DestinationType.INT,
    SourceType.UINT64: DestinationType.LONG,
    SourceType.UINT32: DestinationType.LONG,
    SourceType.UINT16: DestinationType.INT,
    SourceType.UINT8: DestinationType.INT,
    SourceType.FLOAT32: DestinationType.FLOAT,
    SourceType.FLOAT64: DestinationType.DOUBLE,
    SourceType.BYTES: DestinationType.BINARY,
    SourceType.STRING: DestinationType.STRING,
    SourceType.BOOLEAN: DestinationType.BOOLEAN,
    SourceType.DATE: DestinationType.DATE,
    SourceType.DATETIME: DestinationType.TIMESTAMPTZ,
    SourceType.TIMESTAMP: DestinationType.TIMESTAMPTZ,
}


def map_source_type(data_type: str | SourceType | None) -> DestinationType:
    """
    Map one source type to its destination type.

    Args:
        data_type: Source type name or member.

    Returns:
        DestinationType: Mapped type; unknown and dynamic types map to STRING.

    Examples:
        >>> map_source_type("uint16").value
        'int'
        >>> map_source_type("any").value
        'string'
    """
    st = source_type_from_value(data_type)
    if st is None:
        return DestinationType.STRING
    return _TYPE_MAP.get(st, DestinationType.STRING)


def to_destination_schema(columns: Sequence[ColumnSpec] | None) -> DestinationSchema:
    """
    Build a destination schema from an ordered sequence of source columns.

    Args:
        columns: Source columns in table order.

    Returns:
        DestinationSchema: Fields with ids 1..n and the identifier field ids.

    Raises:
        SchemaError: If columns is None.

    Examples:
        >>> cols = [
        ...     ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
        ...     ColumnSpec(name="name", data_type="string", required=True),
        ...     ColumnSpec(name="tag", data_type="any"),
        ... ]
        >>> s = to_destination_schema(cols)
        >>> [(f.field_id, f.type.value) for f in s.fields]
        [(1, 'long'), (2, 'string'), (3, 'string')]
        >>> s.identifier_field_ids
        (1,)
    """
    if columns is None:
        raise SchemaError("source schema is missing (None); cannot map destination schema")

    fields: list[DestinationField] = []
    identifier_ids: list[int] = []
    for field_id, col in enumerate(columns, start=1):
        fields.append(
            DestinationField(
                field_id=field_id,
                name=col.name,
                type=map_source_type(col.data_type),
                required=col.required,
            )
        )
        # Iceberg only accepts required identifier fields.
        if col.primary_key and col.required:
            identifier_ids.append(field_id)

    return DestinationSchema(fields=tuple(fields), identifier_field_ids=tuple(identifier_ids))
