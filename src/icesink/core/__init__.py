"""
Core package aggregator for icesink contracts (types, schema models, type mapping, serde).

## Contracts (single source of truth)
- Types - source column types, destination types, event kinds.
- Schema - ColumnSpec, TableIdent, DestinationSchema, RowEvent (pydantic v2, frozen).
- Type mapping - fixed source -> destination table with stable field ids.
- Serde - canonical JSON used for dynamic column values and state payloads.

## Notes
- Zero-IO policy: stdlib + pydantic only; no file/network IO.
- icesink.io builds Arrow/Parquet schemas and catalog schemas from DestinationSchema.

## Examples
```python
from icesink.core import ColumnSpec, to_destination_schema

schema = to_destination_schema([
    ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
    ColumnSpec(name="payload", data_type="any"),
])
schema.identifier_field_ids  # (1,)
```
"""

from __future__ import annotations

from .errors import SchemaError
from .schema import ColumnSpec, DestinationField, DestinationSchema, RowEvent, TableIdent
from .typemap import map_source_type, to_destination_schema
from .types import DDLKind, DestinationType, EventKind, SourceType

__all__ = [
    "ColumnSpec",
    "DDLKind",
    "DestinationField",
    "DestinationSchema",
    "DestinationType",
    "EventKind",
    "RowEvent",
    "SchemaError",
    "SourceType",
    "TableIdent",
    "map_source_type",
    "to_destination_schema",
]
