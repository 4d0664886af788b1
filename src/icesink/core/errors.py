"""
Core exception types raised by schema mapping and row-model validation.

Provides typed exceptions for core-domain failures:
- SchemaError for a missing or malformed source schema.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - IO-layer failures (file writes, catalog DDL, commits, state store traffic) live in
      icesink.io.errors; core never raises them.

Examples:
    >>> from icesink.core.errors import SchemaError
    >>> from icesink.core.typemap import to_destination_schema
    >>> try:
    ...     to_destination_schema(None)
    ... except SchemaError as e:
    ...     msg = str(e)
    >>> "schema is missing" in msg
    True
"""

from __future__ import annotations

__all__ = [
    "SchemaError",
]


class SchemaError(ValueError):
    """Source schema is absent or cannot be mapped to a destination schema."""
