"""
Canonical JSON serialization helpers.

Provides a single canonical JSON policy used for dynamic ("any") column values and for
state-store payloads. This module is zero-IO and uses only the Python standard library.

Notes:
    - Canonical JSON:
        - sort_keys=True
        - separators=(",", ":")
        - ensure_ascii=False
    - Values the stdlib encoder does not know are converted by _json_default:
      datetimes/dates/times -> ISO-8601, bytes -> base64, Decimal -> str,
      sets -> sorted lists, pydantic models -> model_dump().
"""

from __future__ import annotations

import base64
import json
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

__all__ = [
    "json_dumps_canonical",
    "json_loads",
]


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=repr)
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        return dump()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps_canonical(obj: Any) -> str:
    """
    Serialize an object to a canonical JSON string.

    Args:
        obj (Any): Value to serialize (nested dicts/lists and common scalar types).

    Returns:
        str: Canonical JSON with sorted keys, compact separators, and ensure_ascii=False.

    Raises:
        TypeError: If a nested value has no JSON representation.

    Examples:
        >>> json_dumps_canonical({"b": 1, "a": [1, 2]})
        '{"a":[1,2],"b":1}'
        >>> json_dumps_canonical(b"hi")
        '"aGk="'
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def json_loads(s: str | bytes) -> Any:
    """Deserialize a JSON document using the stdlib json module."""
    return json.loads(s)
