"""
icesink - streaming table-commit pipeline for Iceberg-style tables.

Layers
- icesink.core: zero-IO contracts (types, pydantic models, type mapping, serde).
- icesink.io: encoding, Parquet data files, ledgers, state stores, catalogs, scheduling.
- icesink.sink: host-facing streaming and snapshot sinks.
- icesink.log: logging configuration.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
