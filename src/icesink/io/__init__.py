"""
icesink.io - Files, catalogs, and shared state for the table sink.

## Responsibilities
- Encode row events into Polars frames shaped like a table's destination schema.
- Write immutable Parquet data files whose column ids match the table's field ids.
- Track each writer's files in a ledger persisted to a shared state store.
- Ensure/drop/truncate tables through a catalog adapter.
- Periodically commit every writer's files on the leader and clear the consumed state.

## Public API
- SinkSettings / RetrySettings - configuration (env > TOML > defaults).
- encode_batch - RowEvent batch -> pl.DataFrame.
- DataFileWriter - pl.DataFrame -> Parquet data file path.
- WriterFileLedger - per-writer sequence counter and pending file paths.
- InMemoryStateStore / LocalStateStore - shared state stores.
- LocalCatalog / build_catalog - catalog adapters (pyiceberg for "rest" and "glue").
- TableLifecycleManager - ensure_table / drop_or_truncate.
- CommitScheduler - aggregate-commit-clear loop.
- RetryPolicy / CallContext - backoff and cancellable deadlines.

## Import DAG discipline
- Depends on stdlib, polars/pyarrow, pyiceberg (lazily), and icesink.core.*.
- MUST NOT import icesink.sink.

## Examples
```python
from icesink.core import ColumnSpec, RowEvent, TableIdent
from icesink.io import DataFileWriter, LocalCatalog, TableLifecycleManager, encode_batch

catalog = LocalCatalog("out/warehouse")  # doctest: +SKIP
cols = [ColumnSpec(name="id", data_type="int64", required=True, primary_key=True)]
handle = TableLifecycleManager(catalog).ensure_table(TableIdent(namespace="ns", name="t"), cols)  # doctest: +SKIP
df = encode_batch([RowEvent(kind="insert", table="t", column_names=["id"], column_values=[1])], handle.schema)  # doctest: +SKIP
DataFileWriter(prefix="out/warehouse").write(handle, df, worker_id=0, sequence=1)  # doctest: +SKIP
```

## Notes
- Data file write path: Parquet into "<path>.tmp" -> fsync -> os.replace (LocalFileIO).
- State keys: streaming_files/<namespace>/<table>/<writer_id>/<flush_seq>, written once.
"""

from __future__ import annotations

from .catalog import Catalog, LocalCatalog, TableHandle, Transaction, build_catalog
from .config import RetrySettings, SinkSettings
from .context import CallContext
from .encode import encode_batch
from .ledger import WriterFileLedger
from .lifecycle import TableLifecycleManager
from .retry import RetryPolicy
from .scheduler import CommitResult, CommitScheduler, CommitState
from .state import InMemoryStateStore, LocalStateStore, StateStore
from .write import DataFileWriter

__all__ = [
    "CallContext",
    "Catalog",
    "CommitResult",
    "CommitScheduler",
    "CommitState",
    "DataFileWriter",
    "InMemoryStateStore",
    "LocalCatalog",
    "LocalStateStore",
    "RetryPolicy",
    "RetrySettings",
    "SinkSettings",
    "StateStore",
    "TableHandle",
    "TableLifecycleManager",
    "Transaction",
    "WriterFileLedger",
    "build_catalog",
    "encode_batch",
]
