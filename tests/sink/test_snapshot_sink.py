from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest

from icesink.core import ColumnSpec, RowEvent, TableIdent
from icesink.io.catalog import LocalCatalog
from icesink.io.config import SinkSettings
from icesink.io.errors import IoConfigError, TableNotFoundError
from icesink.io.state import InMemoryStateStore
from icesink.sink import SnapshotSink, StreamingSink, WorkerInfo, build_sink
from icesink.sink.base import BaseSink

COLUMNS = [
    ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
    ColumnSpec(name="amount", data_type="float64"),
]
ORDERS = TableIdent(namespace="app", name="orders")


def _row(i: int) -> RowEvent:
    return RowEvent(
        kind="insert",
        table="orders",
        column_names=["id", "amount"],
        column_values=[i, i * 1.5],
        table_schema=COLUMNS,
    )


def _control(kind: str) -> RowEvent:
    return RowEvent(kind=kind, table="orders", table_schema=COLUMNS)


def _settings(tmp_path: Path) -> SinkSettings:
    return SinkSettings(prefix=str(tmp_path / "wh"), default_namespace="app")


def _sink(tmp_path: Path, catalog, store, worker_id: int) -> SnapshotSink:
    return SnapshotSink(_settings(tmp_path), catalog, store, WorkerInfo(worker_id=worker_id, scope_id="load"))


def test_done_table_load_flushes_the_ledger(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    sink = _sink(tmp_path, catalog, store, 1)

    sink.push([_control("init_table_load"), _row(1), _row(2)])
    assert store.get_state("load") == {}
    assert list(sink.ledger.pending()) == ["app.orders"]

    sink.push([_control("done_table_load")])
    assert list(store.get_state("load")) == ["streaming_files/app/orders/1/1"]
    assert catalog.load_table(ORDERS).files == []


def test_sharded_load_is_committed_on_done(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    shards = [_sink(tmp_path, catalog, store, w) for w in (0, 1, 2)]

    shards[0].push([_control("init_sharded_table_load")])
    for w, shard in enumerate(shards):
        shard.push([_row(w * 10), _row(w * 10 + 1), _control("done_table_load")])
    shards[0].push([_control("done_sharded_table_load")])

    files = catalog.load_table(ORDERS).files
    assert len(files) == 3
    assert sorted(pl.read_parquet(files)["id"].to_list()) == [0, 1, 10, 11, 20, 21]
    assert store.get_state("load") == {}


def test_done_sharded_with_nothing_pending_creates_the_table(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    sink = _sink(tmp_path, catalog, InMemoryStateStore(), 0)
    sink.push([_control("done_sharded_table_load")])
    assert catalog.load_table(ORDERS).files == []


def test_rows_before_a_control_event_are_written_first(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    sink = _sink(tmp_path, catalog, store, 0)

    sink.push([_row(1), _control("done_table_load"), _row(2)])

    state = store.get_state("load")
    assert list(state) == ["streaming_files/app/orders/0/1"]
    assert pl.read_parquet(state["streaming_files/app/orders/0/1"])["id"].to_list() == [1]
    assert list(sink.ledger.pending()) == ["app.orders"]


def test_truncate_and_drop(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    sink = _sink(tmp_path, catalog, store, 0)
    sink.push([_row(1), _control("done_table_load"), _control("done_sharded_table_load")])
    before = catalog.load_table(ORDERS)
    assert len(before.files) == 1

    sink.push([_control("truncate_table")])
    after = catalog.load_table(ORDERS)
    assert after.files == []
    assert after.schema == before.schema

    sink.push([_control("drop_table")])
    with pytest.raises(TableNotFoundError):
        catalog.load_table(ORDERS)
    # Dropping a missing table is a no-op
    sink.push([_control("drop_table")])


def test_build_sink_selects_mode(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    worker = WorkerInfo(worker_id=1, scope_id="job")

    snapshot = build_sink(_settings(tmp_path), store, worker, mode="snapshot", catalog=catalog)
    streaming = build_sink(_settings(tmp_path), store, worker, catalog=catalog)
    assert isinstance(snapshot, SnapshotSink)
    assert isinstance(streaming, StreamingSink)
    assert streaming.scheduler is None

    with pytest.raises(IoConfigError, match="unknown sink mode"):
        build_sink(_settings(tmp_path), store, worker, mode="batch", catalog=catalog)


def test_build_sink_builds_a_local_catalog(tmp_path: Path) -> None:
    sink = build_sink(_settings(tmp_path), InMemoryStateStore(), WorkerInfo(worker_id=3, scope_id="job"))
    assert isinstance(sink.catalog, LocalCatalog)
    sink.push([_row(7)])
    assert len(sink.ledger.pending()) == 0
    sink.close()


def test_invalid_settings_are_rejected(tmp_path: Path) -> None:
    settings = SinkSettings(prefix=str(tmp_path), catalog_type="rest")
    with pytest.raises(IoConfigError, match="catalog_uri"):
        build_sink(settings, InMemoryStateStore(), WorkerInfo(worker_id=0, scope_id="job"))


def test_base_sink_requires_push(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    worker = WorkerInfo(worker_id=0, scope_id="job")
    with pytest.raises(TypeError, match="push"):
        BaseSink(_settings(tmp_path), catalog, InMemoryStateStore(), worker)
