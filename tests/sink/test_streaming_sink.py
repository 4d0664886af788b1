from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest

from icesink.core import ColumnSpec, RowEvent, TableIdent
from icesink.io.catalog import LocalCatalog
from icesink.io.config import SinkSettings
from icesink.io.errors import IoError
from icesink.io.state import InMemoryStateStore
from icesink.sink import StreamingSink, WorkerInfo

COLUMNS = [
    ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
    ColumnSpec(name="name", data_type="string"),
]
USERS = TableIdent(namespace="app", name="users")
ORDERS = TableIdent(namespace="app", name="orders")


def _row(table: str, i: int, kind: str = "insert") -> RowEvent:
    return RowEvent(
        kind=kind,
        table=table,
        column_names=["id", "name"],
        column_values=[i, f"n{i}"],
        table_schema=COLUMNS,
    )


def _settings(tmp_path: Path) -> SinkSettings:
    return SinkSettings(prefix=str(tmp_path / "wh"), default_namespace="app", commit_interval_seconds=3600.0)


def _sink(tmp_path: Path, catalog, store, worker_id: int, **kw) -> StreamingSink:
    return StreamingSink(
        _settings(tmp_path), catalog, store, WorkerInfo(worker_id=worker_id, scope_id="job"), **kw
    )


def test_only_the_leader_runs_a_scheduler(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    leader = _sink(tmp_path, catalog, store, 0, start_scheduler=False)
    follower = _sink(tmp_path, catalog, store, 3, start_scheduler=False)
    main = StreamingSink(
        _settings(tmp_path), catalog, store, WorkerInfo(worker_id=5, scope_id="job", is_main=True),
        start_scheduler=False,
    )
    assert leader.scheduler is not None
    assert follower.scheduler is None
    assert main.scheduler is not None


def test_push_writes_one_file_per_table_and_flushes(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    sink = _sink(tmp_path, catalog, store, 2, start_scheduler=False)

    sink.push([_row("users", 1), _row("orders", 10), _row("users", 2, kind="update")])

    state = store.get_state("job")
    assert sorted(state) == ["streaming_files/app/orders/2/2", "streaming_files/app/users/2/1"]
    users_file = state["streaming_files/app/users/2/1"][0]
    assert pl.read_parquet(users_file)["id"].to_list() == [1, 2]
    assert sink.ledger.pending() == {}
    # Tables exist, files are not committed until the leader runs
    assert catalog.load_table(USERS).files == []
    assert catalog.load_table(ORDERS).files == []


def test_control_events_are_ignored(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    sink = _sink(tmp_path, catalog, store, 1, start_scheduler=False)
    sink.push(
        [
            RowEvent(kind="truncate_table", table="users", table_schema=COLUMNS),
            RowEvent(kind="done_table_load", table="users"),
        ]
    )
    assert store.get_state("job") == {}
    with pytest.raises(IoError):
        catalog.load_table(USERS)


def test_leader_commits_files_from_all_writers(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    leader = _sink(tmp_path, catalog, store, 0, start_scheduler=False)
    follower = _sink(tmp_path, catalog, store, 1, start_scheduler=False)

    leader.push([_row("users", 1)])
    follower.push([_row("users", 2), _row("users", 3)])
    results = leader.scheduler.run_once()

    assert results[USERS].outcome == "committed"
    files = catalog.load_table(USERS).files
    assert len(files) == 2
    assert pl.read_parquet(files).height == 3
    assert store.get_state("job") == {}


def test_close_runs_a_final_commit(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path / "wh"))
    store = InMemoryStateStore()
    with _sink(tmp_path, catalog, store, 0) as sink:
        assert sink.scheduler.running
        sink.push([_row("users", 1)])

    assert not sink.scheduler.running
    assert len(catalog.load_table(USERS).files) == 1
    assert store.get_state("job") == {}
    with pytest.raises(IoError, match="closed"):
        sink.push([_row("users", 2)])
