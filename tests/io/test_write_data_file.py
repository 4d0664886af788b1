from __future__ import annotations

import glob
import os
from datetime import UTC, datetime
from pathlib import Path

import polars as pl
import pyarrow.parquet as pq
import pytest

from icesink.core import ColumnSpec, RowEvent, TableIdent, to_destination_schema
from icesink.io.catalog import LocalCatalog
from icesink.io.context import CallContext
from icesink.io.encode import encode_batch
from icesink.io.errors import WriteError
from icesink.io.retry import RetryPolicy
from icesink.io.write import DataFileWriter, destination_schema_to_arrow

COLUMNS = [
    ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
    ColumnSpec(name="small", data_type="int8"),
    ColumnSpec(name="name", data_type="string"),
    ColumnSpec(name="ts", data_type="datetime"),
]
IDENT = TableIdent(namespace="ns", name="events")


def _events(n: int) -> list[RowEvent]:
    return [
        RowEvent(
            kind="insert",
            namespace="ns",
            table="events",
            column_names=["id", "small", "name", "ts"],
            column_values=[i, i % 3, f"n{i}", datetime(2024, 1, 1, 0, 0, i, tzinfo=UTC)],
            table_schema=COLUMNS,
        )
        for i in range(n)
    ]


@pytest.fixture
def table(tmp_path: Path):
    catalog = LocalCatalog(str(tmp_path))
    return catalog.create_table(IDENT, to_destination_schema(COLUMNS))


def test_write_round_trip_with_field_ids(tmp_path: Path, table) -> None:
    writer = DataFileWriter(prefix=str(tmp_path))
    df = encode_batch(_events(5), table.schema)

    path = writer.write(table, df, worker_id=10007, sequence=123)

    assert path is not None
    assert path.startswith(f"{tmp_path}/ns/events/data/00012-3-")
    assert path.endswith("-1-00007.parquet")
    assert os.path.exists(path)
    assert glob.glob(os.path.join(os.path.dirname(path), "*.tmp")) == []

    pf = pq.ParquetFile(path)
    arrow_schema = pf.schema_arrow
    ids = [int(arrow_schema.field(f.name).metadata[b"PARQUET:field_id"]) for f in table.schema.fields]
    assert ids == [1, 2, 3, 4]
    assert arrow_schema.field("id").nullable is False

    back = pl.read_parquet(path)
    assert back.height == 5
    assert back["id"].to_list() == [0, 1, 2, 3, 4]
    # int8 source round-trips as a 32-bit integer
    assert back.schema["small"] == pl.Int32
    assert back["small"].to_list() == [0, 1, 2, 0, 1]
    assert back["ts"].to_list()[1] == datetime(2024, 1, 1, 0, 0, 1, tzinfo=UTC)


def test_zero_rows_is_a_noop(tmp_path: Path, table) -> None:
    writer = DataFileWriter(prefix=str(tmp_path))
    assert writer.write(table, encode_batch([], table.schema), worker_id=0, sequence=1) is None
    assert not os.path.exists(tmp_path / "ns" / "events" / "data")


class _NoCreateHandle:
    def __init__(self, table) -> None:
        self.identifier = table.identifier
        self.schema = table.schema
        self.io = object()


def test_storage_without_create_is_write_error(tmp_path: Path, table) -> None:
    writer = DataFileWriter(prefix=str(tmp_path))
    df = encode_batch(_events(1), table.schema)
    with pytest.raises(WriteError, match="create-for-write"):
        writer.write(_NoCreateHandle(table), df, worker_id=0, sequence=1)


def test_untranslatable_frame_is_write_error(tmp_path: Path, table) -> None:
    writer = DataFileWriter(prefix=str(tmp_path))
    with pytest.raises(WriteError):
        writer.write(table, pl.DataFrame({"other": [1]}), worker_id=0, sequence=1)


class _FlakyIO:
    def __init__(self, inner, failures: int) -> None:
        self.inner = inner
        self.failures = failures
        self.paths: list[str] = []

    def create(self, path: str):
        self.paths.append(path)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("transient storage failure")
        return self.inner.create(path)


class _FlakyHandle:
    def __init__(self, table, io) -> None:
        self.identifier = table.identifier
        self.schema = table.schema
        self.io = io


def test_write_retries_reuse_the_same_path(tmp_path: Path, table) -> None:
    flaky = _FlakyIO(table.io, failures=2)
    writer = DataFileWriter(
        prefix=str(tmp_path),
        retry=RetryPolicy(initial_interval=0.001, max_interval=0.002, randomization_factor=0.0),
    )
    df = encode_batch(_events(2), table.schema)

    path = writer.write(_FlakyHandle(table, flaky), df, worker_id=1, sequence=1, ctx=CallContext().child(10.0))

    assert len(flaky.paths) == 3
    assert len(set(flaky.paths)) == 1
    assert path == flaky.paths[0]
    assert pl.read_parquet(path).height == 2


def test_out_of_range_millisecond_counts_still_write(tmp_path: Path, table) -> None:
    events = [
        RowEvent(
            kind="insert", table="events", column_names=["id", "ts"], column_values=[i, far], table_schema=COLUMNS
        )
        for i, far in enumerate((2**62, -(2**62)))
    ]
    writer = DataFileWriter(prefix=str(tmp_path))

    path = writer.write(table, encode_batch(events, table.schema), worker_id=0, sequence=1)

    assert pl.read_parquet(path)["ts"].to_list() == [datetime(1970, 1, 1, tzinfo=UTC)] * 2


def test_arrow_schema_translation() -> None:
    schema = destination_schema_to_arrow(to_destination_schema(COLUMNS))
    assert schema.names == ["id", "small", "name", "ts"]
    assert str(schema.field("ts").type) == "timestamp[us, tz=UTC]"
    assert schema.field("small").nullable is True
