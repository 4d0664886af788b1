from __future__ import annotations

import os
from pathlib import Path

import pytest

from icesink.core import ColumnSpec, SchemaError, TableIdent, to_destination_schema
from icesink.io.catalog import LocalCatalog, build_catalog
from icesink.io.config import SinkSettings
from icesink.io.errors import DDLError, IoError, TableAlreadyExistsError, TableNotFoundError
from icesink.io.lifecycle import TableLifecycleManager
from icesink.io.manifest import TableLog, load_table_log
from icesink.io.paths import table_manifest_path

COLUMNS = [
    ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
    ColumnSpec(name="v", data_type="string"),
]
IDENT = TableIdent(namespace="ns", name="t")


def test_create_load_and_duplicate_create(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    with pytest.raises(TableNotFoundError):
        catalog.load_table(IDENT)

    created = catalog.create_table(IDENT, to_destination_schema(COLUMNS))
    loaded = catalog.load_table(IDENT)
    assert loaded.schema == created.schema
    assert loaded.schema.identifier_field_ids == (1,)
    assert os.path.exists(table_manifest_path(str(tmp_path), IDENT))

    with pytest.raises(TableAlreadyExistsError):
        catalog.create_table(IDENT, to_destination_schema(COLUMNS))


def test_commit_appends_snapshots_and_skips_known_paths(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    table = catalog.create_table(IDENT, to_destination_schema(COLUMNS))

    tx = table.new_transaction()
    tx.add_files(["f1", "f2"], {"source": "test"})
    snap = tx.commit()
    assert snap is not None
    assert snap.snapshot_id == 1 and snap.parent_id is None
    assert snap.summary["source"] == "test"
    assert snap.summary["added-data-files"] == "2"

    # Replaying the same files adds nothing
    tx = table.new_transaction()
    tx.add_files(["f1", "f2"])
    assert tx.commit() is None

    tx = table.new_transaction()
    tx.add_files(["f2", "f3"])
    snap = tx.commit()
    assert snap is not None and snap.added_files == ["f3"] and snap.parent_id == 1

    log = load_table_log(str(tmp_path), IDENT)
    assert log is not None
    assert log.files == ["f1", "f2", "f3"]
    assert [s.snapshot_id for s in log.snapshots] == [1, 2]
    assert table.refresh().files == ["f1", "f2", "f3"]


def test_table_log_json_round_trip(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    table = catalog.create_table(IDENT, to_destination_schema(COLUMNS))
    tx = table.new_transaction()
    tx.add_files(["f1"], {"k": "v"})
    tx.commit()
    log = table.refresh().log
    assert TableLog.from_json_obj(log.to_json_obj()) == log


def test_overwrite_replaces_file_set(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    table = catalog.create_table(IDENT, to_destination_schema(COLUMNS))
    tx = table.new_transaction()
    tx.add_files(["f1", "f2"])
    tx.commit()
    tx = table.new_transaction()
    tx.add_files(["f3"], overwrite=True)
    snap = tx.commit()
    assert snap is not None and snap.operation == "overwrite"
    assert table.refresh().files == ["f3"]


def test_commit_after_drop_fails(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    table = catalog.create_table(IDENT, to_destination_schema(COLUMNS))
    catalog.drop_table(IDENT)
    tx = table.new_transaction()
    tx.add_files(["f1"])
    with pytest.raises(IoError, match="no longer exists"):
        tx.commit()


def test_ensure_table_creates_then_returns_existing(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    manager = TableLifecycleManager(catalog)

    first = manager.ensure_table(IDENT, COLUMNS)
    # A different column list does not evolve an existing table
    second = manager.ensure_table(IDENT, [ColumnSpec(name="other", data_type="bytes")])
    assert second.schema == first.schema
    assert [f.name for f in second.schema.fields] == ["id", "v"]


def test_ensure_table_without_schema_raises(tmp_path: Path) -> None:
    manager = TableLifecycleManager(LocalCatalog(str(tmp_path)))
    with pytest.raises(SchemaError):
        manager.ensure_table(IDENT, None)


class _RacingCatalog:
    """Reports "not found" once, then loses the create race."""

    def __init__(self, inner: LocalCatalog) -> None:
        self.inner = inner
        self.loads = 0

    def load_table(self, ident):
        self.loads += 1
        if self.loads == 1:
            raise TableNotFoundError(str(ident))
        return self.inner.load_table(ident)

    def create_table(self, ident, schema):
        self.inner.create_table(ident, schema)  # the other writer wins
        raise TableAlreadyExistsError(str(ident))

    def drop_table(self, ident) -> None:
        self.inner.drop_table(ident)


def test_ensure_table_recovers_from_create_race(tmp_path: Path) -> None:
    racing = _RacingCatalog(LocalCatalog(str(tmp_path)))
    handle = TableLifecycleManager(racing).ensure_table(IDENT, COLUMNS)
    assert handle.identifier == IDENT
    assert racing.loads == 2


def test_drop_or_truncate_missing_table_is_noop(tmp_path: Path) -> None:
    manager = TableLifecycleManager(LocalCatalog(str(tmp_path)))
    assert manager.drop_or_truncate(IDENT, "drop", COLUMNS) is False
    assert manager.drop_or_truncate(IDENT, "truncate", COLUMNS) is False


def test_truncate_recreates_empty_table_with_same_schema(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    manager = TableLifecycleManager(catalog)
    table = manager.ensure_table(IDENT, COLUMNS)
    tx = table.new_transaction()
    tx.add_files(["f1"])
    tx.commit()

    assert manager.drop_or_truncate(IDENT, "truncate", COLUMNS) is True

    after = catalog.load_table(IDENT)
    assert after.schema == table.schema
    assert after.files == []


def test_drop_removes_table(tmp_path: Path) -> None:
    catalog = LocalCatalog(str(tmp_path))
    manager = TableLifecycleManager(catalog)
    manager.ensure_table(IDENT, COLUMNS)
    assert manager.drop_or_truncate(IDENT, "drop", COLUMNS) is True
    with pytest.raises(TableNotFoundError):
        catalog.load_table(IDENT)


class _BrokenDropCatalog(LocalCatalog):
    def drop_table(self, ident) -> None:
        raise IoError("permission denied")


def test_drop_failure_on_existing_table_is_ddl_error(tmp_path: Path) -> None:
    catalog = _BrokenDropCatalog(str(tmp_path))
    manager = TableLifecycleManager(catalog)
    manager.ensure_table(IDENT, COLUMNS)
    with pytest.raises(DDLError, match="ns.t"):
        manager.drop_or_truncate(IDENT, "drop", COLUMNS)


def test_build_catalog_local_defaults_to_prefix(tmp_path: Path) -> None:
    catalog = build_catalog(SinkSettings(prefix=str(tmp_path)))
    assert isinstance(catalog, LocalCatalog)
    assert catalog.root_dir == str(tmp_path)
