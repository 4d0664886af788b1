"""
Catalog contracts and the file-backed local catalog.

Contracts (structural protocols)
- Catalog: load_table / create_table / drop_table by TableIdent.
- TableHandle: identifier, schema (DestinationSchema with the table's field ids), io
  (FileIO), new_transaction().
- Transaction: add_files(paths, properties, overwrite=False), commit().

Implementations
- LocalCatalog: one transaction log per table (icesink.io.manifest) under a root
  directory; data files live under the same root via LocalFileIO.
- PyIcebergCatalog (icesink.io.iceberg): REST/Glue catalogs through pyiceberg; imported
  lazily by build_catalog so the local path does not pay for it.

Notes
- Catalogs are the sole arbiter of create races: LocalCatalog publishes a new log with an
  exclusive link, so exactly one creator wins and the others get TableAlreadyExistsError.
- Commits re-read the log from disk, so a transaction never overwrites a newer snapshot
  written by another handle.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from icesink.core.schema import DestinationSchema, TableIdent

from .config import SinkSettings
from .errors import CommitError, IoError, TableAlreadyExistsError, TableNotFoundError
from .fs import FileIO, LocalFileIO, remove_tree, write_json_exclusive
from .manifest import SnapshotMeta, TableLog, append_snapshot, load_table_log, new_table_log, write_table_log
from .paths import local_path, table_manifest_path, table_metadata_dir

logger = logging.getLogger(__name__)


@runtime_checkable
class Transaction(Protocol):
    def add_files(
        self, paths: Iterable[str], properties: dict[str, str] | None = None, overwrite: bool = False
    ) -> None: ...

    def commit(self) -> Any: ...


@runtime_checkable
class TableHandle(Protocol):
    @property
    def identifier(self) -> TableIdent: ...

    @property
    def schema(self) -> DestinationSchema: ...

    @property
    def io(self) -> FileIO: ...

    def new_transaction(self) -> Transaction: ...


@runtime_checkable
class Catalog(Protocol):
    def load_table(self, ident: TableIdent) -> TableHandle: ...

    def create_table(self, ident: TableIdent, schema: DestinationSchema) -> TableHandle: ...

    def drop_table(self, ident: TableIdent) -> None: ...


# -----------------------------------------------------------------------------
# Local catalog
# -----------------------------------------------------------------------------


class LocalTransaction:
    """Staged file additions against one LocalTable; commit publishes one snapshot."""

    def __init__(self, table: LocalTable) -> None:
        self._table = table
        self._paths: list[str] = []
        self._properties: dict[str, str] = {}
        self._overwrite = False
        self._committed = False

    def add_files(
        self, paths: Iterable[str], properties: dict[str, str] | None = None, overwrite: bool = False
    ) -> None:
        if self._committed:
            raise CommitError(f"transaction on {self._table.identifier} is already committed")
        self._paths.extend(paths)
        self._properties.update(properties or {})
        self._overwrite = self._overwrite or overwrite

    def commit(self) -> SnapshotMeta | None:
        """
        Publish the staged files as one snapshot.

        Returns:
            SnapshotMeta | None: The new snapshot, or None when every staged path was
            already committed.

        Raises:
            CommitError: The table no longer exists, the transaction was already
                committed, or the log could not be written.
        """
        if self._committed:
            raise CommitError(f"transaction on {self._table.identifier} is already committed")
        snap = self._table._catalog._commit(
            self._table.identifier, self._paths, self._properties, self._overwrite
        )
        self._committed = True
        return snap


class LocalTable:
    """Handle over one LocalCatalog table; `log` is the state as of load/refresh."""

    def __init__(self, catalog: LocalCatalog, log: TableLog) -> None:
        self._catalog = catalog
        self.log = log

    @property
    def identifier(self) -> TableIdent:
        return self.log.ident

    @property
    def schema(self) -> DestinationSchema:
        return self.log.schema

    @property
    def io(self) -> FileIO:
        return self._catalog.file_io

    @property
    def files(self) -> list[str]:
        return list(self.log.files)

    def new_transaction(self) -> LocalTransaction:
        return LocalTransaction(self)

    def refresh(self) -> LocalTable:
        self.log = self._catalog.load_table(self.identifier).log
        return self


class LocalCatalog:
    """
    File-backed catalog rooted at `root_dir`.

    Args:
        root_dir (str): Warehouse root; logs live at
            <root>/<namespace>/<table>/metadata/manifest.json.
        file_io (FileIO | None): Storage for data files (defaults to LocalFileIO).

    Examples:
        >>> import tempfile
        >>> from icesink.core import ColumnSpec, to_destination_schema
        >>> cat = LocalCatalog(tempfile.mkdtemp())
        >>> ident = TableIdent(namespace="ns", name="t")
        >>> _ = cat.create_table(ident, to_destination_schema([ColumnSpec(name="a")]))
        >>> cat.load_table(ident).files
        []
    """

    def __init__(self, root_dir: str, file_io: FileIO | None = None) -> None:
        self.root_dir = local_path(root_dir)
        self.file_io: FileIO = file_io if file_io is not None else LocalFileIO()
        self._lock = threading.Lock()

    def load_table(self, ident: TableIdent) -> LocalTable:
        log = load_table_log(self.root_dir, ident)
        if log is None:
            raise TableNotFoundError(f"table {ident} does not exist")
        return LocalTable(self, log)

    def create_table(self, ident: TableIdent, schema: DestinationSchema) -> LocalTable:
        log = new_table_log(ident, schema)
        try:
            write_json_exclusive(table_manifest_path(self.root_dir, ident), log.to_json_obj())
        except FileExistsError as exc:
            raise TableAlreadyExistsError(f"table {ident} already exists") from exc
        except OSError as exc:
            raise IoError(f"create table {ident}: {exc}") from exc
        logger.info("created table %s with %s fields", ident, len(schema.fields))
        return LocalTable(self, log)

    def drop_table(self, ident: TableIdent) -> None:
        """Remove the table's metadata; data files are left in place."""
        with self._lock:
            if load_table_log(self.root_dir, ident) is None:
                raise TableNotFoundError(f"table {ident} does not exist")
            try:
                remove_tree(table_metadata_dir(self.root_dir, ident))
            except OSError as exc:
                raise IoError(f"drop table {ident}: {exc}") from exc
        logger.info("dropped table %s", ident)

    def _commit(
        self, ident: TableIdent, paths: list[str], properties: dict[str, str], overwrite: bool
    ) -> SnapshotMeta | None:
        with self._lock:
            try:
                log = load_table_log(self.root_dir, ident)
            except IoError as exc:
                raise CommitError(f"commit to {ident}: {exc}") from exc
            if log is None:
                raise CommitError(f"commit to {ident}: table no longer exists")
            snap = append_snapshot(log, paths, properties, overwrite=overwrite)
            if snap is None:
                logger.info("commit to %s skipped: all %s files already committed", ident, len(paths))
                return None
            try:
                write_table_log(self.root_dir, log)
            except OSError as exc:
                raise CommitError(f"commit to {ident}: {exc}") from exc
        logger.info(
            "committed snapshot %s to %s (%s files added)", snap.snapshot_id, ident, len(snap.added_files)
        )
        return snap


def build_catalog(settings: SinkSettings) -> Catalog:
    """
    Bind the catalog adapter selected by `settings.catalog_type`.

    - "local": LocalCatalog rooted at catalog_uri (or prefix when unset).
    - "rest" / "glue": PyIcebergCatalog via pyiceberg.catalog.load_catalog.

    Raises:
        IoConfigError: Invalid settings (see SinkSettings.validate).
    """
    settings.validate()
    if settings.catalog_type == "local":
        return LocalCatalog(settings.catalog_uri or settings.prefix)

    from .iceberg import PyIcebergCatalog  # lazy: pulls in pyiceberg

    return PyIcebergCatalog.from_settings(settings)
