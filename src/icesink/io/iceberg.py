"""
pyiceberg-backed catalog adapter (REST and Glue catalogs).

Overview
- PyIcebergCatalog wraps pyiceberg.catalog.load_catalog and translates its exceptions
  into icesink.io errors (NoSuchTableError -> TableNotFoundError, TableAlreadyExistsError
  -> TableAlreadyExistsError).
- Schemas are converted both ways between DestinationSchema and pyiceberg.schema.Schema,
  keeping field ids and identifier field ids.
- Transactions filter out paths the table already references before calling add_files,
  so replaying a commit with the same file set adds nothing.

Notes
- Namespaces are created on demand when a table is created.
- The table's FileIO is exposed through a create-for-write wrapper used by the data file
  writer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO, Final

from pyiceberg.catalog import load_catalog
from pyiceberg.exceptions import NamespaceAlreadyExistsError, NoSuchTableError
from pyiceberg.exceptions import TableAlreadyExistsError as IcebergTableAlreadyExistsError
from pyiceberg.expressions import AlwaysTrue
from pyiceberg.schema import Schema
from pyiceberg.types import (
    BinaryType,
    BooleanType,
    DateType,
    DoubleType,
    FloatType,
    IntegerType,
    LongType,
    NestedField,
    StringType,
    TimestamptzType,
)

from icesink.core.errors import SchemaError
from icesink.core.schema import DestinationField, DestinationSchema, TableIdent
from icesink.core.types import DestinationType

from .config import SinkSettings
from .errors import CommitError, IoError, TableAlreadyExistsError, TableNotFoundError

logger = logging.getLogger(__name__)

_TO_ICEBERG: Final[dict[DestinationType, Any]] = {
    DestinationType.LONG: LongType(),
    DestinationType.INT: IntegerType(),
    DestinationType.FLOAT: FloatType(),
    DestinationType.DOUBLE: DoubleType(),
    DestinationType.BINARY: BinaryType(),
    DestinationType.STRING: StringType(),
    DestinationType.BOOLEAN: BooleanType(),
    DestinationType.DATE: DateType(),
    DestinationType.TIMESTAMPTZ: TimestamptzType(),
}
_FROM_ICEBERG: Final[dict[type, DestinationType]] = {type(v): k for k, v in _TO_ICEBERG.items()}


def to_iceberg_schema(schema: DestinationSchema) -> Schema:
    """Convert a DestinationSchema to a pyiceberg Schema (ids and identifiers preserved)."""
    fields = [
        NestedField(
            field_id=f.field_id,
            name=f.name,
            field_type=_TO_ICEBERG[f.type],
            required=f.required,
        )
        for f in schema.fields
    ]
    return Schema(*fields, identifier_field_ids=list(schema.identifier_field_ids))


def from_iceberg_schema(schema: Schema) -> DestinationSchema:
    """
    Convert a loaded table's pyiceberg Schema back to a DestinationSchema.

    Raises:
        SchemaError: A field uses a type this sink cannot write.
    """
    fields: list[DestinationField] = []
    for f in schema.fields:
        dtype = _FROM_ICEBERG.get(type(f.field_type))
        if dtype is None:
            raise SchemaError(f"unsupported Iceberg type {f.field_type} for field {f.name!r}")
        fields.append(
            DestinationField(field_id=f.field_id, name=f.name, type=dtype, required=f.required)
        )
    return DestinationSchema(
        fields=tuple(fields), identifier_field_ids=tuple(schema.identifier_field_ids)
    )


class PyIcebergFileIO:
    """Create-for-write view over a pyiceberg FileIO."""

    def __init__(self, io: Any) -> None:
        self._io = io

    @contextmanager
    def create(self, path: str) -> Iterator[BinaryIO]:
        stream = self._io.new_output(path).create(overwrite=True)
        try:
            yield stream
        finally:
            stream.close()


class PyIcebergTransaction:
    """Staged add_files for one pyiceberg table."""

    def __init__(self, table: Any, ident: TableIdent) -> None:
        self._table = table
        self._ident = ident
        self._paths: list[str] = []
        self._properties: dict[str, str] = {}
        self._overwrite = False

    def add_files(
        self, paths: Iterable[str], properties: dict[str, str] | None = None, overwrite: bool = False
    ) -> None:
        self._paths.extend(paths)
        self._properties.update(properties or {})
        self._overwrite = self._overwrite or overwrite

    def _referenced_paths(self) -> set[str]:
        if self._table.current_snapshot() is None:
            return set()
        return set(self._table.inspect.files().column("file_path").to_pylist())

    def commit(self) -> list[str]:
        """
        Commit the staged files.

        Returns:
            list[str]: Paths actually added (already-referenced paths are skipped).

        Raises:
            CommitError: Any pyiceberg failure while inspecting, adding, or committing.
        """
        try:
            known = set() if self._overwrite else self._referenced_paths()
            new_paths = list(dict.fromkeys(p for p in self._paths if p not in known))
            if not new_paths and not self._overwrite:
                logger.info("commit to %s skipped: all %s files already committed", self._ident, len(self._paths))
                return []
            tx = self._table.transaction()
            if self._overwrite:
                tx.delete(AlwaysTrue())
            if new_paths:
                tx.add_files(file_paths=new_paths, snapshot_properties=self._properties)
            tx.commit_transaction()
        except Exception as exc:
            raise CommitError(f"commit to {self._ident}: {exc}") from exc
        logger.info("committed %s files to %s", len(new_paths), self._ident)
        return new_paths


class PyIcebergTable:
    def __init__(self, table: Any, ident: TableIdent) -> None:
        self._table = table
        self._ident = ident
        self._schema: DestinationSchema | None = None

    @property
    def identifier(self) -> TableIdent:
        return self._ident

    @property
    def schema(self) -> DestinationSchema:
        """Destination view of the table schema, translated on first use.

        Raises:
            SchemaError: The table has a column type the writer cannot produce.
        """
        if self._schema is None:
            self._schema = from_iceberg_schema(self._table.schema())
        return self._schema

    @property
    def io(self) -> PyIcebergFileIO:
        return PyIcebergFileIO(self._table.io)

    def new_transaction(self) -> PyIcebergTransaction:
        return PyIcebergTransaction(self._table, self._ident)


class PyIcebergCatalog:
    """
    Catalog adapter over a pyiceberg catalog.

    Args:
        catalog: A loaded pyiceberg catalog (see from_settings).
    """

    def __init__(self, catalog: Any) -> None:
        self._catalog = catalog

    @classmethod
    def from_settings(cls, settings: SinkSettings) -> PyIcebergCatalog:
        props: dict[str, str] = {"type": settings.catalog_type}
        if settings.catalog_uri:
            props["uri"] = settings.catalog_uri
        props.update(settings.catalog_properties)
        return cls(load_catalog(settings.catalog_name, **props))

    def load_table(self, ident: TableIdent) -> PyIcebergTable:
        try:
            table = self._catalog.load_table(ident.as_tuple())
        except NoSuchTableError as exc:
            raise TableNotFoundError(f"table {ident} does not exist") from exc
        except Exception as exc:
            raise IoError(f"load table {ident}: {exc}") from exc
        return PyIcebergTable(table, ident)

    def create_table(self, ident: TableIdent, schema: DestinationSchema) -> PyIcebergTable:
        try:
            self._catalog.create_namespace(ident.namespace)
        except NamespaceAlreadyExistsError:
            pass
        try:
            table = self._catalog.create_table(ident.as_tuple(), schema=to_iceberg_schema(schema))
        except IcebergTableAlreadyExistsError as exc:
            raise TableAlreadyExistsError(f"table {ident} already exists") from exc
        except Exception as exc:
            raise IoError(f"create table {ident}: {exc}") from exc
        logger.info("created table %s with %s fields", ident, len(schema.fields))
        return PyIcebergTable(table, ident)

    def drop_table(self, ident: TableIdent) -> None:
        try:
            self._catalog.drop_table(ident.as_tuple())
        except NoSuchTableError as exc:
            raise TableNotFoundError(f"table {ident} does not exist") from exc
        except Exception as exc:
            raise IoError(f"drop table {ident}: {exc}") from exc
        logger.info("dropped table %s", ident)
