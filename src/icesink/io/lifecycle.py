"""
Table lifecycle: ensure-exists and destructive DDL (drop, truncate).

Overview
- ensure_table(): load by identity; on "not found" map the source columns and create.
  An existing table is returned unchanged; its schema is never re-validated or evolved.
- drop_or_truncate(): no-op for a missing table; otherwise drop, and for truncate
  recreate it empty from freshly mapped columns.

Notes
- No locking around creation: the catalog arbitrates create races. Losing a race
  (TableAlreadyExistsError) is recovered by loading the winner's table.
- Drop/truncate and row writes on the same table are never issued concurrently by the
  host, so no mutual exclusion is added between them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from icesink.core.schema import ColumnSpec, TableIdent
from icesink.core.typemap import to_destination_schema
from icesink.core.types import DDLKind

from .catalog import Catalog, TableHandle
from .context import CallContext
from .errors import DDLError, IoError, TableAlreadyExistsError, TableNotFoundError

logger = logging.getLogger(__name__)


class TableLifecycleManager:
    """
    Catalog-facing table lifecycle operations.

    Args:
        catalog (Catalog): Catalog adapter.
    """

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def ensure_table(
        self,
        ident: TableIdent,
        columns: Sequence[ColumnSpec] | None,
        ctx: CallContext | None = None,
    ) -> TableHandle:
        """
        Load `ident`, creating it from `columns` when it does not exist.

        Raises:
            SchemaError: The table is missing and `columns` is None.
            IoError: The catalog failed for another reason (propagated as-is).
            OperationCancelled / DeadlineExceeded: The context gave up.
        """
        if ctx is not None:
            ctx.check(f"ensure table {ident}")
        try:
            return self.catalog.load_table(ident)
        except TableNotFoundError:
            pass

        schema = to_destination_schema(columns)
        try:
            handle = self.catalog.create_table(ident, schema)
        except TableAlreadyExistsError:
            logger.info("table %s was created concurrently; loading it", ident)
            return self.catalog.load_table(ident)
        logger.info("created table %s", ident)
        return handle

    def drop_or_truncate(
        self,
        ident: TableIdent,
        kind: DDLKind | str,
        columns: Sequence[ColumnSpec] | None,
        ctx: CallContext | None = None,
    ) -> bool:
        """
        Drop `ident`, recreating it empty when `kind` is truncate.

        Returns:
            bool: False when the table did not exist (nothing done), True otherwise.

        Raises:
            DDLError: Drop or recreate failed after the table's existence was confirmed.
            SchemaError: Truncate without source columns.
        """
        kind = DDLKind(kind)
        if ctx is not None:
            ctx.check(f"{kind.value} table {ident}")
        try:
            self.catalog.load_table(ident)
        except TableNotFoundError:
            logger.info("%s of %s skipped: table does not exist", kind.value, ident)
            return False

        schema = to_destination_schema(columns) if kind is DDLKind.TRUNCATE else None
        try:
            self.catalog.drop_table(ident)
        except TableNotFoundError:
            logger.info("table %s disappeared before drop", ident)
        except IoError as exc:
            raise DDLError(f"drop table {ident}: {exc}") from exc

        if schema is not None:
            try:
                self.catalog.create_table(ident, schema)
            except IoError as exc:
                raise DDLError(f"recreate table {ident} after truncate: {exc}") from exc
        logger.info("%s of table %s done", kind.value, ident)
        return True
