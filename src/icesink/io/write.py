"""
Data file writer: one encoded batch -> one immutable Parquet file.

Overview
- Names the file from (sequence, worker id, random UUID) under
  <prefix>/<namespace>/<table>/data/ (see icesink.io.paths.data_file_path).
- Translates the table's DestinationSchema to an Arrow schema whose fields carry
  "PARQUET:field_id" metadata, so the file's column ids match the table's current schema.
- Casts the Polars frame to that schema, serializes it with pyarrow.parquet, and writes
  the bytes to the handle's FileIO.create() stream.

Source of truth
- Field ids and types: the table handle's DestinationSchema (never re-mapped here).
- Naming constants: icesink.core.constants.

Notes
- A zero-row batch is a no-op: no file, no path.
- The path is chosen once per call; retries of the write reuse it (the UUID is not
  regenerated). A partially written file is never visible with LocalFileIO since it
  publishes by atomic rename.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Final

import polars as pl
import pyarrow as pa
import pyarrow.parquet as pq

from icesink.core.constants import COMPRESSION, DEFAULT_PREFIX, ROW_GROUP_SIZE
from icesink.core.schema import DestinationSchema
from icesink.core.types import DestinationType

from .config import SinkSettings
from .context import CallContext
from .errors import WriteError
from .fs import FileIO
from .paths import data_file_path
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

FIELD_ID_KEY: Final[bytes] = b"PARQUET:field_id"

_ARROW_TYPES: Final[dict[DestinationType, pa.DataType]] = {
    DestinationType.LONG: pa.int64(),
    DestinationType.INT: pa.int32(),
    DestinationType.FLOAT: pa.float32(),
    DestinationType.DOUBLE: pa.float64(),
    DestinationType.BINARY: pa.binary(),
    DestinationType.STRING: pa.string(),
    DestinationType.BOOLEAN: pa.bool_(),
    DestinationType.DATE: pa.date32(),
    DestinationType.TIMESTAMPTZ: pa.timestamp("us", tz="UTC"),
}


def destination_schema_to_arrow(schema: DestinationSchema) -> pa.Schema:
    """
    Translate a destination schema to an Arrow schema with Parquet field ids.

    Raises:
        WriteError: If a field type has no Arrow equivalent.

    Examples:
        >>> from icesink.core import ColumnSpec, to_destination_schema
        >>> s = destination_schema_to_arrow(
        ...     to_destination_schema([ColumnSpec(name="id", data_type="int64", required=True)])
        ... )
        >>> s.field("id").metadata[b"PARQUET:field_id"], s.field("id").nullable
        (b'1', False)
    """
    fields: list[pa.Field] = []
    for f in schema.fields:
        arrow_type = _ARROW_TYPES.get(f.type)
        if arrow_type is None:
            raise WriteError(f"no Arrow type for field {f.name!r} of type {f.type!r}")
        fields.append(
            pa.field(
                f.name,
                arrow_type,
                nullable=not f.required,
                metadata={FIELD_ID_KEY: str(f.field_id).encode()},
            )
        )
    return pa.schema(fields)


@dataclass(frozen=True)
class DataFileWriter:
    """
    Writes encoded batches as Parquet data files.

    Attributes:
        prefix (str): Storage prefix for data files.
        compression (str): Parquet codec.
        row_group_size (int): Maximum rows per row group.
        retry (RetryPolicy | None): Backoff applied around the file write when a call
            context is supplied.
    """

    prefix: str = DEFAULT_PREFIX
    compression: str = COMPRESSION
    row_group_size: int = ROW_GROUP_SIZE
    retry: RetryPolicy | None = None

    @classmethod
    def from_settings(cls, settings: SinkSettings) -> DataFileWriter:
        return cls(
            prefix=settings.prefix,
            compression=settings.compression,
            row_group_size=settings.row_group_size,
            retry=RetryPolicy.from_settings(settings.retry),
        )

    def write(
        self,
        handle: Any,
        df: pl.DataFrame,
        *,
        worker_id: int,
        sequence: int,
        ctx: CallContext | None = None,
    ) -> str | None:
        """
        Write `df` as one data file of the table behind `handle`.

        Args:
            handle: Table handle exposing `identifier`, `schema` (DestinationSchema) and `io`.
            df: Encoded batch (see icesink.io.encode.encode_batch).
            worker_id (int): Writer index embedded in the file name.
            sequence (int): Per-writer sequence number embedded in the file name.
            ctx: Call context; when given together with a retry policy the write is
                retried with backoff until it succeeds or the context gives up.

        Returns:
            str | None: Path of the new file, or None for a zero-row batch.

        Raises:
            WriteError: Storage without create-for-write, untranslatable schema, or a
                failed write/close.
            OperationCancelled / DeadlineExceeded: Retries ran out of time.
        """
        if df.height == 0:
            return None

        io = getattr(handle, "io", None)
        if not isinstance(io, FileIO):
            raise WriteError(f"{type(io).__name__} does not support create-for-write ({handle.identifier})")

        table = self._to_arrow(df, handle.schema, handle.identifier)
        path = data_file_path(self.prefix, handle.identifier, sequence, worker_id, str(uuid.uuid4()))

        def attempt() -> None:
            self._write_file(io, path, table)

        if ctx is not None and self.retry is not None:
            self.retry.call(attempt, ctx, operation=f"write {handle.identifier}", retry_on=(WriteError,))
        else:
            attempt()
        logger.debug("wrote %s rows to %s", table.num_rows, path)
        return path

    def _to_arrow(self, df: pl.DataFrame, schema: DestinationSchema, ident: Any) -> pa.Table:
        arrow_schema = destination_schema_to_arrow(schema)
        try:
            return df.select(arrow_schema.names).to_arrow().cast(arrow_schema)
        except (pl.exceptions.PolarsError, pa.ArrowException, ValueError) as exc:
            raise WriteError(f"convert batch to Arrow for {ident}: {exc}") from exc

    def _write_file(self, io: FileIO, path: str, table: pa.Table) -> None:
        try:
            sink = pa.BufferOutputStream()
            pq.write_table(table, sink, compression=self.compression, row_group_size=self.row_group_size)
            payload = sink.getvalue()
            with io.create(path) as fh:
                fh.write(payload.to_pybytes())
        except (OSError, pa.ArrowException) as exc:
            raise WriteError(f"write data file {path}: {exc}") from exc
