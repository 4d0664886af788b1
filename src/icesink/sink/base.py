"""
Shared machinery of the streaming and snapshot sinks.

A sink owns one writer's pipeline: table lifecycle, encoder, data file writer, and the
writer's ledger. Grouping, ensure-table, encode, write, and record are identical in both
modes; they differ only in when the ledger is flushed and who commits.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from icesink.core.schema import RowEvent, TableIdent
from icesink.io.catalog import Catalog
from icesink.io.config import SinkSettings
from icesink.io.context import CallContext
from icesink.io.encode import encode_batch
from icesink.io.errors import IoError
from icesink.io.ledger import WriterFileLedger
from icesink.io.lifecycle import TableLifecycleManager
from icesink.io.state import StateStore
from icesink.io.write import DataFileWriter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerInfo:
    """
    Identity of this writer within its job.

    Attributes:
        worker_id (int): Writer index (job index); embedded in file names and state keys.
        scope_id (str): Job scope of the shared state.
        is_main (bool): Host marks this writer as the main one.
    """

    worker_id: int
    scope_id: str
    is_main: bool = False

    @property
    def is_leader(self) -> bool:
        """Leader runs the commit scheduler: the main writer or writer 0."""
        return self.is_main or self.worker_id == 0


class BaseSink(ABC):
    """Common writer pipeline; subclasses implement push()."""

    def __init__(
        self,
        settings: SinkSettings,
        catalog: Catalog,
        state_store: StateStore,
        worker: WorkerInfo,
        *,
        ctx: CallContext | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = catalog
        self.state_store = state_store
        self.worker = worker
        self.ctx = ctx if ctx is not None else CallContext()
        self.lifecycle = TableLifecycleManager(catalog)
        self.writer = DataFileWriter.from_settings(settings)
        self.ledger = WriterFileLedger(worker.worker_id)
        self._closed = False

    def call_context(self) -> CallContext:
        """Per-call child context bounded by operation_timeout_seconds."""
        return self.ctx.child(self.settings.operation_timeout_seconds)

    def ident_of(self, event: RowEvent) -> TableIdent:
        return event.ident(self.settings.default_namespace)

    def group_rows(self, events: Iterable[RowEvent]) -> dict[TableIdent, list[RowEvent]]:
        """Group row events by table identity, preserving first-seen table order."""
        groups: dict[TableIdent, list[RowEvent]] = {}
        for event in events:
            groups.setdefault(self.ident_of(event), []).append(event)
        return groups

    def write_table(self, ident: TableIdent, events: Sequence[RowEvent]) -> str | None:
        """
        Ensure `ident`, encode `events`, write one data file, and record it in the ledger.

        Returns:
            str | None: The data file path, or None when nothing was written.
        """
        ctx = self.call_context()
        handle = self.lifecycle.ensure_table(ident, events[0].table_schema, ctx)
        df = encode_batch(events, handle.schema)
        path = self.writer.write(
            handle, df, worker_id=self.worker.worker_id, sequence=self.ledger.next_sequence(), ctx=ctx
        )
        if path is not None:
            self.ledger.record(ident, path)
            logger.debug("writer %s wrote %s rows for %s", self.worker.worker_id, df.height, ident)
        return path

    def flush_ledger(self) -> list[str]:
        return self.ledger.flush(self.state_store, self.worker.scope_id, self.call_context())

    def _check_open(self) -> None:
        if self._closed:
            raise IoError(f"sink for writer {self.worker.worker_id} is closed")

    @abstractmethod
    def push(self, events: Sequence[RowEvent]) -> None:
        """Write a batch of row and control events for this writer."""

    def close(self) -> None:
        self._closed = True
        self.ctx.cancel()

    def __enter__(self) -> BaseSink:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
