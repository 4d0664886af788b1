"""
Snapshot sink: bulk table loads finalized by control events.

Events are handled in arrival order. Row events are buffered per table and written as
soon as a control event (or the end of the batch) follows them:

- drop_table / truncate_table      drop, or drop and recreate empty (no-op if missing)
- done_table_load                  flush this writer's ledger to the shared state store
- done_sharded_table_load          ensure the table, then aggregate every writer's files
                                   for it, commit, and clear them synchronously
- init_table_load / init_sharded_table_load
                                   nothing to do
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from icesink.core.schema import RowEvent, TableIdent
from icesink.core.types import DDLKind, EventKind
from icesink.io.catalog import Catalog
from icesink.io.config import SinkSettings
from icesink.io.context import CallContext
from icesink.io.retry import RetryPolicy
from icesink.io.scheduler import CommitScheduler
from icesink.io.state import StateStore

from .base import BaseSink, WorkerInfo

logger = logging.getLogger(__name__)

_DDL_KINDS = {
    EventKind.DROP_TABLE: DDLKind.DROP,
    EventKind.TRUNCATE_TABLE: DDLKind.TRUNCATE,
}


class SnapshotSink(BaseSink):
    def __init__(
        self,
        settings: SinkSettings,
        catalog: Catalog,
        state_store: StateStore,
        worker: WorkerInfo,
        *,
        ctx: CallContext | None = None,
    ) -> None:
        super().__init__(settings, catalog, state_store, worker, ctx=ctx)
        # Never started: used for the synchronous per-table pass only.
        self.committer = CommitScheduler(
            catalog,
            state_store,
            worker.scope_id,
            interval=settings.commit_interval_seconds,
            timeout=settings.operation_timeout_seconds,
            snapshot_properties=settings.snapshot_properties,
            ctx=self.ctx,
            retry=RetryPolicy.from_settings(settings.retry) if settings.retry.retry_commits else None,
        )

    def push(self, events: Sequence[RowEvent]) -> None:
        self._check_open()
        buffered: list[RowEvent] = []
        for event in events:
            if event.is_row_event:
                buffered.append(event)
                continue
            self._write_buffered(buffered)
            buffered = []
            self._handle_control(event)
        self._write_buffered(buffered)

    def _write_buffered(self, events: list[RowEvent]) -> None:
        for ident, group in self.group_rows(events).items():
            self.write_table(ident, group)

    def _handle_control(self, event: RowEvent) -> None:
        ident = self.ident_of(event)
        kind = event.kind
        if kind in _DDL_KINDS:
            self.lifecycle.drop_or_truncate(ident, _DDL_KINDS[kind], event.table_schema, self.call_context())
        elif kind is EventKind.DONE_TABLE_LOAD:
            keys = self.flush_ledger()
            logger.info("writer %s finished loading %s (%s state keys)", self.worker.worker_id, ident, len(keys))
        elif kind is EventKind.DONE_SHARDED_TABLE_LOAD:
            self.finalize_table(ident, event)
        else:
            logger.debug("ignoring %s for %s", kind.value, ident)

    def finalize_table(self, ident: TableIdent, event: RowEvent) -> None:
        """Commit every writer's persisted files for `ident` without waiting for a timer."""
        self.lifecycle.ensure_table(ident, event.table_schema, self.call_context())
        result = self.committer.commit_table(ident)
        if result is None:
            logger.info("sharded load of %s finished with no files to commit", ident)
