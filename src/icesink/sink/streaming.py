"""
Streaming sink: continuous row events, periodic cross-writer commits.

- Control and DDL events are ignored.
- Tables are created on first use.
- Every written file is flushed to the shared state store right away.
- The leader runs a CommitScheduler thread; close() stops it after a final pass.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from icesink.core.schema import RowEvent
from icesink.io.catalog import Catalog
from icesink.io.config import SinkSettings
from icesink.io.context import CallContext
from icesink.io.retry import RetryPolicy
from icesink.io.scheduler import CommitScheduler
from icesink.io.state import StateStore

from .base import BaseSink, WorkerInfo

logger = logging.getLogger(__name__)


class StreamingSink(BaseSink):
    def __init__(
        self,
        settings: SinkSettings,
        catalog: Catalog,
        state_store: StateStore,
        worker: WorkerInfo,
        *,
        ctx: CallContext | None = None,
        start_scheduler: bool = True,
    ) -> None:
        super().__init__(settings, catalog, state_store, worker, ctx=ctx)
        self.scheduler: CommitScheduler | None = None
        if worker.is_leader:
            self.scheduler = CommitScheduler(
                catalog,
                state_store,
                worker.scope_id,
                interval=settings.commit_interval_seconds,
                timeout=settings.operation_timeout_seconds,
                snapshot_properties=settings.snapshot_properties,
                ctx=self.ctx,
                retry=RetryPolicy.from_settings(settings.retry) if settings.retry.retry_commits else None,
            )
            if start_scheduler:
                self.scheduler.start()

    def push(self, events: Sequence[RowEvent]) -> None:
        """Write row events, one data file per table, flushing the ledger after each."""
        self._check_open()
        rows = [e for e in events if e.is_row_event]
        if len(rows) < len(events):
            logger.debug("streaming sink ignored %s control events", len(events) - len(rows))
        for ident, group in self.group_rows(rows).items():
            self.write_table(ident, group)
            self.flush_ledger()

    def close(self) -> None:
        if self._closed:
            return
        if self.scheduler is not None:
            self.scheduler.stop()
        super().close()
