"""
Explicit sink construction.

The host receives build_sink (or the sink classes) directly; there is no global provider
registry to populate at import time.
"""

from __future__ import annotations

import logging
from typing import Literal

from icesink.io.catalog import Catalog, build_catalog
from icesink.io.config import SinkSettings
from icesink.io.context import CallContext
from icesink.io.errors import IoConfigError
from icesink.io.state import StateStore

from .base import BaseSink, WorkerInfo
from .snapshot import SnapshotSink
from .streaming import StreamingSink

logger = logging.getLogger(__name__)

SinkMode = Literal["streaming", "snapshot"]


def build_sink(
    settings: SinkSettings,
    state_store: StateStore,
    worker: WorkerInfo,
    mode: SinkMode = "streaming",
    catalog: Catalog | None = None,
    *,
    ctx: CallContext | None = None,
) -> BaseSink:
    """
    Build a sink for one writer.

    Args:
        settings: Sink settings (validated here).
        state_store: Shared state store for ledger flushes.
        worker: This writer's identity; the leader also runs the commit scheduler.
        mode: "streaming" or "snapshot".
        catalog: Catalog adapter; defaults to build_catalog(settings).
        ctx: Root call context; a fresh one is created when omitted.

    Raises:
        IoConfigError: Unknown mode or invalid settings.
    """
    settings.validate()
    if mode not in ("streaming", "snapshot"):
        raise IoConfigError(f"unknown sink mode {mode!r}; expected 'streaming' or 'snapshot'")
    if catalog is None:
        catalog = build_catalog(settings)
    logger.info(
        "building %s sink for writer %s (leader=%s, catalog=%s)",
        mode,
        worker.worker_id,
        worker.is_leader,
        settings.catalog_type,
    )
    if mode == "snapshot":
        return SnapshotSink(settings, catalog, state_store, worker, ctx=ctx)
    return StreamingSink(settings, catalog, state_store, worker, ctx=ctx)
