"""
icesink.sink - host-facing table sinks.

- StreamingSink: continuous row events, leader-side periodic commits.
- SnapshotSink: bulk loads finalized by done_table_load / done_sharded_table_load.
- build_sink: explicit factory (no global registration).
"""

from __future__ import annotations

from .base import BaseSink, WorkerInfo
from .factory import build_sink
from .snapshot import SnapshotSink
from .streaming import StreamingSink

__all__ = [
    "BaseSink",
    "SnapshotSink",
    "StreamingSink",
    "WorkerInfo",
    "build_sink",
]
