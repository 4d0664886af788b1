"""
Per-writer ledger of data files produced but not yet handed to the shared state store.

Lock discipline
- One lock guards the file sequence counter, the pending paths, and the flush counter.
- Critical sections are increment-and-read of the counters and append/drain of the
  pending paths. State-store IO always happens outside the lock.

Flushing
- flush() drains the pending paths and persists them under fresh, write-once keys
  "streaming_files/<namespace>/<table>/<writer_id>/<flush_seq>". A key is never rewritten,
  so the leader can delete exactly the keys it committed without racing a writer that
  flushes new files in between.
- When the state store rejects a flush, the drained paths are put back in front of any
  paths recorded meanwhile and the error propagates.
"""

from __future__ import annotations

import logging
import threading

from icesink.core.schema import TableIdent

from .context import CallContext
from .errors import StateStoreError
from .paths import state_key
from .state import StateStore

logger = logging.getLogger(__name__)


class WriterFileLedger:
    """
    Process-local ledger owned by one writer.

    Args:
        writer_id (int): Writer index; embedded in file names and state keys.

    Examples:
        >>> ledger = WriterFileLedger(writer_id=2)
        >>> ledger.next_sequence(), ledger.next_sequence()
        (1, 2)
        >>> ledger.record(TableIdent(namespace="ns", name="t"), "p/1.parquet")
        >>> ledger.pending()
        {'ns.t': ['p/1.parquet']}
    """

    def __init__(self, writer_id: int) -> None:
        if writer_id < 0:
            raise ValueError("writer_id must be >= 0")
        self.writer_id = writer_id
        self._lock = threading.Lock()
        self._sequence = 0
        self._flush_seq = 0
        self._pending: dict[TableIdent, list[str]] = {}

    def next_sequence(self) -> int:
        """Increment and return the per-writer file sequence (first value is 1)."""
        with self._lock:
            self._sequence += 1
            return self._sequence

    def record(self, ident: TableIdent, path: str) -> None:
        """Append a freshly written data file path for `ident`."""
        with self._lock:
            self._pending.setdefault(ident, []).append(path)

    def pending(self) -> dict[str, list[str]]:
        """Snapshot of unflushed paths keyed by "namespace.table"."""
        with self._lock:
            return {str(ident): list(paths) for ident, paths in self._pending.items() if paths}

    def _drain(self) -> dict[str, tuple[TableIdent, list[str]]]:
        with self._lock:
            batch: dict[str, tuple[TableIdent, list[str]]] = {}
            for ident, paths in self._pending.items():
                if not paths:
                    continue
                self._flush_seq += 1
                batch[state_key(ident, self.writer_id, self._flush_seq)] = (ident, paths)
            self._pending = {}
            return batch

    def _restore(self, batch: dict[str, tuple[TableIdent, list[str]]]) -> None:
        with self._lock:
            for ident, paths in batch.values():
                self._pending[ident] = paths + self._pending.get(ident, [])

    def flush(
        self,
        store: StateStore,
        scope_id: str,
        ctx: CallContext | None = None,
    ) -> list[str]:
        """
        Persist every pending path to the shared state store.

        Args:
            store: Shared state store.
            scope_id (str): Job scope the keys live in.
            ctx: Optional call context checked before the state-store call.

        Returns:
            list[str]: State keys written (empty when nothing was pending).

        Raises:
            StateStoreError: The store rejected the write; pending paths are kept.
            OperationCancelled / DeadlineExceeded: The context gave up before the write.
        """
        batch = self._drain()
        if not batch:
            return []
        try:
            if ctx is not None:
                ctx.check(f"flush ledger of writer {self.writer_id}")
            store.set_state(scope_id, {key: paths for key, (_, paths) in batch.items()})
        except (OSError, ValueError, TypeError) as exc:
            self._restore(batch)
            raise StateStoreError(
                f"flush ledger of writer {self.writer_id} to scope {scope_id!r}: {exc}"
            ) from exc
        except BaseException:
            self._restore(batch)
            raise
        logger.debug("writer %s flushed %s keys to scope %s", self.writer_id, len(batch), scope_id)
        return list(batch)

