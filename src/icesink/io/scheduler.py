"""
Cross-writer commit scheduler (runs on the leader only).

Cycle (per managed table)
  IDLE -> AGGREGATING   read every writer's persisted ledger keys from the state store and
                        group their file lists by table identity
  AGGREGATING -> COMMITTING
                        load the table (skip this cycle if that fails), open a transaction,
                        add all aggregated files, commit
  COMMITTING -> CLEARING
                        only after a successful commit: remove exactly the keys that were
                        read, then back to IDLE

Failure isolation
- A failure for one table (load, commit, or clear) is logged and leaves that table's keys
  in place for the next interval; other tables in the same cycle proceed.
- A state-store read failure skips the whole cycle.

Notes
- Aggregate/commit/clear is not atomic across the state store and the catalog. A crash or
  clear failure after a commit re-adds the same files next cycle; catalog adapters skip
  already-committed paths.
- Keys are write-once (see icesink.io.ledger), so files flushed after the read are never
  removed by the clear.
- The timer thread and synchronous commit_table() calls are serialized by one lock. The
  scheduler never touches a writer's in-process ledger.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from icesink.core.constants import COMMIT_INTERVAL_SECONDS, OPERATION_TIMEOUT_SECONDS
from icesink.core.schema import TableIdent

from .catalog import Catalog
from .context import CallContext
from .errors import CommitError, IoError, OperationCancelled, StateStoreError
from .paths import parse_state_key
from .retry import RetryPolicy
from .state import StateStore

logger = logging.getLogger(__name__)

Outcome = Literal["committed", "skipped", "failed"]


class CommitState(str, Enum):
    IDLE = "idle"
    AGGREGATING = "aggregating"
    COMMITTING = "committing"
    CLEARING = "clearing"


@dataclass(slots=True)
class PendingFiles:
    """Aggregated files of one table and the state keys they came from."""

    files: list[str] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CommitResult:
    """
    Outcome of one table's commit attempt.

    Attributes:
        ident (TableIdent): Table.
        outcome (Outcome): "committed", "skipped" (table could not be loaded), or "failed".
        files (tuple[str, ...]): Files handed to the transaction.
        keys (tuple[str, ...]): State keys consumed (removed only when committed).
        error (str | None): Failure description.
    """

    ident: TableIdent
    outcome: Outcome
    files: tuple[str, ...] = ()
    keys: tuple[str, ...] = ()
    error: str | None = None


def aggregate_state(state: Mapping[str, Any]) -> dict[TableIdent, PendingFiles]:
    """
    Group persisted ledger entries by table.

    Keys not produced by the ledger are ignored. Entries are ordered by
    (writer_id, flush_seq) so the resulting file lists are deterministic.

    Examples:
        >>> agg = aggregate_state({
        ...     "streaming_files/ns/t/1/1": ["b"],
        ...     "streaming_files/ns/t/0/1": ["a"],
        ...     "other": ["x"],
        ... })
        >>> [(str(k), v.files) for k, v in agg.items()]
        [('ns.t', ['a', 'b'])]
    """
    parsed = []
    for key, value in state.items():
        sk = parse_state_key(key)
        if sk is None:
            continue
        if not isinstance(value, list):
            logger.warning("ignoring state key %s with non-list value %r", key, type(value).__name__)
            continue
        parsed.append((sk, key, value))
    parsed.sort(key=lambda item: (item[0].ident.as_tuple(), item[0].writer_id, item[0].flush_seq))

    groups: dict[TableIdent, PendingFiles] = {}
    for sk, key, paths in parsed:
        pending = groups.setdefault(sk.ident, PendingFiles())
        pending.files.extend(str(p) for p in paths)
        pending.keys.append(key)
    return groups


class CommitScheduler:
    """
    Periodic aggregate-commit-clear loop.

    Args:
        catalog (Catalog): Catalog used to load tables and commit.
        state_store (StateStore): Shared state store holding ledger flushes.
        scope_id (str): Job scope of the ledger keys.
        interval (float): Seconds between passes.
        timeout (float): Per-call timeout for state-store and catalog calls.
        snapshot_properties (dict[str, str] | None): Properties attached to each commit.
        ctx (CallContext | None): Root context; cancelling it aborts in-flight passes.
        retry (RetryPolicy | None): When given, commits are retried with backoff on
            CommitError within the per-call timeout.
    """

    def __init__(
        self,
        catalog: Catalog,
        state_store: StateStore,
        scope_id: str,
        *,
        interval: float = COMMIT_INTERVAL_SECONDS,
        timeout: float = OPERATION_TIMEOUT_SECONDS,
        snapshot_properties: dict[str, str] | None = None,
        ctx: CallContext | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.catalog = catalog
        self.state_store = state_store
        self.scope_id = scope_id
        self.interval = interval if interval > 0 else COMMIT_INTERVAL_SECONDS
        self.timeout = timeout
        self.snapshot_properties = dict(snapshot_properties or {})
        self.ctx = ctx if ctx is not None else CallContext()
        self.retry = retry
        self._pass_lock = threading.Lock()
        self._states_lock = threading.Lock()
        self._states: dict[TableIdent, CommitState] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # -- state introspection ---------------------------------------------------

    def state_of(self, ident: TableIdent) -> CommitState:
        with self._states_lock:
            return self._states.get(ident, CommitState.IDLE)

    def _set_state(self, ident: TableIdent, state: CommitState) -> None:
        with self._states_lock:
            self._states[ident] = state

    # -- passes ----------------------------------------------------------------

    def _read_state(self) -> dict[TableIdent, PendingFiles]:
        ctx = self.ctx.child(self.timeout)
        ctx.check("read ledger state")
        return aggregate_state(self.state_store.get_state(self.scope_id))

    def run_once(self) -> dict[TableIdent, CommitResult]:
        """
        Run one aggregate-commit-clear pass over every table with pending files.

        Returns:
            dict[TableIdent, CommitResult]: Per-table outcome (empty when nothing was
            pending, the state store could not be read, or the context was cancelled).
        """
        with self._pass_lock:
            try:
                groups = self._read_state()
            except OperationCancelled as exc:
                logger.info("commit pass skipped: %s", exc)
                return {}
            except StateStoreError:
                logger.exception("commit pass skipped: cannot read state scope %s", self.scope_id)
                return {}

            results: dict[TableIdent, CommitResult] = {}
            for ident, pending in groups.items():
                if not pending.files:
                    continue
                results[ident] = self._commit_isolated(ident, pending)
            return results

    def commit_table(self, ident: TableIdent) -> CommitResult | None:
        """
        Synchronously aggregate, commit, and clear one table.

        Returns:
            CommitResult | None: The committed result, or None when nothing was pending.

        Raises:
            StateStoreError: The state store could not be read or cleared.
            IoError: The table could not be loaded.
            CommitError: The commit failed; the table's keys are kept.
        """
        with self._pass_lock:
            pending = self._read_state().get(ident)
            if pending is None or not pending.files:
                return None
            return self._commit(ident, pending)

    def _commit_isolated(self, ident: TableIdent, pending: PendingFiles) -> CommitResult:
        files, keys = tuple(pending.files), tuple(pending.keys)
        try:
            return self._commit(ident, pending)
        except CommitError as exc:
            logger.exception("commit to %s failed; %s files kept for the next pass", ident, len(files))
            return CommitResult(ident, "failed", files, keys, str(exc))
        except StateStoreError as exc:
            logger.exception("clearing state of %s failed; files will be re-added next pass", ident)
            return CommitResult(ident, "failed", files, keys, str(exc))
        except IoError as exc:
            logger.warning("skipping %s this pass: %s", ident, exc)
            return CommitResult(ident, "skipped", files, keys, str(exc))
        except Exception as exc:
            logger.exception("unexpected error committing %s; %s files kept for the next pass", ident, len(files))
            return CommitResult(ident, "failed", files, keys, str(exc))
        finally:
            self._set_state(ident, CommitState.IDLE)

    def _commit(self, ident: TableIdent, pending: PendingFiles) -> CommitResult:
        ctx = self.ctx.child(self.timeout)
        self._set_state(ident, CommitState.AGGREGATING)
        ctx.check(f"load table {ident}")
        handle = self.catalog.load_table(ident)

        self._set_state(ident, CommitState.COMMITTING)

        def attempt() -> None:
            ctx.check(f"commit to {ident}")
            tx = handle.new_transaction()
            try:
                tx.add_files(pending.files, self.snapshot_properties, False)
                tx.commit()
            except CommitError:
                raise
            except IoError as exc:
                raise CommitError(f"commit to {ident}: {exc}") from exc

        if self.retry is not None:
            self.retry.call(attempt, ctx, operation=f"commit to {ident}", retry_on=(CommitError,))
        else:
            attempt()

        self._set_state(ident, CommitState.CLEARING)
        ctx.check(f"clear state of {ident}")
        self.state_store.remove_state(self.scope_id, pending.keys)
        self._set_state(ident, CommitState.IDLE)
        logger.info("committed %s files from %s keys to %s", len(pending.files), len(pending.keys), ident)
        return CommitResult(ident, "committed", tuple(pending.files), tuple(pending.keys))

    # -- background loop -------------------------------------------------------

    def _run_safely(self, label: str) -> None:
        try:
            self.run_once()
        except Exception:
            logger.exception("%s commit pass failed", label)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            if self.ctx.cancelled:
                break
            self._run_safely("periodic")
        self._run_safely("final")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> CommitScheduler:
        """Start the background thread (idempotent)."""
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=f"icesink-commit-{self.scope_id}", daemon=True)
        self._thread.start()
        logger.info("commit scheduler started for scope %s (every %ss)", self.scope_id, self.interval)
        return self

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and wait for its final pass."""
        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout)
        self._thread = None
        logger.info("commit scheduler stopped for scope %s", self.scope_id)
