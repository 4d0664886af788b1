"""
Shared state stores.

The state store is the only cross-process synchronization point of the sink: writers
persist their ledger flushes into it, the leader's commit scheduler reads, commits, and
removes them. Values are JSON-serializable (lists of data file paths).

Implementations
- InMemoryStateStore: thread-safe dict of dicts; state lives as long as the process.
- LocalStateStore: one JSON document per key under "<root>/<scope>/", each written
  atomically (unique tmp -> fsync -> rename); safe for writers in several processes and
  survives restarts.

Notes
- Only per-key set/get/delete semantics are relied upon; no multi-key transactions.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Final, Protocol, runtime_checkable
from urllib.parse import quote, unquote

from .errors import StateStoreError
from .fs import read_json, write_json_atomic
from .paths import local_path

logger = logging.getLogger(__name__)

_KEY_SUFFIX: Final[str] = ".json"


@runtime_checkable
class StateStore(Protocol):
    """Scoped key/value store shared by every writer of a job."""

    def set_state(self, scope_id: str, values: Mapping[str, Any]) -> None:
        """Set (upsert) keys in a scope."""
        ...

    def get_state(self, scope_id: str) -> dict[str, Any]:
        """Return a snapshot copy of every key in a scope."""
        ...

    def remove_state(self, scope_id: str, keys: Iterable[str]) -> None:
        """Delete keys from a scope; unknown keys are ignored."""
        ...


class InMemoryStateStore:
    """Process-local StateStore guarded by one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scopes: dict[str, dict[str, Any]] = {}

    def set_state(self, scope_id: str, values: Mapping[str, Any]) -> None:
        with self._lock:
            self._scopes.setdefault(scope_id, {}).update(values)

    def get_state(self, scope_id: str) -> dict[str, Any]:
        with self._lock:
            return dict(self._scopes.get(scope_id, {}))

    def remove_state(self, scope_id: str, keys: Iterable[str]) -> None:
        with self._lock:
            scope = self._scopes.get(scope_id)
            if scope is None:
                return
            for key in keys:
                scope.pop(key, None)


class LocalStateStore:
    """
    File-backed StateStore: one JSON document per key under "<root>/<scope_id>/".

    Each key lives in its own file named by the percent-encoded key, written through a
    unique tmp file and an atomic rename. Writers in different processes therefore never
    rewrite each other's keys; get_state lists the scope directory and remove_state
    unlinks the files.

    Args:
        root_dir (str): Directory holding one sub-directory per scope.

    Raises:
        StateStoreError: Wraps any filesystem or decoding failure.
    """

    def __init__(self, root_dir: str) -> None:
        self.root_dir = local_path(root_dir)

    def _scope_dir(self, scope_id: str) -> str:
        if not scope_id or "/" in scope_id or scope_id in (".", ".."):
            raise StateStoreError(f"invalid scope id {scope_id!r}")
        return os.path.join(self.root_dir, scope_id)

    def _key_path(self, scope_dir: str, key: str) -> str:
        if not key:
            raise StateStoreError("state keys must be non-empty")
        return os.path.join(scope_dir, quote(key, safe="") + _KEY_SUFFIX)

    def set_state(self, scope_id: str, values: Mapping[str, Any]) -> None:
        scope_dir = self._scope_dir(scope_id)
        try:
            for key, value in values.items():
                write_json_atomic(self._key_path(scope_dir, key), value)
        except (OSError, TypeError, ValueError) as exc:
            raise StateStoreError(f"set_state failed for scope {scope_id!r}: {exc}") from exc
        logger.debug("state set scope=%s keys=%s", scope_id, sorted(values))

    def get_state(self, scope_id: str) -> dict[str, Any]:
        scope_dir = self._scope_dir(scope_id)
        try:
            names = sorted(os.listdir(scope_dir))
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StateStoreError(f"get_state failed for scope {scope_id!r}: {exc}") from exc

        state: dict[str, Any] = {}
        for name in names:
            if not name.endswith(_KEY_SUFFIX):
                continue  # in-flight tmp files
            try:
                value = read_json(os.path.join(scope_dir, name))
            except (OSError, ValueError) as exc:
                raise StateStoreError(f"get_state failed for scope {scope_id!r}: {exc}") from exc
            if value is None:
                continue  # removed since listing
            state[unquote(name[: -len(_KEY_SUFFIX)])] = value
        return state

    def remove_state(self, scope_id: str, keys: Iterable[str]) -> None:
        scope_dir = self._scope_dir(scope_id)
        keys = list(keys)
        try:
            for key in keys:
                try:
                    os.remove(self._key_path(scope_dir, key))
                except FileNotFoundError:
                    pass
        except OSError as exc:
            raise StateStoreError(f"remove_state failed for scope {scope_id!r}: {exc}") from exc
        logger.debug("state removed scope=%s keys=%s", scope_id, keys)
