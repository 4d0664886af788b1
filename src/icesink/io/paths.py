"""
Path and key layout helpers for icesink.io.

Overview
- Data files:  <prefix>/<namespace>/<table>/data/<seq//10:05d>-<seq%10>-<uuid>-<worker//10000>-<worker%10000:05d>.parquet
- Local catalog log: <root>/<namespace>/<table>/metadata/manifest.json
- State keys:  streaming_files/<namespace>/<table>/<writer_id>/<flush_seq>

Notes
- Data file names embed the writer id and a random UUID, so no two writers ever produce
  the same path; the sequence buckets keep names roughly time-ordered per writer while
  spreading writes across storage prefixes.
- This module focuses solely on path/key construction.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from icesink.core.constants import (
    DATA_DIR_NAME,
    DATA_FILE_SUFFIX,
    SEQUENCE_BUCKET,
    STATE_KEY_PREFIX,
    WORKER_BUCKET,
)
from icesink.core.schema import TableIdent

_FILE_SCHEME: Final[str] = "file://"
_METADATA_DIR: Final[str] = "metadata"
_MANIFEST_NAME: Final[str] = "manifest.json"


def data_file_name(sequence: int, worker_id: int, uuid_str: str) -> str:
    """
    Build a data file name from a writer sequence number, writer id, and UUID.

    Args:
        sequence (int): Per-writer monotonically increasing sequence (>= 0).
        worker_id (int): Writer index (>= 0).
        uuid_str (str): Canonical UUID string (36 chars).

    Returns:
        str: "<seq//10:05d>-<seq%10>-<uuid>-<worker//10000>-<worker%10000:05d>.parquet".

    Raises:
        ValueError: If sequence or worker_id is negative.

    Examples:
        >>> data_file_name(123, 10007, "00000000-0000-0000-0000-000000000000")
        '00012-3-00000000-0000-0000-0000-000000000000-1-00007.parquet'
    """
    if sequence < 0:
        raise ValueError("sequence must be >= 0")
    if worker_id < 0:
        raise ValueError("worker_id must be >= 0")
    return (
        f"{sequence // SEQUENCE_BUCKET:05d}-{sequence % SEQUENCE_BUCKET}-{uuid_str}-"
        f"{worker_id // WORKER_BUCKET}-{worker_id % WORKER_BUCKET:05d}{DATA_FILE_SUFFIX}"
    )


def data_file_path(prefix: str, ident: TableIdent, sequence: int, worker_id: int, uuid_str: str) -> str:
    """
    Full data file path for a table.

    Returns:
        str: "<prefix>/<namespace>/<table>/data/<data_file_name>".
    """
    base = prefix.rstrip("/")
    return "/".join(
        [base, ident.namespace, ident.name, DATA_DIR_NAME, data_file_name(sequence, worker_id, uuid_str)]
    )


def local_path(path: str) -> str:
    """
    Strip a file:// scheme so a path can be handed to os-level calls.

    Examples:
        >>> local_path("file:///tmp/x.parquet")
        '/tmp/x.parquet'
        >>> local_path("out/x.parquet")
        'out/x.parquet'
    """
    if path.startswith(_FILE_SCHEME):
        return path[len(_FILE_SCHEME) :]
    return path


def table_metadata_dir(root_dir: str, ident: TableIdent) -> str:
    """Local catalog metadata directory: "<root>/<namespace>/<table>/metadata"."""
    return os.path.join(local_path(root_dir), ident.namespace, ident.name, _METADATA_DIR)


def table_manifest_path(root_dir: str, ident: TableIdent) -> str:
    """Local catalog transaction log: "<root>/<namespace>/<table>/metadata/manifest.json"."""
    return os.path.join(table_metadata_dir(root_dir, ident), _MANIFEST_NAME)


# -----------------------------------------------------------------------------
# State store keys
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class StateKey:
    """
    Decoded shared-state key.

    Attributes:
        ident (TableIdent): Table the listed files belong to.
        writer_id (int): Writer that produced them.
        flush_seq (int): Per-writer flush counter; a key is written once.
    """

    ident: TableIdent
    writer_id: int
    flush_seq: int


def state_key(ident: TableIdent, writer_id: int, flush_seq: int) -> str:
    """
    Build a state store key for one ledger flush.

    Examples:
        >>> state_key(TableIdent(namespace="public", name="users"), 3, 7)
        'streaming_files/public/users/3/7'
    """
    return f"{STATE_KEY_PREFIX}/{ident.namespace}/{ident.name}/{writer_id}/{flush_seq}"


def parse_state_key(key: str) -> StateKey | None:
    """
    Decode a state store key produced by state_key.

    Namespace and table names never contain "/" (see TableIdent), so a key splits into
    exactly four segments after the prefix.

    Returns:
        StateKey | None: Components, or None for keys owned by someone else.
    """
    head = STATE_KEY_PREFIX + "/"
    if not key.startswith(head):
        return None
    parts = key[len(head) :].split("/")
    if len(parts) != 4:
        return None
    namespace, name, writer, flush = parts
    if not name or not writer.isdigit() or not flush.isdigit():
        return None
    return StateKey(
        ident=TableIdent(namespace=namespace, name=name),
        writer_id=int(writer),
        flush_seq=int(flush),
    )
