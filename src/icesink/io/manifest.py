"""
Per-table transaction log used by the local catalog.

Log layout (JSON at <root>/<namespace>/<table>/metadata/manifest.json):
{
  "namespace": "<namespace>",
  "table": "<table>",
  "version": 1,
  "created_at": "ISO-8601",
  "updated_at": "ISO-8601",
  "schema": {"fields": [...], "identifier_field_ids": [...]},
  "snapshots": [
    {
      "snapshot_id": 1,
      "parent_id": null,
      "operation": "append",
      "committed_at": "ISO-8601",
      "summary": {"added-data-files": "2", ...snapshot properties},
      "added_files": ["<prefix>/<ns>/<table>/data/....parquet", ...]
    }
  ],
  "files": ["..."]
}

Notes:
- "files" is the current snapshot's file set, in commit order.
- Appending a path that is already in "files" is skipped, so replaying a commit with the
  same file set is a no-op (idempotent add).
- Data file paths are stored as given (absolute or prefix-relative), never rewritten.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from icesink.core.schema import DestinationSchema, TableIdent

from .errors import IoError
from .fs import read_json, write_json_atomic
from .paths import table_manifest_path

Operation = Literal["append", "overwrite"]

LOG_VERSION = 1


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(slots=True)
class SnapshotMeta:
    """
    One committed snapshot.

    Attributes:
        snapshot_id (int): 1-based, increasing per table.
        parent_id (int | None): Previous snapshot id, None for the first snapshot.
        operation (Operation): "append" adds files; "overwrite" replaces the file set.
        committed_at (str): ISO-8601 commit timestamp.
        summary (dict[str, str]): Snapshot properties plus added/total file counts.
        added_files (list[str]): Paths added by this snapshot.
    """

    snapshot_id: int
    parent_id: int | None
    operation: Operation
    committed_at: str
    summary: dict[str, str] = field(default_factory=dict)
    added_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TableLog:
    """
    Transaction log model persisted per table.

    Attributes:
        namespace (str): Table namespace.
        table (str): Table name.
        version (int): Log format version.
        created_at (str): ISO-8601 creation timestamp.
        updated_at (str): ISO-8601 timestamp of the last commit.
        schema (DestinationSchema): Schema recorded at creation; never evolved.
        snapshots (list[SnapshotMeta]): Commit history, oldest first.
        files (list[str]): Current file set.
    """

    namespace: str
    table: str
    version: int
    created_at: str
    updated_at: str
    schema: DestinationSchema
    snapshots: list[SnapshotMeta] = field(default_factory=list)
    files: list[str] = field(default_factory=list)

    @property
    def ident(self) -> TableIdent:
        return TableIdent(namespace=self.namespace, name=self.table)

    @property
    def current_snapshot(self) -> SnapshotMeta | None:
        return self.snapshots[-1] if self.snapshots else None

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "table": self.table,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "schema": self.schema.model_dump(mode="json"),
            "snapshots": [asdict(s) for s in self.snapshots],
            "files": list(self.files),
        }

    @classmethod
    def from_json_obj(cls, obj: dict[str, Any]) -> TableLog:
        snapshots = [
            SnapshotMeta(
                snapshot_id=int(s["snapshot_id"]),
                parent_id=None if s.get("parent_id") is None else int(s["parent_id"]),
                operation=s.get("operation", "append"),
                committed_at=s.get("committed_at") or _utc_now_iso(),
                summary=dict(s.get("summary") or {}),
                added_files=list(s.get("added_files") or []),
            )
            for s in (obj.get("snapshots") or [])
        ]
        return cls(
            namespace=obj["namespace"],
            table=obj["table"],
            version=int(obj.get("version", LOG_VERSION)),
            created_at=obj.get("created_at") or _utc_now_iso(),
            updated_at=obj.get("updated_at") or _utc_now_iso(),
            schema=DestinationSchema.model_validate(obj["schema"]),
            snapshots=snapshots,
            files=list(obj.get("files") or []),
        )


def new_table_log(ident: TableIdent, schema: DestinationSchema) -> TableLog:
    """Create an empty log (no snapshots, no files) for a new table."""
    now = _utc_now_iso()
    return TableLog(
        namespace=ident.namespace,
        table=ident.name,
        version=LOG_VERSION,
        created_at=now,
        updated_at=now,
        schema=schema,
    )


# -----------------------------------------------------------------------------
# File I/O
# -----------------------------------------------------------------------------


def load_table_log(root_dir: str, ident: TableIdent) -> TableLog | None:
    """
    Load a table's log if present.

    Returns:
        TableLog | None: Parsed log, or None when the table does not exist.

    Raises:
        IoError: The log exists but cannot be read or parsed.
    """
    path = table_manifest_path(root_dir, ident)
    try:
        data = read_json(path)
        if data is None:
            return None
        return TableLog.from_json_obj(data)
    except (OSError, ValueError, KeyError) as exc:
        raise IoError(f"read transaction log {path}: {exc}") from exc


def write_table_log(root_dir: str, log: TableLog) -> None:
    """
    Persist a table log atomically (tmp -> fsync -> rename).

    Raises:
        OSError: If filesystem operations fail (callers wrap in their own error types).
    """
    write_json_atomic(table_manifest_path(root_dir, log.ident), log.to_json_obj())


# -----------------------------------------------------------------------------
# Update helpers
# -----------------------------------------------------------------------------


def append_snapshot(
    log: TableLog,
    paths: list[str],
    properties: dict[str, str] | None = None,
    *,
    overwrite: bool = False,
) -> SnapshotMeta | None:
    """
    Record a commit of `paths` in `log`.

    Args:
        log (TableLog): Log to mutate.
        paths (list[str]): Data files to add, in order; duplicates are collapsed.
        properties (dict[str, str] | None): Snapshot properties copied into the summary.
        overwrite (bool): Replace the current file set instead of appending to it.

    Returns:
        SnapshotMeta | None: The new snapshot, or None when an append adds nothing new.

    Notes:
        - Paths already in the current file set are skipped on append.
    """
    current = set() if overwrite else set(log.files)
    added: list[str] = []
    for p in paths:
        if p not in current:
            current.add(p)
            added.append(p)
    if not added and not overwrite:
        return None

    files = added if overwrite else log.files + added
    previous = log.current_snapshot
    summary = dict(properties or {})
    summary["added-data-files"] = str(len(added))
    summary["total-data-files"] = str(len(files))
    snap = SnapshotMeta(
        snapshot_id=1 if previous is None else previous.snapshot_id + 1,
        parent_id=None if previous is None else previous.snapshot_id,
        operation="overwrite" if overwrite else "append",
        committed_at=_utc_now_iso(),
        summary=summary,
        added_files=added,
    )
    log.snapshots.append(snap)
    log.files = files
    log.updated_at = snap.committed_at
    return snap
