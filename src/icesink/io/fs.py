"""
Filesystem helpers for icesink.io (file protocol baseline).

Responsibilities
- Provide a minimal stdlib-only abstraction for the filesystem operations used by the
  local catalog, the local state store, and local data file storage: directory creation,
  write handles, fsync, atomic renames, and atomic JSON documents.
- Define the FileIO protocol (create-for-write) that table handles expose to the
  data file writer, with LocalFileIO as the file-protocol implementation.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same filesystem.
- All helpers are synchronous; callers decide on concurrency/locking if/when needed.
"""

from __future__ import annotations

import json
import os
import shutil
import uuid
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, BinaryIO, Protocol, runtime_checkable

from .paths import local_path


@runtime_checkable
class FileIO(Protocol):
    """Storage surface that supports create-for-write."""

    def create(self, path: str) -> AbstractContextManager[BinaryIO]:
        """Open `path` for sequential binary writes; the handle is closed on exit."""
        ...


class LocalFileIO:
    """
    FileIO over the local filesystem.

    Accepts plain paths and file:// URIs; parent directories are created on demand.
    Files are written to a unique "<path>.<pid>.<uuid>.tmp", fsynced, then renamed into place, so a reader
    never observes a partially written data file.
    """

    @contextmanager
    def create(self, path: str) -> Iterator[BinaryIO]:
        target = local_path(path)
        makedirs(os.path.dirname(target) or ".", exist_ok=True)
        tmp_path = _tmp_name(target)
        fh = open(tmp_path, "wb")
        try:
            yield fh
            fsync_file(fh)
        except BaseException:
            fh.close()
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        fh.close()
        rename_atomic(tmp_path, target)


def makedirs(path: str, exist_ok: bool = True) -> None:
    """
    Create directories recursively.

    Notes:
        Thin wrapper around os.makedirs to centralize IO-layer usage.
    """
    os.makedirs(path, exist_ok=exist_ok)


@contextmanager
def open_write(path: str) -> Iterator[BinaryIO]:
    """
    Open a file for binary write as a context manager.

    Notes:
        Caller is responsible for atomic os.replace of the temporary file to final path.
    """
    fh = open(path, "wb")
    try:
        yield fh
    finally:
        fh.close()


def fsync_file(fh: BinaryIO) -> None:
    """Flush and fsync an open file handle."""
    fh.flush()
    os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """
    Atomically rename src -> dst on the same filesystem.

    Notes:
        Uses os.replace, which is atomic only if src and dst reside on the same filesystem.
    """
    os.replace(src, dst)


def _tmp_name(path: str) -> str:
    """Unique sibling tmp path, so concurrent writers never share one."""
    return f"{path}.{os.getpid()}.{uuid.uuid4().hex}.tmp"


def write_json_atomic(path: str, obj: Any) -> None:
    """
    Persist a JSON document atomically.

    The write path is: serialize JSON -> write to a unique "<final>.<pid>.<uuid>.tmp" ->
    fsync -> atomic rename to final path using os.replace (same filesystem). Concurrent
    writers of the same path never collide on the tmp file; the last rename wins.

    Raises:
        OSError: If filesystem operations fail (callers wrap in their own error types).
    """
    makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = _tmp_name(path)
    payload = json.dumps(obj, indent=2, sort_keys=False).encode("utf-8")
    try:
        with open_write(tmp_path) as fh:
            fh.write(payload)
            fsync_file(fh)
        rename_atomic(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def write_json_exclusive(path: str, obj: Any) -> None:
    """
    Persist a JSON document only if `path` does not exist yet.

    The document is fully written to "<final>.<pid>.<uuid>.tmp" first and then hard-linked into
    place; os.link fails if the target exists, so exactly one of several racing writers
    wins and nobody observes a partial document.

    Raises:
        FileExistsError: Another writer created `path` first.
        OSError: Other filesystem failures.
    """
    makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = _tmp_name(path)
    payload = json.dumps(obj, indent=2, sort_keys=False).encode("utf-8")
    with open_write(tmp_path) as fh:
        fh.write(payload)
        fsync_file(fh)
    try:
        os.link(tmp_path, path)
    finally:
        os.remove(tmp_path)


def read_json(path: str) -> Any | None:
    """Load a JSON document, or None if the file does not exist (or vanished meanwhile)."""
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None


def remove_tree(path: str) -> None:
    """Remove a directory tree; missing directories are ignored."""
    if os.path.isdir(path):
        shutil.rmtree(path)
