"""
icesink core defaults.

Defines the naming, scheduling, and writing defaults consumed by the IO and sink layers.
This module is zero-IO and uses only the Python standard library.

Notes:
    - Data file names embed ``seq // SEQUENCE_BUCKET`` and ``seq % SEQUENCE_BUCKET`` plus
      ``worker // WORKER_BUCKET`` and ``worker % WORKER_BUCKET``.
    - Changes to the file naming constants break downstream readers that rely on the
      naming convention; treat them as part of the on-disk contract.
"""

from __future__ import annotations

__all__ = [
    "COMMIT_INTERVAL_SECONDS",
    "OPERATION_TIMEOUT_SECONDS",
    "SEQUENCE_BUCKET",
    "WORKER_BUCKET",
    "DATA_DIR_NAME",
    "DATA_FILE_SUFFIX",
    "STATE_KEY_PREFIX",
    "ROW_GROUP_SIZE",
    "COMPRESSION",
    "DEFAULT_NAMESPACE",
    "DEFAULT_PREFIX",
]

# Interval between two cross-writer commit passes on the leader.
COMMIT_INTERVAL_SECONDS: float = 60.0

# Upper bound applied to every blocking call (catalog, state store, file storage).
OPERATION_TIMEOUT_SECONDS: float = 300.0

# File naming buckets (see icesink.io.paths.data_file_path).
SEQUENCE_BUCKET: int = 10
WORKER_BUCKET: int = 10_000

DATA_DIR_NAME: str = "data"
DATA_FILE_SUFFIX: str = ".parquet"

# Shared state store keys: <prefix>/<namespace>/<table>/<writer_id>/<flush_seq>
STATE_KEY_PREFIX: str = "streaming_files"

ROW_GROUP_SIZE: int = 128 * 1024
COMPRESSION: str = "zstd"

DEFAULT_NAMESPACE: str = "default"
DEFAULT_PREFIX: str = "out/warehouse"
