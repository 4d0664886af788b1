"""
Custom exceptions for the icesink.io module.

Purpose
- Provide IO-layer error types that map onto the failure classes of the commit pipeline.
- Keep icesink.core as the source of truth for schema errors (see icesink.core.errors).

Taxonomy
- IoConfigError: invalid or unsupported configuration.
- WriteError: data file create/encode/write/close failure (retried with backoff).
- DDLError: create/drop failure on a table whose existence was confirmed (not retried).
- CommitError: transaction add-files/commit failure (state preserved, retried next interval).
- StateStoreError: shared state store get/set/remove failure.
- TableNotFoundError / TableAlreadyExistsError: catalog existence answers.
- OperationCancelled / DeadlineExceeded: the call context was cancelled or timed out.

Notes
- These exceptions do not perform any IO and are stdlib-only.
"""

from __future__ import annotations


class IoError(Exception):
    """
    Base class for IO-related errors in icesink.io.

    Notes:
        Use this as a catch-all for IO-layer failures, distinct from icesink.core errors.
    """


class IoConfigError(IoError):
    """
    Raised when sink configuration is invalid or unsupported.

    Examples:
        - Unsupported catalog type
        - REST catalog without a URI
    """


class WriteError(IoError):
    """
    Raised when a data file cannot be produced.

    Notes:
        Covers storage without create-for-write support, schemas that cannot be
        translated to Arrow/Parquet, and write/close failures. Retried by RetryPolicy
        until the caller's deadline elapses.
    """


class DDLError(IoError):
    """Raised when drop/create fails for a table whose existence was confirmed."""


class CommitError(IoError):
    """
    Raised when adding files to a table transaction or committing it fails.

    Notes:
        The scheduler logs it, keeps the table's state entries, and retries on the
        next interval.
    """


class StateStoreError(IoError):
    """Raised when the shared state store rejects a get/set/remove call."""


class TableNotFoundError(IoError):
    """Raised by catalogs when a table identity does not exist."""


class TableAlreadyExistsError(IoError):
    """Raised by catalogs when creating a table that already exists."""


class OperationCancelled(IoError):
    """Raised when the parent call context has been cancelled."""


class DeadlineExceeded(OperationCancelled):
    """Raised when a call context's deadline has elapsed."""
