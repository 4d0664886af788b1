"""
Cancellable call contexts with deadlines.

A CallContext pairs a cancellation event with an optional monotonic deadline. The sink
owns one root context; every blocking call (catalog, state store, file storage) runs
under a child derived with the configured per-call timeout. Cancelling the root wakes
any backoff sleep promptly and makes the next check() raise.

Examples:
    >>> root = CallContext()
    >>> child = root.child(timeout=5.0)
    >>> child.cancelled
    False
    >>> root.cancel()
    >>> child.cancelled
    True
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from .errors import DeadlineExceeded, OperationCancelled


@dataclass(frozen=True)
class CallContext:
    """
    Cancellation token plus optional deadline (time.monotonic() seconds).

    Attributes:
        cancel_event (threading.Event): Shared with every context derived from this one.
        deadline (float | None): Absolute monotonic deadline, or None for no bound.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    def child(self, timeout: float | None) -> CallContext:
        """Derive a context sharing cancellation, bounded by min(parent deadline, now + timeout)."""
        deadline = self.deadline
        if timeout is not None:
            candidate = time.monotonic() + timeout
            deadline = candidate if deadline is None else min(deadline, candidate)
        return CallContext(cancel_event=self.cancel_event, deadline=deadline)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self, operation: str) -> None:
        """
        Raise if the context is cancelled or past its deadline.

        Raises:
            OperationCancelled: The root context was cancelled.
            DeadlineExceeded: The deadline elapsed.
        """
        if self.cancelled:
            raise OperationCancelled(f"{operation}: cancelled")
        if self.expired():
            raise DeadlineExceeded(f"{operation}: deadline exceeded")

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, capped by the deadline; wake early on cancellation.

        Returns:
            bool: True if cancelled while waiting.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        return self.cancel_event.wait(max(0.0, seconds))
