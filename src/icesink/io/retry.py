"""
Exponential backoff around file writes and commits.

Defaults mirror a classic exponential backoff: 0.5 s initial interval, x1.5 growth,
60 s cap, +/-50% jitter, and no attempt limit. The caller's CallContext deadline is the
only guaranteed upper bound; an optional max_elapsed_seconds adds a second one.

Notes
- The retried callable is re-invoked as-is. Callers that name files decide whether a
  retry reuses the same path (the data file writer does).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .config import RetrySettings
from .context import CallContext
from .errors import DeadlineExceeded, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff policy.

    Attributes:
        initial_interval (float): First delay in seconds.
        multiplier (float): Growth factor between attempts.
        max_interval (float): Delay cap in seconds.
        randomization_factor (float): Jitter ratio; a delay d becomes uniform(d*(1-f), d*(1+f)).
        max_elapsed (float | None): Give up after this many seconds; None for no cap.
    """

    initial_interval: float = 0.5
    multiplier: float = 1.5
    max_interval: float = 60.0
    randomization_factor: float = 0.5
    max_elapsed: float | None = None

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            initial_interval=settings.initial_interval_seconds,
            multiplier=settings.multiplier,
            max_interval=settings.max_interval_seconds,
            randomization_factor=settings.randomization_factor,
            max_elapsed=settings.max_elapsed_seconds,
        )

    def delays(self) -> Callable[[], float]:
        """Return a stateful generator of successive jittered delays."""
        current = self.initial_interval

        def next_delay() -> float:
            nonlocal current
            base = current
            current = min(current * self.multiplier, self.max_interval)
            if self.randomization_factor <= 0:
                return base
            spread = base * self.randomization_factor
            return random.uniform(base - spread, base + spread)

        return next_delay

    def call(
        self,
        fn: Callable[[], T],
        ctx: CallContext,
        *,
        operation: str,
        retry_on: tuple[type[BaseException], ...],
    ) -> T:
        """
        Invoke `fn` until it succeeds, retrying exceptions listed in `retry_on`.

        Args:
            fn: Zero-argument callable.
            ctx: Call context whose deadline/cancellation bounds the retries.
            operation: Label used in logs and errors.
            retry_on: Exception types considered transient.

        Returns:
            T: Result of the first successful call.

        Raises:
            OperationCancelled: Context cancelled between attempts (chained to the last error).
            DeadlineExceeded: Deadline or max_elapsed reached (chained to the last error).
            Exception: Any non-transient error raised by `fn`, unchanged.
        """
        started = time.monotonic()
        next_delay = self.delays()
        attempt = 0
        while True:
            ctx.check(operation)
            attempt += 1
            try:
                return fn()
            except retry_on as exc:
                delay = next_delay()
                if self.max_elapsed is not None and time.monotonic() - started + delay > self.max_elapsed:
                    raise DeadlineExceeded(
                        f"{operation}: gave up after {attempt} attempts: {exc}"
                    ) from exc
                remaining = ctx.remaining()
                if remaining is not None and remaining <= delay:
                    raise DeadlineExceeded(
                        f"{operation}: deadline reached after {attempt} attempts: {exc}"
                    ) from exc
                logger.warning(
                    "%s failed (attempt %s), retrying in %.2fs: %s", operation, attempt, delay, exc
                )
                if ctx.wait(delay):
                    raise OperationCancelled(f"{operation}: cancelled during backoff") from exc
