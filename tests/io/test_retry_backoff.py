from __future__ import annotations

import threading
import time

import pytest

from icesink.io.config import RetrySettings
from icesink.io.context import CallContext
from icesink.io.errors import CommitError, DeadlineExceeded, OperationCancelled, WriteError
from icesink.io.retry import RetryPolicy

FAST = RetryPolicy(initial_interval=0.001, max_interval=0.004, randomization_factor=0.0)


class _Flaky:
    def __init__(self, failures: int, exc: type[Exception] = WriteError) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"attempt {self.calls} failed")
        return "ok"


def test_delays_grow_and_cap_without_jitter() -> None:
    policy = RetryPolicy(initial_interval=0.5, multiplier=2.0, max_interval=3.0, randomization_factor=0.0)
    nxt = policy.delays()
    assert [nxt() for _ in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_jitter_stays_within_bounds() -> None:
    nxt = RetryPolicy().delays()
    first = nxt()
    assert 0.25 <= first <= 0.75
    second = nxt()
    assert 0.375 <= second <= 1.125


def test_from_settings_copies_fields() -> None:
    policy = RetryPolicy.from_settings(RetrySettings(initial_interval_seconds=2.0, max_elapsed_seconds=9.0))
    assert policy.initial_interval == 2.0
    assert policy.max_elapsed == 9.0
    assert policy.multiplier == 1.5


def test_call_retries_until_success() -> None:
    fn = _Flaky(3)
    assert FAST.call(fn, CallContext().child(10.0), operation="write", retry_on=(WriteError,)) == "ok"
    assert fn.calls == 4


def test_non_retryable_errors_propagate_immediately() -> None:
    fn = _Flaky(5, exc=ValueError)
    with pytest.raises(ValueError):
        FAST.call(fn, CallContext(), operation="write", retry_on=(WriteError,))
    assert fn.calls == 1


def test_max_elapsed_gives_up() -> None:
    policy = RetryPolicy(initial_interval=0.01, randomization_factor=0.0, max_elapsed=0.05)
    fn = _Flaky(10_000, exc=CommitError)
    with pytest.raises(DeadlineExceeded) as info:
        policy.call(fn, CallContext(), operation="commit", retry_on=(CommitError,))
    assert isinstance(info.value.__cause__, CommitError)


def test_context_deadline_bounds_retries() -> None:
    policy = RetryPolicy(initial_interval=0.02, randomization_factor=0.0)
    fn = _Flaky(10_000)
    started = time.monotonic()
    with pytest.raises(DeadlineExceeded):
        policy.call(fn, CallContext().child(0.2), operation="write", retry_on=(WriteError,))
    assert time.monotonic() - started < 5.0


def test_cancellation_interrupts_backoff() -> None:
    policy = RetryPolicy(initial_interval=30.0, randomization_factor=0.0)
    ctx = CallContext()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(OperationCancelled):
            policy.call(_Flaky(10_000), ctx, operation="write", retry_on=(WriteError,))
    finally:
        timer.cancel()
    assert time.monotonic() - started < 5.0


def test_child_context_shares_cancellation_and_tightens_deadline() -> None:
    root = CallContext()
    assert root.remaining() is None
    outer = root.child(100.0)
    inner = outer.child(1000.0)
    assert inner.deadline == outer.deadline
    root.cancel()
    assert inner.cancelled
    with pytest.raises(OperationCancelled):
        inner.check("load")


def test_expired_context_raises_deadline_exceeded() -> None:
    ctx = CallContext().child(0.0)
    assert ctx.expired()
    assert ctx.remaining() == 0.0
    with pytest.raises(DeadlineExceeded, match="load"):
        ctx.check("load")
    assert ctx.wait(5.0) is False
