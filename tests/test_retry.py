"""Tests for the retry/backoff policy."""

from __future__ import annotations

import pytest

from pipeboard.errors import NotFoundError, RetryExhaustedError, TransportError
from pipeboard.slots.retry import RetryPolicy, is_permanent, retry


class Flaky:
    """Fails ``failures`` times with ``exc``, then returns ``result``."""

    def __init__(self, failures: int, exc: Exception, result: str = "ok"):
        self.failures = failures
        self.exc = exc
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.result


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def policy(sleeps) -> RetryPolicy:
    return RetryPolicy(sleep=sleeps.append, jitter=lambda lo, hi: 0.25)


class TestIsPermanent:
    def test_tag_wins(self):
        assert is_permanent(TransportError("NoSuchKey", permanent=False)) is False
        assert is_permanent(TransportError("boom", permanent=True)) is True

    def test_untagged_errors_use_markers(self):
        assert is_permanent(RuntimeError("AccessDenied: nope"))
        assert is_permanent(RuntimeError("InvalidAccessKeyId"))
        assert not is_permanent(RuntimeError("connection reset"))

    def test_default_tags(self):
        assert not is_permanent(TransportError("timeout"))
        assert is_permanent(NotFoundError("gone"))


class TestRetryPolicy:
    def test_success_first_try(self, policy, sleeps):
        op = Flaky(0, TransportError("x"))
        assert policy.call(op) == "ok"
        assert op.calls == 1
        assert sleeps == []

    def test_recovers_after_transient_failures(self, policy, sleeps):
        op = Flaky(2, TransportError("timeout"))
        assert policy.call(op) == "ok"
        assert op.calls == 3
        assert sleeps == [1.25, 2.25]

    def test_permanent_error_not_retried(self, policy, sleeps):
        err = TransportError("AccessDenied", permanent=True)
        op = Flaky(5, err)
        with pytest.raises(TransportError) as exc_info:
            policy.call(op)
        assert exc_info.value is err
        assert op.calls == 1
        assert sleeps == []

    def test_exhaustion_wraps_last_error(self, policy, sleeps):
        err = TransportError("still down")
        op = Flaky(10, err)
        with pytest.raises(RetryExhaustedError) as exc_info:
            policy.call(op)
        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is err
        assert "after 3 attempts" in str(exc_info.value)
        assert op.calls == 3
        # No sleep after the final attempt.
        assert len(sleeps) == 2

    def test_exponential_delay(self):
        policy = RetryPolicy(base_delay=1.0, jitter=lambda lo, hi: 0.0)
        assert [policy.delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_bounds(self):
        seen = []
        policy = RetryPolicy(jitter=lambda lo, hi: seen.append((lo, hi)) or hi)
        assert policy.delay(0) == 2.0
        assert seen == [(0, 1.0)]

    def test_single_attempt(self, sleeps):
        policy = RetryPolicy(max_attempts=1, sleep=sleeps.append)
        with pytest.raises(RetryExhaustedError):
            policy.call(Flaky(1, TransportError("x")))
        assert sleeps == []


def test_retry_shorthand_uses_given_policy(policy):
    op = Flaky(1, TransportError("blip"))
    assert retry(op, policy=policy) == "ok"
    assert op.calls == 2


def test_retry_shorthand_attempt_count():
    with pytest.raises(RetryExhaustedError) as exc_info:
        retry(Flaky(1, TransportError("blip")), max_attempts=1)
    assert exc_info.value.attempts == 1
