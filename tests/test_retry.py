"""Tests for retry scheduling with backoff."""

import asyncio
import logging
import random

import pytest

from app.utils.errors import (
    MarkingValidationError,
    PayloadTooLargeError,
    RateLimitedError,
    SizeLimitError,
    TransientFailureError,
)
from app.utils.retry import (
    BASE_DELAY,
    MAX_DELAY,
    MAX_RETRIES,
    RetryPolicy,
    RetryScheduler,
)


class FailingOperation:
    """Async operation that raises the scripted errors, then succeeds."""

    def __init__(self, *errors, result="success"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class AlwaysFailing:
    def __init__(self, error_factory):
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        raise self.error_factory()


def _scheduler(fake_sleep, seed=42, **policy):
    return RetryScheduler(policy=RetryPolicy(**policy), rng=random.Random(seed), sleep=fake_sleep)


# Tests for RetryPolicy


def test_policy_defaults():
    policy = RetryPolicy()

    assert policy.max_retries == MAX_RETRIES == 3
    assert policy.base_delay == BASE_DELAY == 2.0
    assert policy.max_delay == MAX_DELAY == 30.0


def test_policy_is_immutable():
    policy = RetryPolicy()
    with pytest.raises(Exception):
        policy.max_retries = 5  # type: ignore[misc]


# Tests for backoff_delay


def test_rate_limit_backoff_is_exponential_with_bounded_jitter():
    scheduler = RetryScheduler(policy=RetryPolicy(base_delay=1.0, max_jitter=0.5), rng=random.Random(0))
    error = RateLimitedError("429")

    for attempt in range(4):
        delay = scheduler.backoff_delay(error, attempt)
        assert 2**attempt <= delay <= 2**attempt + 0.5


def test_rate_limit_backoff_is_capped():
    scheduler = RetryScheduler(policy=RetryPolicy(base_delay=2.0, max_delay=30.0), rng=random.Random(0))

    assert scheduler.backoff_delay(RateLimitedError("429"), 10) == 30.0


def test_other_failures_use_linear_backoff():
    scheduler = RetryScheduler(policy=RetryPolicy(base_delay=2.0))

    assert scheduler.backoff_delay(TransientFailureError("503"), 0) == 2.0
    assert scheduler.backoff_delay(TransientFailureError("503"), 1) == 4.0
    assert scheduler.backoff_delay(ValueError("boom"), 2) == 6.0


def test_jitter_is_deterministic_with_seeded_rng():
    first = RetryScheduler(rng=random.Random(7)).backoff_delay(RateLimitedError("429"), 1)
    second = RetryScheduler(rng=random.Random(7)).backoff_delay(RateLimitedError("429"), 1)

    assert first == second


# Tests for run()


@pytest.mark.asyncio
async def test_success_on_first_attempt(fake_sleep):
    operation = FailingOperation()

    result = await _scheduler(fake_sleep).run(operation)

    assert result == "success"
    assert operation.calls == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_retries_transient_failure_then_succeeds(fake_sleep):
    operation = FailingOperation(TransientFailureError("503"), TransientFailureError("503"))

    result = await _scheduler(fake_sleep).run(operation)

    assert result == "success"
    assert operation.calls == 3
    assert fake_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_rate_limited_retries_max_retries_times_with_increasing_delays(fake_sleep):
    operation = AlwaysFailing(lambda: RateLimitedError("Rate limit exceeded"))

    with pytest.raises(RateLimitedError):
        await _scheduler(fake_sleep, max_retries=3, base_delay=2.0, max_jitter=1.0).run(operation)

    assert operation.calls == 4
    assert len(fake_sleep.delays) == 3
    assert fake_sleep.delays == sorted(fake_sleep.delays)
    assert fake_sleep.delays[0] < fake_sleep.delays[1] < fake_sleep.delays[2]
    assert all(delay <= 30.0 for delay in fake_sleep.delays)


@pytest.mark.asyncio
async def test_rate_limited_delays_respect_cap(fake_sleep):
    operation = AlwaysFailing(lambda: RateLimitedError("429"))

    with pytest.raises(RateLimitedError):
        await _scheduler(fake_sleep, max_retries=6, base_delay=4.0, max_delay=20.0).run(operation)

    assert max(fake_sleep.delays) == 20.0


@pytest.mark.parametrize(
    "error",
    [
        PayloadTooLargeError("Document too large"),
        MarkingValidationError("missing prompt"),
        SizeLimitError("too many chunks"),
    ],
)
@pytest.mark.asyncio
async def test_structural_errors_never_retried(fake_sleep, error):
    operation = FailingOperation(error)

    with pytest.raises(type(error)):
        await _scheduler(fake_sleep).run(operation)

    assert operation.calls == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_unknown_errors_propagate_unchanged_after_retries(fake_sleep):
    operation = AlwaysFailing(lambda: KeyError("unexpected"))

    with pytest.raises(KeyError):
        await _scheduler(fake_sleep, max_retries=2).run(operation)

    assert operation.calls == 3
    assert fake_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_zero_retries_fails_immediately(fake_sleep):
    operation = AlwaysFailing(lambda: TransientFailureError("503"))

    with pytest.raises(TransientFailureError):
        await _scheduler(fake_sleep, max_retries=0).run(operation)

    assert operation.calls == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_timeout_counts_as_transient_failure(fake_sleep):
    calls = 0

    async def slow_then_fast():
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(1)
        return "done"

    scheduler = RetryScheduler(
        policy=RetryPolicy(max_retries=1),
        sleep=fake_sleep,
        attempt_timeout=0.01,
    )

    assert await scheduler.run(slow_then_fast) == "done"
    assert calls == 2
    assert fake_sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_timeout_exhausted_raises_transient_failure(fake_sleep):
    async def never_finishes():
        await asyncio.sleep(1)

    scheduler = RetryScheduler(policy=RetryPolicy(max_retries=0), sleep=fake_sleep, attempt_timeout=0.01)

    with pytest.raises(TransientFailureError, match="timed out"):
        await scheduler.run(never_finishes)


@pytest.mark.asyncio
async def test_each_run_is_independent(fake_sleep):
    scheduler = _scheduler(fake_sleep, max_retries=1)

    first = FailingOperation(TransientFailureError("503"))
    second = FailingOperation(TransientFailureError("503"))

    assert await scheduler.run(first) == "success"
    assert await scheduler.run(second) == "success"
    assert fake_sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
async def test_retry_attempts_are_logged(fake_sleep, caplog):
    operation = FailingOperation(TransientFailureError("Service unavailable"))

    with caplog.at_level(logging.WARNING, logger="app.utils.retry"):
        await _scheduler(fake_sleep).run(operation, description="Chunk 1/2")

    assert "Chunk 1/2 attempt 1/3 failed" in caplog.text
    assert "retrying in 2.00s" in caplog.text
