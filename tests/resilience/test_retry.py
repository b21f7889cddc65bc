import asyncio
import random

import pytest

from localmcp_resilience.resilience.errors import (
    OperationTimeoutError,
    RetryExhaustedError,
    TransientError,
)
from localmcp_resilience.resilience.events import RetryAttempt, RetryExhausted
from localmcp_resilience.resilience.retry import (
    ExponentialBackoffStrategy,
    RetryPolicy,
    retry,
)

pytestmark = pytest.mark.asyncio


def make_policy(bus, sleeper, **kwargs):
    return RetryPolicy(bus, rng=random.Random(7), sleep=sleeper, **kwargs)


async def test_retries_until_success(bus, recorder, no_sleep):
    policy = make_policy(bus, no_sleep)
    calls = {"n": 0}

    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise TransientError("connection reset")
        return "ok"

    outcome = await policy.run(flaky, operation_name="docs", max_attempts=3, base_delay=1.0)

    assert outcome.value == "ok"
    assert outcome.attempts == 3
    assert [e.attempt for e in recorder.of(RetryAttempt)] == [1, 2]
    assert recorder.of(RetryExhausted) == []
    assert len(no_sleep.delays) == 2


async def test_first_success_returns_without_events(bus, recorder, no_sleep):
    policy = make_policy(bus, no_sleep)

    result = await policy.execute_with_retry(lambda: 42, max_attempts=5)

    assert result == 42
    assert recorder.events == []
    assert no_sleep.delays == []


async def test_exhaustion_wraps_last_error(bus, recorder, no_sleep):
    policy = make_policy(bus, no_sleep)
    errors = [TransientError("a"), TransientError("b"), TransientError("c")]

    async def always_fails():
        raise errors.pop(0)

    with pytest.raises(RetryExhaustedError) as info:
        await policy.execute_with_retry(
            always_fails, max_attempts=3, base_delay=0.5, operation_name="cache"
        )

    assert info.value.attempts == 3
    assert str(info.value.last_error) == "c"
    # No wait after the final attempt
    assert len(no_sleep.delays) == 2
    exhausted = recorder.of(RetryExhausted)
    assert len(exhausted) == 1
    assert exhausted[0].operation == "cache"
    assert exhausted[0].attempts == 3


async def test_delays_follow_capped_exponential_with_jitter(no_sleep):
    policy = make_policy(None, no_sleep)
    strategy = ExponentialBackoffStrategy(base_delay_seconds=1.0, max_delay_seconds=5.0)

    deterministic = [strategy.compute(i) for i in range(1, 8)]
    assert deterministic == sorted(deterministic)
    assert max(deterministic) == 5.0

    for attempt in range(1, 8):
        delay = policy.compute_delay(attempt, base_delay=1.0, max_delay=5.0)
        floor = min(2 ** (attempt - 1), 5.0)
        assert floor <= delay <= min(2 ** (attempt - 1) * 1.1, 5.0)


async def test_deadline_aborts_instead_of_partial_backoff(bus, recorder, no_sleep, clock):
    policy = make_policy(bus, no_sleep, clock=clock)
    calls = {"n": 0}

    async def fails():
        calls["n"] += 1
        raise TransientError("timeout")

    with pytest.raises(RetryExhaustedError) as info:
        await policy.execute_with_retry(
            fails,
            max_attempts=5,
            base_delay=1.0,
            overall_deadline=clock() + 0.5,
        )

    assert calls["n"] == 1
    assert info.value.attempts == 1
    assert no_sleep.delays == []
    assert recorder.of(RetryAttempt) == []
    assert len(recorder.of(RetryExhausted)) == 1


async def test_non_retryable_error_propagates_unwrapped(no_sleep):
    policy = make_policy(None, no_sleep)
    calls = {"n": 0}

    async def bad_request():
        calls["n"] += 1
        raise ValueError("invalid library id")

    with pytest.raises(ValueError):
        await policy.execute_with_retry(
            bad_request,
            max_attempts=3,
            retry_on=lambda exc: isinstance(exc, TransientError),
        )
    assert calls["n"] == 1


async def test_attempt_timeout_is_transient(no_sleep):
    policy = make_policy(None, no_sleep)

    async def hangs():
        await asyncio.Event().wait()

    with pytest.raises(RetryExhaustedError) as info:
        await policy.execute_with_retry(
            hangs, max_attempts=2, base_delay=0.0, attempt_timeout=0.01
        )

    assert isinstance(info.value.last_error, OperationTimeoutError)
    assert info.value.attempts == 2


async def test_on_retry_hook_sees_every_wait(no_sleep):
    policy = make_policy(None, no_sleep)
    seen = []

    async def fails():
        raise TransientError("nope")

    with pytest.raises(RetryExhaustedError):
        await policy.run(
            fails,
            max_attempts=4,
            base_delay=0.1,
            on_retry=lambda attempt, delay, exc: seen.append(attempt),
        )
    assert seen == [1, 2, 3]


async def test_decorator_retries_on_listed_exceptions():
    calls = {"n": 0}

    @retry(max_attempts=3, exceptions=(RuntimeError,), base_delay=0.0)
    async def sometimes_fails():
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("fail")
        return "ok"

    assert await sometimes_fails() == "ok"
    assert calls["n"] == 3


async def test_decorator_gives_up():
    calls = {"n": 0}

    @retry(max_attempts=2, exceptions=RuntimeError, base_delay=0.0)
    async def always_fails():
        calls["n"] += 1
        raise RuntimeError("nope")

    with pytest.raises(RetryExhaustedError):
        await always_fails()
    assert calls["n"] == 2


async def test_decorator_rejects_sync_functions():
    with pytest.raises(TypeError):

        @retry()
        def not_async():
            return None
