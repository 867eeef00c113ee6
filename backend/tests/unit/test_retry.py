"""Tests for the retry policy."""

import asyncio
import random

import pytest

from arena.config import RetryConfig
from arena.retry import RetryPolicy


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def flaky(failures: int, exc: type[BaseException] = ConnectionError):
    calls = {"count": 0}

    async def func() -> str:
        calls["count"] += 1
        if calls["count"] <= failures:
            raise exc("temporary")
        return "ok"

    return func, calls


def test_exponential_backoff_is_capped() -> None:
    policy = RetryPolicy(max_attempts=6, base_delay=0.5, multiplier=2.0, max_delay=3.0, jitter=0.0)
    assert list(policy.delays()) == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_jitter_stays_within_spread() -> None:
    policy = RetryPolicy(base_delay=1.0, jitter=0.1)
    rng = random.Random(7)
    for _ in range(50):
        assert 0.9 <= policy.delay_for(0, rng) <= 1.1


def test_run_retries_until_success() -> None:
    sleep = FakeSleep()
    func, calls = flaky(2)
    policy = RetryPolicy(max_attempts=3, base_delay=0.25, jitter=0.0)

    assert asyncio.run(policy.run(func, sleep=sleep)) == "ok"
    assert calls["count"] == 3
    assert sleep.delays == [0.25, 0.5]


def test_run_raises_after_last_attempt() -> None:
    func, calls = flaky(5)
    policy = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)

    with pytest.raises(ConnectionError):
        asyncio.run(policy.run(func, sleep=FakeSleep()))
    assert calls["count"] == 3


def test_non_retryable_errors_propagate_immediately() -> None:
    func, calls = flaky(1, exc=ValueError)
    policy = RetryPolicy(max_attempts=3, base_delay=0.0)

    with pytest.raises(ValueError):
        asyncio.run(policy.run(func, sleep=FakeSleep()))
    assert calls["count"] == 1


def test_from_config_with_custom_exceptions() -> None:
    config = RetryConfig(max_attempts=5, base_delay_seconds=0.1, max_delay_seconds=1.0, jitter=0.0)
    policy = RetryPolicy.from_config(config, retry_on=(KeyError,))

    assert policy.max_attempts == 5
    assert policy.should_retry(KeyError("x"))
    assert not policy.should_retry(ConnectionError())
