"""Declared retry policy with jittered exponential backoff.

One policy object is shared by every outbound call (decision providers,
quote source) and by the trade executor's ledger-conflict retries.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterator, TypeVar

from arena.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts, backoff shape and jitter for a class of retryable errors."""

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 8.0
    jitter: float = 0.1
    retry_on: tuple[type[BaseException], ...] = field(
        default=(ConnectionError, TimeoutError, asyncio.TimeoutError)
    )

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        retry_on: tuple[type[BaseException], ...] | None = None,
    ) -> "RetryPolicy":
        policy = cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            multiplier=config.multiplier,
            max_delay=config.max_delay_seconds,
            jitter=config.jitter,
        )
        if retry_on is not None:
            policy = policy.with_retry_on(*retry_on)
        return policy

    def with_retry_on(self, *exc_types: type[BaseException]) -> "RetryPolicy":
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
            retry_on=tuple(exc_types),
        )

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay in seconds after the given 0-indexed failed attempt."""
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            spread = delay * self.jitter
            delay += (rng or random).uniform(-spread, spread)
        return max(0.0, min(delay, self.max_delay))

    def delays(self, rng: random.Random | None = None) -> Iterator[float]:
        """Sleep schedule between attempts (max_attempts - 1 values)."""
        for attempt in range(self.max_attempts - 1):
            yield self.delay_for(attempt, rng)

    def should_retry(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        description: str = "call",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """Await ``func`` until it succeeds or the attempts are exhausted.

        Non-retryable exceptions propagate immediately; the last retryable
        exception propagates once every attempt has failed.
        """
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return await func()
            except self.retry_on as e:
                if attempt >= attempts - 1:
                    logger.error(f"All {attempts} attempts failed for {description}: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retry {attempt + 1}/{attempts} for {description} "
                    f"after {delay:.2f}s. Error: {e}"
                )
                await sleep(delay)
        raise RuntimeError("unreachable")
