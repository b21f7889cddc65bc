from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from localmcp_resilience.utils.logger import get_logger

from ..callables import Operation, run_attempt
from ..errors import RetryExhaustedError
from ..events import EventBus, RetryAttempt, RetryExhausted
from ..monitoring.metrics import resilience_metrics
from .backoff import jittered_delay
from .strategies import ExponentialBackoffStrategy

logger = get_logger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
RetryHook = Callable[[int, float, BaseException], None]


def _retry_everything(exc: BaseException) -> bool:
    return isinstance(exc, Exception)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: T
    attempts: int


class RetryPolicy:
    """
    Bounded attempt loop with exponential backoff and proportional jitter.

    The wait after failed attempt `i` is
    `min(base * 2 ** (i - 1) + jitter, max_delay)` with jitter drawn from
    `[0, 0.1 * base * 2 ** (i - 1)]`. Waiting uses `asyncio.sleep` and never
    holds a lock. If waiting would cross `overall_deadline` the loop gives up
    immediately instead of sleeping through a partial backoff.
    """

    def __init__(
        self,
        events: Optional[EventBus] = None,
        *,
        jitter_ratio: float = 0.1,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._events = events
        self._jitter_ratio = jitter_ratio
        self._rng = rng
        self._sleep = sleep
        self._clock = clock

    def deadline_after(self, seconds: float) -> float:
        """Absolute deadline `seconds` from now, on this policy's clock."""
        return self._clock() + seconds

    def compute_delay(self, attempt: int, base_delay: float, max_delay: float) -> float:
        strategy = ExponentialBackoffStrategy(
            base_delay_seconds=base_delay, max_delay_seconds=max_delay
        )
        return jittered_delay(
            strategy.uncapped(attempt), max_delay, self._jitter_ratio, self._rng
        )

    async def run(
        self,
        op: Operation[T],
        *,
        operation_name: str = "operation",
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        overall_deadline: Optional[float] = None,
        attempt_timeout: Optional[float] = None,
        retry_on: Optional[RetryPredicate] = None,
        on_retry: Optional[RetryHook] = None,
    ) -> RetryOutcome[T]:
        """Drive the attempt loop and report how many attempts it took."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        should_retry = retry_on or _retry_everything

        attempt = 1
        while True:
            try:
                value = await run_attempt(operation_name, op, attempt_timeout)
                return RetryOutcome(value=value, attempts=attempt)
            except Exception as exc:
                if not should_retry(exc):
                    logger.info(
                        "retry_skipped_non_retryable",
                        operation=operation_name,
                        attempt=attempt,
                        error=str(exc),
                    )
                    raise

                if attempt >= max_attempts:
                    raise self._exhausted(operation_name, attempt, exc) from exc

                delay = self.compute_delay(attempt, base_delay, max_delay)
                if (
                    overall_deadline is not None
                    and self._clock() + delay > overall_deadline
                ):
                    logger.warning(
                        "retry_deadline_exceeded",
                        operation=operation_name,
                        attempt=attempt,
                        next_delay_s=round(delay, 3),
                    )
                    raise self._exhausted(operation_name, attempt, exc) from exc

                logger.warning(
                    "retry_attempt",
                    operation=operation_name,
                    attempt=attempt,
                    next_delay_s=round(delay, 3),
                    error=str(exc),
                )
                resilience_metrics.inc_retry(operation_name)
                if on_retry is not None:
                    on_retry(attempt, delay, exc)
                if self._events is not None:
                    self._events.emit(
                        RetryAttempt(operation=operation_name, attempt=attempt, delay=delay)
                    )

                await (self._sleep or asyncio.sleep)(delay)
                attempt += 1

    async def execute_with_retry(
        self,
        op: Operation[T],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        overall_deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> T:
        """Run `op` under the policy and return its result."""
        outcome = await self.run(
            op,
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            overall_deadline=overall_deadline,
            **kwargs,
        )
        return outcome.value

    def _exhausted(
        self, operation_name: str, attempts: int, exc: BaseException
    ) -> RetryExhaustedError:
        logger.error(
            "retry_exhausted",
            operation=operation_name,
            attempts=attempts,
            error=str(exc),
        )
        resilience_metrics.inc_exhausted(operation_name)
        if self._events is not None:
            self._events.emit(RetryExhausted(operation=operation_name, attempts=attempts))
        return RetryExhaustedError(operation_name, attempts, exc)
