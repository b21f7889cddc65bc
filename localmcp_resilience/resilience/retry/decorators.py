from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Optional, Sequence, Type, Union

from ..events import EventBus
from .policy import RetryPolicy

ExceptionTypes = Union[Type[BaseException], Sequence[Type[BaseException]]]


def retry(
    max_attempts: int = 3,
    exceptions: ExceptionTypes = (Exception,),
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    attempt_timeout: Optional[float] = None,
    events: Optional[EventBus] = None,
    policy: Optional[RetryPolicy] = None,
):
    """
    Retry decorator for async callables.

    - Retries on the given exception types; anything else propagates as-is.
    - Exponential backoff with proportional jitter via `RetryPolicy`.
    - Raises `RetryExhaustedError` once attempts run out.
    """
    exc_types = exceptions if isinstance(exceptions, tuple) else (
        (exceptions,) if isinstance(exceptions, type) else tuple(exceptions)
    )
    retry_policy = policy or RetryPolicy(events)

    def decorator(func: Callable[..., Any]):
        if not inspect.iscoroutinefunction(func):
            raise TypeError("@retry only supports async callables")

        name = getattr(func, "__qualname__", getattr(func, "__name__", "unknown"))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any):
            return await retry_policy.execute_with_retry(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                operation_name=name,
                attempt_timeout=attempt_timeout,
                retry_on=lambda exc: isinstance(exc, exc_types),
            )

        return wrapper

    return decorator
