"""Helpers for invoking caller-supplied operations, probes and providers."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from .errors import OperationTimeoutError

T = TypeVar("T")

Operation = Callable[[], Union[T, Awaitable[T]]]


async def invoke(func: Callable[[], Any]) -> Any:
    """Call a sync or async zero-arg callable and return its result."""
    result = func()
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_attempt(
    operation_name: str, func: Callable[[], Any], timeout: Optional[float]
) -> Any:
    """Run one attempt, bounded by `timeout` seconds when given."""
    if timeout is None:
        return await invoke(func)
    try:
        return await asyncio.wait_for(invoke(func), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutError(operation_name, timeout) from exc
