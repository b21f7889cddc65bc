from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis

from localmcp_resilience.utils.logger import get_logger

from ..callables import invoke

logger = get_logger(__name__)


def redis_ping_probe(
    client: Optional[redis.Redis] = None,
    *,
    url: str = "redis://localhost:6379/0",
) -> Callable[[], Awaitable[bool]]:
    """
    Build a health probe that PINGs a Redis cache.

    The client is created lazily from `url` when none is given. Connection
    errors propagate so the monitor records them as the probe's last error.
    """
    state = {"client": client}

    async def probe() -> bool:
        if state["client"] is None:
            state["client"] = redis.from_url(
                url, encoding="utf-8", decode_responses=True
            )
            logger.debug("redis_probe_client_created", url=url)
        return bool(await state["client"].ping())

    return probe


def callable_probe(check: Callable[[], Any]) -> Callable[[], Awaitable[bool]]:
    """
    Adapt a check that signals trouble by raising into a health probe.

    Any return value counts as healthy, so `None`-returning pings and
    connection checks can be registered as-is.
    """

    async def probe() -> bool:
        await invoke(check)
        return True

    return probe
