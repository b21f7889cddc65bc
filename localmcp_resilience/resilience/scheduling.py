"""
Single cooperative timer loop for periodic resilience jobs.

Jobs (health checks, backups) run sequentially inside one asyncio task.
`stop()` signals shutdown, cancels the task and waits for it, so once it
returns no job can fire again.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from localmcp_resilience.utils.logger import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass
class _ScheduledJob:
    name: str
    interval: float
    func: Job
    next_run: float = 0.0
    runs: int = 0


class IntervalScheduler:
    """Runs named jobs at fixed intervals from one background task."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._jobs: Dict[str, _ScheduledJob] = {}
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    def add_job(self, name: str, interval: float, func: Job) -> None:
        if interval <= 0:
            raise ValueError(f"interval for job '{name}' must be positive")
        job = _ScheduledJob(name=name, interval=interval, func=func)
        if self.running:
            job.next_run = self._clock() + interval
        self._jobs[name] = job

    def runs(self, name: str) -> int:
        job = self._jobs.get(name)
        return job.runs if job else 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        now = self._clock()
        for job in self._jobs.values():
            job.next_run = now + job.interval
        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._scheduler_loop(), name="resilience-interval-scheduler"
        )
        logger.info("scheduler_started", jobs=list(self._jobs))

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("scheduler_stopped")

    async def _scheduler_loop(self) -> None:
        assert self._shutdown_event is not None
        shutdown = self._shutdown_event

        while not shutdown.is_set():
            for job in list(self._jobs.values()):
                if shutdown.is_set():
                    break
                if job.next_run <= self._clock():
                    await self._run_job(job)
                    job.next_run += job.interval
                    # Skip missed ticks rather than bursting to catch up
                    if job.next_run <= self._clock():
                        job.next_run = self._clock() + job.interval

            timeout = None
            if self._jobs:
                next_due = min(job.next_run for job in self._jobs.values())
                timeout = max(0.0, next_due - self._clock())
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=timeout)
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass

    async def _run_job(self, job: _ScheduledJob) -> None:
        job.runs += 1
        try:
            await job.func()
        except Exception as e:  # noqa: BLE001 - a failing job must not kill the loop
            logger.error("scheduled_job_failed", job=job.name, error=str(e), exc_info=True)
