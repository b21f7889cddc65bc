import asyncio

import pytest

from localmcp_resilience.resilience.scheduling import IntervalScheduler

pytestmark = pytest.mark.asyncio


async def test_jobs_fire_on_interval_and_stop_is_final():
    scheduler = IntervalScheduler()
    ticks = []

    async def job():
        ticks.append("tick")

    scheduler.add_job("health_check", 0.01, job)
    await scheduler.start()
    await asyncio.sleep(0.06)
    await scheduler.stop()

    fired = len(ticks)
    assert fired >= 2
    assert not scheduler.running

    await asyncio.sleep(0.05)
    assert len(ticks) == fired


async def test_failing_job_does_not_kill_loop():
    scheduler = IntervalScheduler()
    calls = {"n": 0}

    async def flaky():
        calls["n"] += 1
        raise RuntimeError("boom")

    scheduler.add_job("backup", 0.01, flaky)
    await scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert calls["n"] >= 2
    assert scheduler.runs("backup") == calls["n"]


async def test_stop_cancels_job_in_progress():
    scheduler = IntervalScheduler()
    started = asyncio.Event()
    finished = []

    async def slow():
        started.set()
        await asyncio.sleep(10)
        finished.append(True)

    scheduler.add_job("slow", 0.01, slow)
    await scheduler.start()
    await asyncio.wait_for(started.wait(), timeout=1)
    await scheduler.stop()

    assert finished == []


async def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        IntervalScheduler().add_job("bad", 0, lambda: None)


async def test_stop_without_start_is_noop():
    await IntervalScheduler().stop()
