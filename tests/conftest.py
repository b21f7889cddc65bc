from typing import List, Type

import pytest

from localmcp_resilience.resilience.events import EventBus, ResilienceEvent


class FakeClock:
    """Manually advanced clock for breaker timeouts."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    def __init__(self, bus: EventBus):
        self.events: List[ResilienceEvent] = []
        bus.subscribe(ResilienceEvent, self.events.append)

    def of(self, event_type: Type[ResilienceEvent]) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleep stand-in that records requested delays."""
    delays: List[float] = []

    async def sleeper(delay: float) -> None:
        delays.append(delay)

    sleeper.delays = delays
    return sleeper
