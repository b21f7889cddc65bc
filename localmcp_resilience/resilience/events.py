"""
Typed lifecycle events and the in-process event bus.

Each event kind is a frozen dataclass; subscribers register for a class and
receive instances of it (and of its subclasses). Delivery is synchronous, in
registration order, and a raising subscriber never affects the emitter or
the remaining subscribers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, List, Optional, Tuple, Type, TypeVar

from localmcp_resilience.utils.logger import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound="ResilienceEvent")


@dataclass(frozen=True)
class ResilienceEvent:
    kind: ClassVar[str] = "resilience_event"


@dataclass(frozen=True)
class ServiceStarted(ResilienceEvent):
    kind: ClassVar[str] = "service_started"


@dataclass(frozen=True)
class ServiceStopped(ResilienceEvent):
    kind: ClassVar[str] = "service_stopped"


@dataclass(frozen=True)
class OperationFailed(ResilienceEvent):
    kind: ClassVar[str] = "operation_failed"

    operation: str
    error: BaseException


@dataclass(frozen=True)
class RetryAttempt(ResilienceEvent):
    kind: ClassVar[str] = "retry_attempt"

    operation: str
    attempt: int
    delay: float  # seconds


@dataclass(frozen=True)
class RetryExhausted(ResilienceEvent):
    kind: ClassVar[str] = "retry_exhausted"

    operation: str
    attempts: int


@dataclass(frozen=True)
class CircuitBreakerOpened(ResilienceEvent):
    kind: ClassVar[str] = "circuit_breaker_opened"

    operation: str
    failure_count: int


@dataclass(frozen=True)
class CircuitBreakerReset(ResilienceEvent):
    kind: ClassVar[str] = "circuit_breaker_reset"

    operation: str


@dataclass(frozen=True)
class CircuitBreakerStateChanged(ResilienceEvent):
    kind: ClassVar[str] = "circuit_breaker_state_changed"

    operation: str
    state: str


@dataclass(frozen=True)
class ServiceRegistered(ResilienceEvent):
    kind: ClassVar[str] = "service_registered"

    service_name: str


@dataclass(frozen=True)
class ServiceUnregistered(ResilienceEvent):
    kind: ClassVar[str] = "service_unregistered"

    service_name: str


@dataclass(frozen=True)
class ServiceHealthChanged(ResilienceEvent):
    kind: ClassVar[str] = "service_health_changed"

    service_name: str
    old_status: str
    new_status: str


@dataclass(frozen=True)
class HealthCheckCompleted(ResilienceEvent):
    kind: ClassVar[str] = "health_check_completed"

    status: str


@dataclass(frozen=True)
class OverallStatusChanged(ResilienceEvent):
    kind: ClassVar[str] = "overall_status_changed"

    old_status: str
    new_status: str


@dataclass(frozen=True)
class BackupCompleted(ResilienceEvent):
    kind: ClassVar[str] = "backup_completed"

    backup_id: str
    source_config_id: Optional[str] = None


@dataclass(frozen=True)
class BackupFailed(ResilienceEvent):
    kind: ClassVar[str] = "backup_failed"

    source_config_id: str
    error: BaseException


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous in-process publish/subscribe."""

    def __init__(self) -> None:
        self._subscribers: List[Tuple[Type[ResilienceEvent], Handler]] = []

    def subscribe(
        self, event_type: Type[E], handler: Callable[[E], None]
    ) -> Callable[[], None]:
        """Register `handler` for `event_type`. Returns an unsubscribe callable."""
        entry = (event_type, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, event: ResilienceEvent) -> None:
        # Snapshot so handlers may (un)subscribe during delivery
        for event_type, handler in list(self._subscribers):
            if not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception:  # noqa: BLE001 - subscribers are isolated
                logger.exception(
                    "event_subscriber_failed",
                    event=event.kind,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)
