"""
Dependency health polling.

Each cycle invokes every registered probe with a bounded timeout and folds
the result into that service's `ServiceHealthRecord`:

- success -> consecutive failures reset, status HEALTHY
- failure -> consecutive failures + 1, status DEGRADED, or CRITICAL once the
  configured threshold is reached

A probe fails when it returns a falsy value, raises, or times out. Status
changes (and only changes) are published as `ServiceHealthChanged`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from localmcp_resilience.utils.logger import get_logger

from ..callables import invoke
from ..errors import ProbeError
from ..events import EventBus, HealthCheckCompleted, ServiceHealthChanged
from .metrics import resilience_metrics

logger = get_logger(__name__)

Probe = Callable[[], Union[bool, Awaitable[bool]]]


class HealthStatus(str, Enum):
    """Health status levels"""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


# Higher is worse
_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.UNKNOWN: 1,
    HealthStatus.DEGRADED: 2,
    HealthStatus.CRITICAL: 3,
}


def worst_status(statuses: List[HealthStatus]) -> HealthStatus:
    if not statuses:
        return HealthStatus.HEALTHY
    return max(statuses, key=_SEVERITY.__getitem__)


@dataclass
class ServiceHealthRecord:
    """Health of a registered dependency"""

    service_name: str
    status: HealthStatus = HealthStatus.UNKNOWN
    consecutive_failures: int = 0
    last_checked_at: Optional[datetime] = None
    last_error: Optional[str] = None
    response_time_ms: Optional[float] = None
    success_count: int = 0
    error_count: int = 0


@dataclass
class HealthCycleReport:
    """Summary of one health-check cycle"""

    status: HealthStatus
    records: List[ServiceHealthRecord] = field(default_factory=list)
    failures: int = 0


@dataclass
class _Registration:
    probe: Probe
    record: ServiceHealthRecord
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HealthMonitor:
    """Polls registered probes and maintains per-service health records."""

    def __init__(
        self,
        events: Optional[EventBus] = None,
        *,
        probe_timeout: float = 5.0,
        critical_threshold: int = 3,
    ) -> None:
        if critical_threshold < 1:
            raise ValueError("critical_threshold must be >= 1")
        self.probe_timeout = probe_timeout
        self.critical_threshold = critical_threshold
        self._events = events
        self._services: Dict[str, _Registration] = {}

    def register(self, name: str, probe: Probe) -> None:
        """Register (or replace) the probe for `name`; a new record starts UNKNOWN."""
        existing = self._services.get(name)
        if existing is not None:
            existing.probe = probe
            return
        self._services[name] = _Registration(
            probe=probe, record=ServiceHealthRecord(service_name=name)
        )
        resilience_metrics.set_health(name, HealthStatus.UNKNOWN)

    def unregister(self, name: str) -> bool:
        removed = self._services.pop(name, None)
        if removed is not None:
            resilience_metrics.forget_service(name)
        return removed is not None

    def get(self, name: str) -> ServiceHealthRecord:
        """Copy of the record for `name`; UNKNOWN if not registered."""
        registration = self._services.get(name)
        if registration is None:
            return ServiceHealthRecord(service_name=name)
        return dataclasses.replace(registration.record)

    def records(self) -> List[ServiceHealthRecord]:
        return [dataclasses.replace(r.record) for r in self._services.values()]

    async def run_cycle(self) -> HealthCycleReport:
        """Check every registered service once, concurrently."""
        names = list(self._services)
        results = await asyncio.gather(*(self._check(name) for name in names))

        records = [record for record, _ in results if record is not None]
        failures = sum(1 for _, failed in results if failed)
        status = worst_status([r.status for r in records])

        logger.info(
            "health_check_completed",
            status=status.value,
            services=len(records),
            failures=failures,
        )
        if self._events is not None:
            self._events.emit(HealthCheckCompleted(status=status.value))
        return HealthCycleReport(status=status, records=records, failures=failures)

    async def _check(self, name: str) -> tuple[Optional[ServiceHealthRecord], bool]:
        registration = self._services.get(name)
        if registration is None:
            return None, False

        async with registration.lock:
            started = time.perf_counter()
            error: Optional[ProbeError] = None
            try:
                healthy = await asyncio.wait_for(
                    invoke(registration.probe), timeout=self.probe_timeout
                )
                if not healthy:
                    error = ProbeError(name, "probe reported unhealthy")
            except asyncio.TimeoutError:
                error = ProbeError(name, f"probe timed out after {self.probe_timeout}s")
            except Exception as exc:  # noqa: BLE001 - probe failures are data
                error = ProbeError(name, f"{type(exc).__name__}: {exc}")
            elapsed_ms = (time.perf_counter() - started) * 1000

            # Unregistered while the probe was running
            if self._services.get(name) is not registration:
                return None, False

            record = registration.record
            old_status = record.status
            record.last_checked_at = datetime.now(timezone.utc)
            record.response_time_ms = elapsed_ms

            if error is None:
                record.consecutive_failures = 0
                record.success_count += 1
                record.status = HealthStatus.HEALTHY
            else:
                record.consecutive_failures += 1
                record.error_count += 1
                record.last_error = error.reason
                record.status = (
                    HealthStatus.CRITICAL
                    if record.consecutive_failures >= self.critical_threshold
                    else HealthStatus.DEGRADED
                )
                logger.warning(
                    "health_probe_failed",
                    service=name,
                    consecutive_failures=record.consecutive_failures,
                    error=error.reason,
                )

            if record.status is not old_status:
                self._status_changed(name, old_status, record.status)

            return dataclasses.replace(record), error is not None

    def _status_changed(
        self, name: str, old_status: HealthStatus, new_status: HealthStatus
    ) -> None:
        resilience_metrics.set_health(name, new_status)
        logger.info(
            "service_health_changed",
            service=name,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        if self._events is not None:
            self._events.emit(
                ServiceHealthChanged(
                    service_name=name,
                    old_status=old_status.value,
                    new_status=new_status.value,
                )
            )
