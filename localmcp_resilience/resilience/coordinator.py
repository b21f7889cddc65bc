"""
Resilience coordinator.

Wraps caller-supplied operations with circuit breaking and bounded retries,
owns the process-wide statistics, and drives the health monitor and backup
scheduler from one interval scheduler.

Composition for `execute_with_resilience`:

    breaker gate (per operation name)
        -> retry loop (each attempt bounded by the per-attempt timeout)
    <- aggregate outcome of the whole retry sequence reported to the breaker

so a call that needed internal retries counts as one success or one failure
for its circuit.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from localmcp_resilience.core.config import Settings, settings
from localmcp_resilience.utils.logger import add_operation_context, get_logger

from .backup import BackupProvider, BackupScheduler
from .callables import Operation, run_attempt
from .circuit_breaker import CircuitBreakerRegistry, CircuitState, OperationState
from .circuit_breaker.policies import FailurePredicate, ResultPredicate
from .errors import CircuitOpenError, ResilienceError, RetryExhaustedError
from .events import (
    EventBus,
    OperationFailed,
    OverallStatusChanged,
    ServiceRegistered,
    ServiceStarted,
    ServiceStopped,
    ServiceUnregistered,
)
from .monitoring import HealthMonitor, HealthStatus, ServiceHealthRecord
from .monitoring.health import Probe
from .monitoring.metrics import resilience_metrics
from .retry import RetryPolicy
from .retry.policy import RetryPredicate
from .scheduling import IntervalScheduler

logger = get_logger(__name__)

# Overall status shares the health vocabulary
ResilienceStatus = HealthStatus


def _seconds(ms: Optional[float]) -> Optional[float]:
    return None if ms is None else ms / 1000.0


@dataclass
class ResilienceConfig:
    """Per-coordinator configuration. Durations are milliseconds."""

    enabled: bool = True
    retry_enabled: bool = True
    circuit_breaker_enabled: bool = True
    health_check_enabled: bool = True
    backup_enabled: bool = True
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    retry_max_delay_ms: int = 30_000
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 30_000
    health_check_interval_ms: int = 30_000
    backup_interval_ms: int = 3_600_000
    operation_timeout_ms: int = 10_000
    health_probe_timeout_ms: int = 5_000
    health_critical_threshold: int = 3
    shutdown_grace_ms: int = 5_000

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ResilienceConfig":
        s = source or settings
        return cls(
            enabled=s.ENABLED,
            retry_enabled=s.RETRY_ENABLED,
            circuit_breaker_enabled=s.CIRCUIT_BREAKER_ENABLED,
            health_check_enabled=s.HEALTH_CHECK_ENABLED,
            backup_enabled=s.BACKUP_ENABLED,
            retry_attempts=s.RETRY_ATTEMPTS,
            retry_delay_ms=s.RETRY_DELAY_MS,
            retry_max_delay_ms=s.RETRY_MAX_DELAY_MS,
            circuit_breaker_threshold=s.CIRCUIT_BREAKER_THRESHOLD,
            circuit_breaker_timeout_ms=s.CIRCUIT_BREAKER_TIMEOUT_MS,
            health_check_interval_ms=s.HEALTH_CHECK_INTERVAL_MS,
            backup_interval_ms=s.BACKUP_INTERVAL_MS,
            operation_timeout_ms=s.OPERATION_TIMEOUT_MS,
            health_probe_timeout_ms=s.HEALTH_PROBE_TIMEOUT_MS,
            health_critical_threshold=s.HEALTH_CRITICAL_THRESHOLD,
            shutdown_grace_ms=s.SHUTDOWN_GRACE_MS,
        )


@dataclass
class ExecutionOptions:
    """Per-call overrides; `None` falls back to the coordinator config."""

    retry: Optional[bool] = None
    circuit_breaker: Optional[bool] = None
    timeout_ms: Optional[int] = None
    max_attempts: Optional[int] = None
    base_delay_ms: Optional[int] = None
    max_delay_ms: Optional[int] = None
    deadline_ms: Optional[int] = None
    retry_on: Optional[RetryPredicate] = None
    is_failure: Optional[FailurePredicate] = None
    result_is_failure: Optional[ResultPredicate] = None


@dataclass(frozen=True)
class ResilienceStats:
    total_operations: int = 0
    total_failures: int = 0
    total_retries: int = 0
    successful_retries: int = 0
    failed_retries: int = 0
    circuit_breaker_trips: int = 0
    circuit_breaker_resets: int = 0
    health_check_failures: int = 0
    services_healthy: int = 0
    services_degraded: int = 0
    services_critical: int = 0
    backup_operations: int = 0
    backup_failures: int = 0
    last_backup_at: Optional[datetime] = None


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_operations": 0,
        "total_failures": 0,
        "total_retries": 0,
        "successful_retries": 0,
        "failed_retries": 0,
        "circuit_breaker_trips": 0,
        "circuit_breaker_resets": 0,
        "health_check_failures": 0,
        "services_healthy": 0,
        "services_degraded": 0,
        "services_critical": 0,
        "backup_operations": 0,
        "backup_failures": 0,
        "last_backup_at": None,
    }


class ResilienceCoordinator:
    """Public entry point of the resilience layer."""

    def __init__(
        self,
        config: Optional[ResilienceConfig] = None,
        *,
        events: Optional[EventBus] = None,
        retry_policy: Optional[RetryPolicy] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        health_monitor: Optional[HealthMonitor] = None,
        backup_scheduler: Optional[BackupScheduler] = None,
        scheduler: Optional[IntervalScheduler] = None,
    ) -> None:
        self.config = config or ResilienceConfig.from_settings()
        self.events = events or EventBus()
        cfg = self.config

        self._retry = retry_policy or RetryPolicy(self.events)
        self._breakers = breakers or CircuitBreakerRegistry(
            self.events,
            threshold=cfg.circuit_breaker_threshold,
            timeout=_seconds(cfg.circuit_breaker_timeout_ms),
        )
        # Chain any hook already set on an injected registry
        self._inner_transition_hook = self._breakers.on_transition
        self._breakers.on_transition = self._on_circuit_transition
        self._health = health_monitor or HealthMonitor(
            self.events,
            probe_timeout=_seconds(cfg.health_probe_timeout_ms),
            critical_threshold=cfg.health_critical_threshold,
        )
        self._backups = backup_scheduler or BackupScheduler(self.events)
        self._scheduler = scheduler or IntervalScheduler()

        self._stats = _empty_stats()
        self._status = ResilienceStatus.UNKNOWN
        self._running = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # -- call path -----------------------------------------------------------

    async def execute_with_resilience(
        self,
        operation_name: str,
        operation: Operation[Any],
        options: Optional[ExecutionOptions] = None,
    ) -> Any:
        """
        Run `operation` under the configured resilience features.

        Returns the operation's result, or raises `CircuitOpenError`,
        `RetryExhaustedError`, `OperationTimeoutError` or the operation's own
        (non-retryable) error.
        """
        opts = options or ExecutionOptions()
        cfg = self.config
        use_breaker = cfg.enabled and (
            cfg.circuit_breaker_enabled if opts.circuit_breaker is None else opts.circuit_breaker
        )
        use_retry = cfg.enabled and (
            cfg.retry_enabled if opts.retry is None else opts.retry
        )
        deadline = None
        if opts.deadline_ms is not None:
            deadline = self._retry.deadline_after(opts.deadline_ms / 1000.0)

        log = logger.bind(**add_operation_context(operation_name))
        self._stats["total_operations"] += 1
        self._in_flight += 1
        self._idle.clear()
        try:
            attempts = functools.partial(
                self._run_attempts, operation_name, operation, opts, use_retry, deadline
            )
            if use_breaker:
                result = await self._breakers.wrap(
                    operation_name,
                    attempts,
                    is_failure=self._breaker_classifier(opts.is_failure),
                    result_is_failure=opts.result_is_failure,
                )
            else:
                result = await attempts()
        except Exception as exc:
            self._stats["total_failures"] += 1
            if isinstance(exc, RetryExhaustedError):
                self._stats["failed_retries"] += 1
            outcome = "rejected" if isinstance(exc, CircuitOpenError) else "failure"
            resilience_metrics.inc_operation(operation_name, outcome)
            if isinstance(exc, ResilienceError):
                log.error("operation_failed", **exc.to_dict())
            else:
                log.error("operation_failed", error=str(exc), error_type=type(exc).__name__)
            self.events.emit(OperationFailed(operation=operation_name, error=exc))
            raise
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

        resilience_metrics.inc_operation(operation_name, "success")
        return result

    async def _run_attempts(
        self,
        operation_name: str,
        operation: Operation[Any],
        opts: ExecutionOptions,
        use_retry: bool,
        deadline: Optional[float],
    ) -> Any:
        cfg = self.config
        timeout = _seconds(
            cfg.operation_timeout_ms if opts.timeout_ms is None else opts.timeout_ms
        )
        if not use_retry:
            return await run_attempt(operation_name, operation, timeout)

        outcome = await self._retry.run(
            operation,
            operation_name=operation_name,
            max_attempts=opts.max_attempts or cfg.retry_attempts,
            base_delay=_seconds(
                cfg.retry_delay_ms if opts.base_delay_ms is None else opts.base_delay_ms
            ),
            max_delay=_seconds(
                cfg.retry_max_delay_ms if opts.max_delay_ms is None else opts.max_delay_ms
            ),
            overall_deadline=deadline,
            attempt_timeout=timeout,
            retry_on=opts.retry_on,
            on_retry=self._count_retry,
        )
        if outcome.attempts > 1:
            self._stats["successful_retries"] += 1
        return outcome.value

    @staticmethod
    def _breaker_classifier(
        is_failure: Optional[FailurePredicate],
    ) -> Optional[FailurePredicate]:
        # Exhausted retries are judged by the error that ended the sequence
        if is_failure is None:
            return None

        def classify(exc: BaseException) -> bool:
            if isinstance(exc, RetryExhaustedError):
                return is_failure(exc.last_error)
            return is_failure(exc)

        return classify

    def _count_retry(self, attempt: int, delay: float, error: BaseException) -> None:
        self._stats["total_retries"] += 1

    def _on_circuit_transition(
        self, operation: str, old: CircuitState, new: CircuitState
    ) -> None:
        if new is CircuitState.OPEN:
            self._stats["circuit_breaker_trips"] += 1
        elif new is CircuitState.CLOSED:
            self._stats["circuit_breaker_resets"] += 1
        if self._inner_transition_hook is not None:
            self._inner_transition_hook(operation, old, new)

    # -- services ------------------------------------------------------------

    def register_service(self, name: str, probe: Probe) -> None:
        self._health.register(name, probe)
        logger.info("service_registered", service=name)
        self.events.emit(ServiceRegistered(service_name=name))

    def unregister_service(self, name: str) -> None:
        if self._health.unregister(name):
            logger.info("service_unregistered", service=name)
            self._update_service_counts(self._health.records())
            self.events.emit(ServiceUnregistered(service_name=name))

    def get_service_health(self, name: str) -> ServiceHealthRecord:
        return self._health.get(name)

    def get_all_service_health(self) -> List[ServiceHealthRecord]:
        return self._health.records()

    def register_backup_provider(self, config_id: str, provider: BackupProvider) -> None:
        self._backups.register(config_id, provider)

    def unregister_backup_provider(self, config_id: str) -> None:
        self._backups.unregister(config_id)

    # -- observation ---------------------------------------------------------

    def get_stats(self) -> ResilienceStats:
        return ResilienceStats(**self._stats)

    def reset_stats(self) -> None:
        self._stats = _empty_stats()

    def get_status(self) -> ResilienceStatus:
        return self._status

    def get_circuit_state(self, operation_name: str) -> OperationState:
        return self._breakers.get_state(operation_name)

    def get_circuit_states(self) -> Dict[str, OperationState]:
        return self._breakers.states()

    async def reset_circuit(self, operation_name: str) -> None:
        """Force one circuit closed."""
        await self._breakers.reset(operation_name)

    async def reset_all_circuits(self) -> None:
        await self._breakers.reset_all()

    @property
    def is_running(self) -> bool:
        return self._running

    # -- out-of-band cycles --------------------------------------------------

    async def perform_health_check(self) -> None:
        """Run one health-monitor cycle now."""
        if not (self.config.enabled and self.config.health_check_enabled):
            return
        report = await self._health.run_cycle()
        self._stats["health_check_failures"] += report.failures
        self._update_service_counts(report.records)
        self._update_overall_status(report.status)

    def _update_service_counts(self, records: List[ServiceHealthRecord]) -> None:
        statuses = [r.status for r in records]
        self._stats["services_healthy"] = statuses.count(HealthStatus.HEALTHY)
        self._stats["services_degraded"] = statuses.count(HealthStatus.DEGRADED)
        self._stats["services_critical"] = statuses.count(HealthStatus.CRITICAL)

    async def perform_backup(self) -> None:
        """Run one backup cycle now. Provider failures never propagate."""
        if not (self.config.enabled and self.config.backup_enabled):
            return
        for record in await self._backups.run_cycle():
            if record.succeeded:
                self._stats["backup_operations"] += 1
                self._stats["last_backup_at"] = record.timestamp
            else:
                self._stats["backup_failures"] += 1

    def _update_overall_status(self, status: ResilienceStatus) -> None:
        old_status = self._status
        self._status = status
        if old_status is not status:
            logger.info(
                "overall_status_changed",
                old_status=old_status.value,
                new_status=status.value,
            )
            self.events.emit(
                OverallStatusChanged(old_status=old_status.value, new_status=status.value)
            )

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        cfg = self.config
        if not cfg.enabled:
            logger.info("resilience_disabled")
            return

        self._running = True
        try:
            await self.perform_health_check()
            if cfg.health_check_enabled:
                self._scheduler.add_job(
                    "health_check",
                    _seconds(cfg.health_check_interval_ms),
                    self.perform_health_check,
                )
            if cfg.backup_enabled:
                self._scheduler.add_job(
                    "backup", _seconds(cfg.backup_interval_ms), self.perform_backup
                )
            await self._scheduler.start()
        except Exception:
            self._running = False
            logger.error("resilience_start_failed", exc_info=True)
            raise

        logger.info("resilience_started")
        self.events.emit(ServiceStarted())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        await self._scheduler.stop()

        if self._in_flight:
            grace = _seconds(self.config.shutdown_grace_ms)
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(
                    "shutdown_grace_elapsed", in_flight=self._in_flight, grace_s=grace
                )

        logger.info("resilience_stopped")
        self.events.emit(ServiceStopped())
