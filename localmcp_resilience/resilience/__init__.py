"""
Resilience layer: retries, per-operation circuit breakers, dependency health
polling and scheduled backups, coordinated by `ResilienceCoordinator`.

All modules are async-first, structured-logging enabled, and export
Prometheus metrics. Defaults come from `localmcp_resilience.core.config`.
"""

from .backup import BackupOutcome, BackupRecord, BackupScheduler
from .circuit_breaker import CircuitBreakerRegistry, CircuitState, OperationState
from .coordinator import (
    ExecutionOptions,
    ResilienceConfig,
    ResilienceCoordinator,
    ResilienceStats,
    ResilienceStatus,
)
from .errors import (
    BackupError,
    CircuitOpenError,
    OperationTimeoutError,
    ProbeError,
    ResilienceError,
    RetryExhaustedError,
    TransientError,
)
from .events import EventBus, ResilienceEvent
from .monitoring import HealthMonitor, HealthStatus, ServiceHealthRecord
from .retry import RetryPolicy, retry
from .scheduling import IntervalScheduler

__all__ = [
    "ResilienceCoordinator",
    "ResilienceConfig",
    "ExecutionOptions",
    "ResilienceStats",
    "ResilienceStatus",
    "CircuitBreakerRegistry",
    "CircuitState",
    "OperationState",
    "RetryPolicy",
    "retry",
    "HealthMonitor",
    "HealthStatus",
    "ServiceHealthRecord",
    "BackupScheduler",
    "BackupRecord",
    "BackupOutcome",
    "IntervalScheduler",
    "EventBus",
    "ResilienceEvent",
    "ResilienceError",
    "TransientError",
    "OperationTimeoutError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "ProbeError",
    "BackupError",
]
