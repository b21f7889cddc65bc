from .health import (
    HealthCycleReport,
    HealthMonitor,
    HealthStatus,
    ServiceHealthRecord,
    worst_status,
)
from .metrics import resilience_metrics
from .probes import callable_probe, redis_ping_probe

__all__ = [
    "HealthMonitor",
    "HealthStatus",
    "HealthCycleReport",
    "ServiceHealthRecord",
    "worst_status",
    "redis_ping_probe",
    "callable_probe",
    "resilience_metrics",
]
