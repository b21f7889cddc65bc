from __future__ import annotations

from prometheus_client import Counter, Gauge

_HEALTH = {
    "healthy": 0,
    "unknown": 1,
    "degraded": 2,
    "critical": 3,
}

_CIRCUIT = {
    "closed": 0,
    "half_open": 0.5,
    "open": 1,
}


class _ResilienceMetrics:
    def __init__(self) -> None:
        self.operations_total = Counter(
            "resilience_operations_total",
            "Operations executed under resilience, by outcome",
            ["operation", "outcome"],
        )
        self.retry_attempts_total = Counter(
            "resilience_retry_attempts_total",
            "Retries scheduled after a failed attempt",
            ["operation"],
        )
        self.retry_exhausted_total = Counter(
            "resilience_retry_exhausted_total",
            "Retry sequences that ran out of attempts or deadline",
            ["operation"],
        )
        self.circuit_state = Gauge(
            "resilience_circuit_state",
            "Circuit state per operation (0=closed,0.5=half_open,1=open)",
            ["operation"],
        )
        self.circuit_transitions_total = Counter(
            "resilience_circuit_transitions_total",
            "Circuit state transitions, by origin and target state",
            ["operation", "from_state", "to_state"],
        )
        self.circuit_outcomes_total = Counter(
            "resilience_circuit_outcomes_total",
            "Call outcomes recorded by the breaker (success, failure, rejected)",
            ["operation", "outcome"],
        )
        self.service_health = Gauge(
            "resilience_service_health_status",
            "Service health (0=healthy,1=unknown,2=degraded,3=critical)",
            ["service"],
        )
        self.backup_runs_total = Counter(
            "resilience_backup_runs_total",
            "Backup provider runs, by outcome",
            ["source", "outcome"],
        )

    def inc_operation(self, operation: str, outcome: str) -> None:
        self.operations_total.labels(operation=operation, outcome=outcome).inc()

    def inc_retry(self, operation: str) -> None:
        self.retry_attempts_total.labels(operation=operation).inc()

    def inc_exhausted(self, operation: str) -> None:
        self.retry_exhausted_total.labels(operation=operation).inc()

    def record_transition(self, operation: str, from_state, to_state) -> None:
        self.circuit_state.labels(operation=operation).set(_CIRCUIT[to_state.value])
        self.circuit_transitions_total.labels(
            operation=operation, from_state=from_state.value, to_state=to_state.value
        ).inc()

    def inc_circuit_outcome(self, operation: str, outcome: str) -> None:
        self.circuit_outcomes_total.labels(operation=operation, outcome=outcome).inc()

    def set_health(self, service: str, status) -> None:
        self.service_health.labels(service=service).set(_HEALTH[status.value])

    def forget_service(self, service: str) -> None:
        try:
            self.service_health.remove(service)
        except KeyError:
            pass

    def inc_backup(self, source: str, outcome: str) -> None:
        self.backup_runs_total.labels(source=source, outcome=outcome).inc()


resilience_metrics = _ResilienceMetrics()
