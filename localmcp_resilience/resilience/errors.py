"""
Error taxonomy for the resilience layer.

Callers of `execute_with_resilience` only ever see the operation's own error
or one of `CircuitOpenError`, `RetryExhaustedError`, `OperationTimeoutError`.
`ProbeError` and `BackupError` stay inside their subsystems and are surfaced
through events, health records and stats.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(str, Enum):
    """Error severity levels for categorization and alerting"""

    LOW = "low"  # Logging only
    MEDIUM = "medium"  # Worth a metric/alert
    HIGH = "high"  # Needs attention


class ErrorCategory(str, Enum):
    """Error categories for systematic handling"""

    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    RETRY_EXHAUSTED = "retry_exhausted"
    HEALTH_PROBE = "health_probe"
    BACKUP = "backup"


class ResilienceError(Exception):
    """Base exception for resilience errors"""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_message": str(self),
            "severity": self.severity.value,
            "category": self.category.value,
            "technical_details": self.technical_details,
        }


class TransientError(ResilienceError):
    """Retryable failure (network/timeout class). Raised by callers to mark an error as transient."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.TRANSIENT)
        super().__init__(message, **kwargs)


class OperationTimeoutError(TransientError):
    """A single attempt exceeded its timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout:.3f}s",
            category=ErrorCategory.TIMEOUT,
            technical_details={"operation": operation, "timeout_s": timeout},
        )
        self.operation = operation
        self.timeout = timeout


class CircuitOpenError(ResilienceError):
    """Raised without invoking the operation when its circuit rejects the call."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            f"Circuit breaker is {state} for operation: {operation}",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CIRCUIT_OPEN,
            technical_details={"operation": operation, "state": state},
        )
        self.operation = operation
        self.state = state


class RetryExhaustedError(ResilienceError):
    """All attempts failed; wraps the last underlying error."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempt(s): {last_error}",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.RETRY_EXHAUSTED,
            technical_details={
                "operation": operation,
                "attempts": attempts,
                "last_error": repr(last_error),
            },
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class ProbeError(ResilienceError):
    """Health probe failure. Non-fatal."""

    def __init__(self, service_name: str, reason: str):
        super().__init__(
            f"Health probe for '{service_name}' failed: {reason}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.HEALTH_PROBE,
            technical_details={"service_name": service_name},
        )
        self.service_name = service_name
        self.reason = reason


class BackupError(ResilienceError):
    """Backup provider failure. Non-fatal."""

    def __init__(self, source_config_id: str, reason: str):
        super().__init__(
            f"Backup '{source_config_id}' failed: {reason}",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.BACKUP,
            technical_details={"source_config_id": source_config_id},
        )
        self.source_config_id = source_config_id
        self.reason = reason
