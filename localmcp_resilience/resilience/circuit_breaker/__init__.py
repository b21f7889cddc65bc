from .policies import FailureClassifier, FailureThresholdPolicy
from .registry import CircuitBreakerRegistry, CircuitState, OperationState

__all__ = [
    "CircuitBreakerRegistry",
    "CircuitState",
    "OperationState",
    "FailureClassifier",
    "FailureThresholdPolicy",
]
