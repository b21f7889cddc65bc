from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from localmcp_resilience.utils.logger import get_logger

logger = get_logger(__name__)

FailurePredicate = Callable[[BaseException], bool]
ResultPredicate = Callable[[Any], bool]


@dataclass
class FailureThresholdPolicy:
    """
    Simple consecutive-failure threshold policy.

    When failure count reaches `threshold`, the circuit should OPEN.
    """

    threshold: int = 5

    def __post_init__(self) -> None:
        if self.threshold < 1:
            raise ValueError("threshold must be >= 1")

    def should_open(self, consecutive_failures: int) -> bool:
        return consecutive_failures >= self.threshold


@dataclass
class FailureClassifier:
    """
    Decides what counts as a circuit-relevant failure.

    `is_failure` classifies raised exceptions (default: any `Exception`),
    `result_is_failure` classifies returned values (default: never), e.g. a
    response with a 5xx status. A predicate that raises is logged and its
    call is counted as a failure, so breaker bookkeeping always completes.
    """

    is_failure: Optional[FailurePredicate] = None
    result_is_failure: Optional[ResultPredicate] = None

    def exception_counts(self, exc: BaseException) -> bool:
        if not isinstance(exc, Exception):
            return False
        if self.is_failure is None:
            return True
        return self._classify(self.is_failure, exc)

    def result_counts(self, result: Any) -> bool:
        if self.result_is_failure is None:
            return False
        return self._classify(self.result_is_failure, result)

    @staticmethod
    def _classify(predicate: Callable[[Any], bool], value: Any) -> bool:
        try:
            return bool(predicate(value))
        except Exception as e:  # noqa: BLE001 - predicate bugs must not wedge the circuit
            logger.error(
                "circuit_failure_predicate_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return True
