from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from localmcp_resilience.utils.logger import get_logger

from ..callables import Operation, invoke
from ..errors import CircuitOpenError
from ..events import (
    CircuitBreakerOpened,
    CircuitBreakerReset,
    CircuitBreakerStateChanged,
    EventBus,
)
from ..monitoring.metrics import resilience_metrics
from .policies import (
    FailureClassifier,
    FailurePredicate,
    FailureThresholdPolicy,
    ResultPredicate,
)

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class OperationState:
    """Breaker bookkeeping for one operation name."""

    operation: str
    circuit_state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: Optional[float] = None
    last_state_change_time: float = 0.0
    half_open_probe_in_flight: bool = False


TransitionHook = Callable[[str, CircuitState, CircuitState], None]


class CircuitBreakerRegistry:
    """
    One circuit breaker state machine per operation name.

    - CLOSED: calls pass through; consecutive classified failures are counted
      and the circuit OPENs once the threshold is reached. Any success resets
      the count.
    - OPEN: calls fail fast with `CircuitOpenError` until `timeout` seconds
      have passed since the last transition. The next call after that moves
      the circuit to HALF_OPEN and is admitted as the probe.
    - HALF_OPEN: exactly one probe is in flight; everyone else fails fast.
      Probe success -> CLOSED, probe failure -> OPEN (timer restarts).

    `reset(name)` / `reset_all()` let operators force circuits CLOSED.

    Admission and outcome bookkeeping for a name happen under that name's
    lock, so concurrent callers see one consistent sequence of states while
    different names never contend.
    """

    def __init__(
        self,
        events: Optional[EventBus] = None,
        *,
        threshold: int = 5,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
        on_transition: Optional[TransitionHook] = None,
    ) -> None:
        self.policy = FailureThresholdPolicy(threshold=threshold)
        self.timeout = timeout
        self._events = events
        self._clock = clock
        self.on_transition = on_transition
        self._states: Dict[str, OperationState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # -- snapshots -----------------------------------------------------------

    def get_state(self, operation_name: str) -> OperationState:
        """Copy of the state for `operation_name` (closed if never used)."""
        state = self._states.get(operation_name)
        if state is None:
            return OperationState(operation=operation_name)
        return dataclasses.replace(state)

    def states(self) -> Dict[str, OperationState]:
        return {name: dataclasses.replace(s) for name, s in self._states.items()}

    def is_open(self, operation_name: str) -> bool:
        return self.get_state(operation_name).circuit_state is CircuitState.OPEN

    # -- call path -----------------------------------------------------------

    async def wrap(
        self,
        operation_name: str,
        func: Operation[Any],
        *,
        is_failure: Optional[FailurePredicate] = None,
        result_is_failure: Optional[ResultPredicate] = None,
    ) -> Any:
        """Invoke `func` through the breaker for `operation_name`."""
        classifier = FailureClassifier(is_failure, result_is_failure)
        state, lock = self._entry(operation_name)

        async with lock:
            probe = self._admit(state)

        recorded = False
        try:
            try:
                result = await invoke(func)
            except BaseException as exc:  # noqa: BLE001 - re-raised after accounting
                async with lock:
                    if classifier.exception_counts(exc):
                        self._record_failure(state, probe)
                    else:
                        self._release_probe(state, probe)
                    recorded = True
                raise

            async with lock:
                if classifier.result_counts(result):
                    self._record_failure(state, probe)
                else:
                    self._record_success(state, probe)
                recorded = True
            return result
        finally:
            # The probe slot is never left claimed, whatever escaped above
            if not recorded:
                self._release_probe(state, probe)

    async def reset(self, operation_name: str) -> None:
        """Force the circuit for `operation_name` closed and clear its failures."""
        state = self._states.get(operation_name)
        if state is None:
            return
        async with self._locks[operation_name]:
            self._force_closed(state)

    async def reset_all(self) -> None:
        for name in list(self._states):
            await self.reset(name)

    # -- internals (caller holds the name's lock) ----------------------------

    def _entry(self, operation_name: str) -> Tuple[OperationState, asyncio.Lock]:
        state = self._states.get(operation_name)
        if state is None:
            state = OperationState(
                operation=operation_name, last_state_change_time=self._clock()
            )
            self._states[operation_name] = state
            self._locks[operation_name] = asyncio.Lock()
        return state, self._locks[operation_name]

    def _admit(self, state: OperationState) -> bool:
        """Return True when the caller is admitted as the half-open probe."""
        if state.circuit_state is CircuitState.CLOSED:
            return False

        if state.circuit_state is CircuitState.OPEN:
            if self._clock() - state.last_state_change_time < self.timeout:
                self._reject(state)
            self._transition(state, CircuitState.HALF_OPEN)

        if state.half_open_probe_in_flight:
            self._reject(state)
        state.half_open_probe_in_flight = True
        return True

    def _reject(self, state: OperationState) -> None:
        resilience_metrics.inc_circuit_outcome(state.operation, "rejected")
        logger.debug(
            "circuit_call_blocked",
            circuit=state.operation,
            state=state.circuit_state.value,
        )
        raise CircuitOpenError(state.operation, state.circuit_state.value)

    def _record_failure(self, state: OperationState, probe: bool) -> None:
        state.failure_count += 1
        state.last_failure_time = self._clock()
        resilience_metrics.inc_circuit_outcome(state.operation, "failure")

        if probe:
            state.half_open_probe_in_flight = False
            if state.circuit_state is CircuitState.HALF_OPEN:
                self._transition(state, CircuitState.OPEN)
        elif state.circuit_state is CircuitState.CLOSED and self.policy.should_open(
            state.failure_count
        ):
            self._transition(state, CircuitState.OPEN)
        # Outcomes of calls admitted before the circuit opened do not move it.

    def _record_success(self, state: OperationState, probe: bool) -> None:
        resilience_metrics.inc_circuit_outcome(state.operation, "success")

        if probe:
            state.half_open_probe_in_flight = False
            if state.circuit_state is CircuitState.HALF_OPEN:
                state.failure_count = 0
                self._transition(state, CircuitState.CLOSED)
        elif state.circuit_state is CircuitState.CLOSED:
            state.failure_count = 0

    def _release_probe(self, state: OperationState, probe: bool) -> None:
        if probe:
            state.half_open_probe_in_flight = False

    def _force_closed(self, state: OperationState) -> None:
        logger.info(
            "circuit_manual_reset",
            circuit=state.operation,
            state=state.circuit_state.value,
            failure_count=state.failure_count,
        )
        state.failure_count = 0
        state.half_open_probe_in_flight = False
        self._transition(state, CircuitState.CLOSED)

    def _transition(self, state: OperationState, new_state: CircuitState) -> None:
        if state.circuit_state is new_state:
            return
        prev = state.circuit_state
        state.circuit_state = new_state
        state.last_state_change_time = self._clock()

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            "circuit_state_change",
            circuit=state.operation,
            from_state=prev.value,
            to_state=new_state.value,
            failure_count=state.failure_count,
        )
        resilience_metrics.record_transition(state.operation, prev, new_state)

        if self.on_transition is not None:
            self.on_transition(state.operation, prev, new_state)

        if self._events is None:
            return
        self._events.emit(
            CircuitBreakerStateChanged(operation=state.operation, state=new_state.value)
        )
        if new_state is CircuitState.OPEN:
            self._events.emit(
                CircuitBreakerOpened(
                    operation=state.operation, failure_count=state.failure_count
                )
            )
        elif new_state is CircuitState.CLOSED:
            self._events.emit(CircuitBreakerReset(operation=state.operation))
