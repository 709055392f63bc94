"""Circuit breaker driven by a sliding window of attempt outcomes.

State Machine:
    CLOSED → failure rate >= threshold over >= minimum_requests → OPEN
    OPEN → timeout elapses since the last qualifying failure → HALF_OPEN
    HALF_OPEN → success_threshold consecutive successes → CLOSED
    HALF_OPEN → any qualifying failure → OPEN

The OPEN → HALF_OPEN check is lazy: it happens at the next admission, never
on a timer. All timestamps are readings of the breaker's clock
(``time.monotonic`` unless one is injected).
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fluxguard.foundation.errors import CircuitOpenError, FluxError
from fluxguard.foundation.events import EventEmitter, EventKind
from fluxguard.http.models import Response

logger = logging.getLogger("fluxguard.breaker")

T = TypeVar("T")


class State(StrEnum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half-open"  # Probing recovery


class CircuitBreakerConfig(BaseModel):
    """Immutable breaker thresholds.

    Attributes:
        failure_threshold: Failure fraction (0..1) that opens the circuit
        success_threshold: Consecutive HALF_OPEN successes needed to close
        timeout: Seconds OPEN before a probe is admitted
        monitoring_window: Seconds of history considered
        minimum_requests: Attempts in the window before the rate is trusted
        should_trigger: Whether a raised error counts against the circuit
        is_success: Whether a returned response counts as a success
        name: Identifier used in errors, logs and events
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    failure_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    success_threshold: Annotated[int, Field(ge=1)] = 3
    timeout: Annotated[float, Field(ge=0.0)] = 60.0
    monitoring_window: Annotated[float, Field(gt=0.0)] = 60.0
    minimum_requests: Annotated[int, Field(ge=0)] = 10
    should_trigger: Callable[[BaseException], bool] | None = Field(default=None, exclude=True, repr=False)
    is_success: Callable[[Response], bool] | None = Field(default=None, exclude=True, repr=False)
    name: str = "default"


@dataclass(frozen=True, slots=True)
class RequestAttempt:
    """Outcome of one completed attempt."""
    timestamp: float
    success: bool
    response_time: float
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class CircuitBreakerStats:
    """Point-in-time snapshot; ``failure_rate`` is a percentage."""
    state: State
    total_requests: int
    failed_requests: int
    successful_requests: int
    failure_rate: float
    last_failure_time: float | None
    last_success_time: float | None
    rejected_requests: int
    average_response_time: float


StateChangeListener = Callable[[State, CircuitBreakerStats], object]


class UnsuccessfulResponseError(FluxError):
    """Recorded in history when ``is_success`` rejects a returned response."""

    def __init__(self, response: Response) -> None:
        super().__init__(f"Response with status {response.status} did not satisfy the success predicate")
        self.response = response


class CircuitBreaker:
    """Admission controller for one named resource.

    Args:
        config: Thresholds (default: CircuitBreakerConfig())
        events: Optional sink that receives ``state-changed`` with
            ``(name, new_state, stats)``
        clock: Monotonic time source in seconds

    Example:
        >>> breaker = CircuitBreaker(CircuitBreakerConfig(name="users-api", minimum_requests=5))
        >>> response = await breaker.execute(lambda: executor(config))
        >>> breaker.state
        <State.CLOSED: 'closed'>
    """

    __slots__ = (
        "_config", "_events", "_clock", "_state", "_history", "_failure_count", "_success_count",
        "_last_failure_time", "_last_success_time", "_rejected", "_listeners",
    )

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        events: EventEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._events = events
        self._clock = clock
        self._state = State.CLOSED
        self._history: deque[RequestAttempt] = deque()
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._last_success_time: float | None = None
        self._rejected = 0
        self._listeners: list[StateChangeListener] = []

    # ─────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────

    async def execute(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``request_fn`` once if the circuit admits it.

        Raises:
            CircuitOpenError: Circuit is OPEN and the probe delay has not elapsed.
            Whatever ``request_fn`` raised, after recording it.
        """
        if self._state == State.OPEN:
            if not self._should_attempt_reset():
                self._rejected += 1
                raise CircuitOpenError(self.name, self.retry_after)
            self._set_state(State.HALF_OPEN)

        start = self._clock()
        try:
            response = await request_fn()
        except Exception as e:
            self._record_failure(e, self._clock() - start)
            raise
        self._record_success(response, self._clock() - start)
        return response

    def get_stats(self) -> CircuitBreakerStats:
        self._prune()
        total = len(self._history)
        failed = sum(1 for a in self._history if not a.success)
        return CircuitBreakerStats(
            state=self._state,
            total_requests=total,
            failed_requests=failed,
            successful_requests=total - failed,
            failure_rate=failed / total * 100 if total else 0.0,
            last_failure_time=self._last_failure_time,
            last_success_time=self._last_success_time,
            rejected_requests=self._rejected,
            average_response_time=sum(a.response_time for a in self._history) / total if total else 0.0,
        )

    def reset(self) -> None:
        """Return to a fresh CLOSED breaker. Listeners are not notified."""
        self._state = State.CLOSED
        self._history.clear()
        self._failure_count = self._success_count = self._rejected = 0
        self._last_failure_time = self._last_success_time = None

    def force_open(self) -> None:
        """Open now; the probe delay counts from this call."""
        self._last_failure_time = self._clock()
        self._set_state(State.OPEN)

    def force_closed(self) -> None:
        self._failure_count = 0
        self._set_state(State.CLOSED)

    def on_state_change(self, listener: StateChangeListener) -> None:
        self._listeners.append(listener)

    def remove_state_change_listener(self, listener: StateChangeListener) -> bool:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    # ─────────────────────────────────────────────────────────────────
    # Observability Properties
    # ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> State:
        return self._state

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def retry_after(self) -> float | None:
        """Seconds until a probe is admitted, or None if not open."""
        if self._state != State.OPEN:
            return None
        if self._last_failure_time is None:
            return 0.0
        return max(0.0, self._config.timeout - (self._clock() - self._last_failure_time))

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self._state.value!r})"

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _record_success(self, response: object, response_time: float) -> None:
        is_success = self._config.is_success
        if is_success is not None and not is_success(response):  # type: ignore[arg-type]
            rejected = UnsuccessfulResponseError(response)  # type: ignore[arg-type]
            self._record_failure(rejected, response_time, trigger=False)
            return
        now = self._clock()
        self._history.append(RequestAttempt(now, True, response_time))
        self._last_success_time = now
        self._prune(now)
        self._failure_count = 0
        if self._state == State.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self._config.success_threshold:
                self._set_state(State.CLOSED)

    def _record_failure(self, error: BaseException, response_time: float, *, trigger: bool = True) -> None:
        """Count a failed attempt. ``trigger=False`` skips ``should_trigger`` (rejected responses)."""
        now = self._clock()
        self._history.append(RequestAttempt(now, False, response_time, error))
        self._prune(now)
        should_trigger = self._config.should_trigger
        if trigger and should_trigger is not None and not should_trigger(error):
            return
        self._failure_count += 1
        self._last_failure_time = now
        if self._state == State.HALF_OPEN or (self._state == State.CLOSED and self._should_open()):
            self._set_state(State.OPEN)

    def _should_open(self) -> bool:
        total = len(self._history)
        if total < self._config.minimum_requests or total == 0:
            return False
        failed = sum(1 for a in self._history if not a.success)
        return failed / total >= self._config.failure_threshold

    def _should_attempt_reset(self) -> bool:
        if self._last_failure_time is None:
            return True
        return self._clock() - self._last_failure_time >= self._config.timeout

    def _prune(self, now: float | None = None) -> None:
        cutoff = (self._clock() if now is None else now) - self._config.monitoring_window
        while self._history and self._history[0].timestamp <= cutoff:
            self._history.popleft()

    def _set_state(self, new: State) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        if new in (State.CLOSED, State.HALF_OPEN):
            self._success_count = 0
        logger.info("Circuit breaker '%s': %s -> %s", self.name, old.value, new.value)
        stats = self.get_stats()
        for listener in list(self._listeners):
            try:
                listener(new, stats)
            except Exception:
                logger.exception("State change listener failed for circuit breaker '%s'", self.name)
        if self._events is not None:
            self._events.emit(EventKind.STATE_CHANGED, self.name, new, stats)
