"""Tests for the circuit breaker state machine.

Validates:
- CLOSED → OPEN once the failure rate crosses the threshold
- Fast rejection while OPEN
- Lazy OPEN → HALF_OPEN after the timeout
- HALF_OPEN → CLOSED after consecutive successes, → OPEN on any failure
- Listener and event delivery on real transitions only
"""

from __future__ import annotations

import pytest

from fluxguard.foundation.errors import CircuitOpenError, HttpError
from fluxguard.foundation.events import EventEmitter, EventKind
from fluxguard.runtime.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerStats, State

from conftest import FakeClock, ScriptedExecutor, network_error, ok


def make_breaker(clock: FakeClock, **overrides: object) -> CircuitBreaker:
    params: dict[str, object] = {
        "name": "users-api", "failure_threshold": 0.5, "minimum_requests": 4,
        "timeout": 10.0, "success_threshold": 2, "monitoring_window": 60.0,
    }
    params.update(overrides)
    return CircuitBreaker(CircuitBreakerConfig(**params), clock=clock)


async def fail(breaker: CircuitBreaker, times: int = 1) -> None:
    failing = ScriptedExecutor([network_error()])
    for _ in range(times):
        with pytest.raises(HttpError):
            await breaker.execute(failing)


async def succeed(breaker: CircuitBreaker, times: int = 1) -> None:
    for _ in range(times):
        await breaker.execute(ScriptedExecutor([ok()]))


# ═════════════════════════════════════════════════════════════════════════════
# CLOSED
# ═════════════════════════════════════════════════════════════════════════════


class TestClosed:
    """Behavior while traffic flows."""

    @pytest.mark.asyncio
    async def test_returns_result(self, clock: FakeClock) -> None:
        """Successful calls pass their result through."""
        breaker = make_breaker(clock)
        response = await breaker.execute(ScriptedExecutor([ok(data="hi")]))
        assert response.data == "hi"
        assert breaker.state == State.CLOSED

    @pytest.mark.asyncio
    async def test_stays_closed_below_minimum_requests(self, clock: FakeClock) -> None:
        """The rate is not trusted until minimum_requests attempts are seen."""
        breaker = make_breaker(clock)
        await fail(breaker, 3)
        assert breaker.state == State.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, clock: FakeClock) -> None:
        """2 failures out of 4 attempts meets a 0.5 threshold."""
        breaker = make_breaker(clock)
        await succeed(breaker, 2)
        await fail(breaker, 1)
        assert breaker.state == State.CLOSED
        await fail(breaker, 1)
        assert breaker.state == State.OPEN

    @pytest.mark.asyncio
    async def test_non_triggering_errors_do_not_open(self, clock: FakeClock) -> None:
        """Errors rejected by should_trigger are recorded but never open the circuit."""
        breaker = make_breaker(clock, should_trigger=lambda e: False)
        await fail(breaker, 6)
        assert breaker.state == State.CLOSED
        assert breaker.get_stats().failed_requests == 6

    @pytest.mark.asyncio
    async def test_is_success_predicate_records_failure(self, clock: FakeClock) -> None:
        """A returned response can still count as a failure."""
        breaker = make_breaker(clock, minimum_requests=1, is_success=lambda r: r.status < 300)
        response = await breaker.execute(ScriptedExecutor([ok(status=304)]))
        assert response.status == 304
        assert breaker.state == State.OPEN

    @pytest.mark.asyncio
    async def test_rejected_response_bypasses_should_trigger(self, clock: FakeClock) -> None:
        """should_trigger filters raised errors only; an is_success rejection always counts."""
        breaker = make_breaker(
            clock, minimum_requests=1,
            is_success=lambda r: r.status < 300,
            should_trigger=lambda e: isinstance(e, HttpError),
        )
        response = await breaker.execute(ScriptedExecutor([ok(status=503)]))
        assert response.status == 503
        assert breaker.state == State.OPEN

    @pytest.mark.asyncio
    async def test_window_prunes_old_attempts(self, clock: FakeClock) -> None:
        """Attempts older than monitoring_window drop out of the rate."""
        breaker = make_breaker(clock)
        await fail(breaker, 3)
        clock.advance(61.0)
        await fail(breaker, 1)
        assert breaker.state == State.CLOSED
        assert breaker.get_stats().total_requests == 1


# ═════════════════════════════════════════════════════════════════════════════
# OPEN / HALF_OPEN
# ═════════════════════════════════════════════════════════════════════════════


class TestRecovery:
    """Rejection and probing."""

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        breaker.force_open()
        executor = ScriptedExecutor([ok()])

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(executor)

        assert executor.calls == 0
        assert exc_info.value.name == "users-api"
        assert exc_info.value.retry_after == pytest.approx(10.0)
        assert breaker.get_stats().rejected_requests == 1

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self, clock: FakeClock) -> None:
        """The first call after the timeout is admitted as a probe."""
        breaker = make_breaker(clock)
        breaker.force_open()
        clock.advance(10.0)
        await succeed(breaker)
        assert breaker.state == State.HALF_OPEN

    @pytest.mark.asyncio
    async def test_closes_after_success_threshold(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        breaker.force_open()
        clock.advance(10.0)
        await succeed(breaker, 2)
        assert breaker.state == State.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, clock: FakeClock) -> None:
        """Any qualifying failure while probing reopens immediately."""
        breaker = make_breaker(clock)
        breaker.force_open()
        clock.advance(10.0)
        await succeed(breaker)
        await fail(breaker)
        assert breaker.state == State.OPEN
        assert breaker.retry_after == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        assert breaker.retry_after is None
        breaker.force_open()
        clock.advance(4.0)
        assert breaker.retry_after == pytest.approx(6.0)


# ═════════════════════════════════════════════════════════════════════════════
# Notifications & Control
# ═════════════════════════════════════════════════════════════════════════════


class TestNotifications:
    """Listeners, events and manual control."""

    def test_listener_called_on_transitions_only(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        seen: list[tuple[State, CircuitBreakerStats]] = []
        breaker.on_state_change(lambda state, stats: seen.append((state, stats)))

        breaker.force_open()
        breaker.force_open()
        breaker.force_closed()

        assert [s for s, _ in seen] == [State.OPEN, State.CLOSED]
        assert seen[0][1].state == State.OPEN

    def test_remove_listener(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        seen: list[State] = []
        listener = lambda state, stats: seen.append(state)  # noqa: E731
        breaker.on_state_change(listener)
        assert breaker.remove_state_change_listener(listener) is True
        assert breaker.remove_state_change_listener(listener) is False
        breaker.force_open()
        assert seen == []

    def test_failing_listener_does_not_block_transition(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)

        def broken(state: State, stats: CircuitBreakerStats) -> None:
            raise RuntimeError("listener bug")

        breaker.on_state_change(broken)
        breaker.force_open()
        assert breaker.state == State.OPEN

    def test_emits_state_changed_event(self, clock: FakeClock) -> None:
        events = EventEmitter()
        seen: list[tuple[str, State]] = []
        events.on(EventKind.STATE_CHANGED, lambda name, state, stats: seen.append((name, state)))
        breaker = CircuitBreaker(CircuitBreakerConfig(name="billing"), events=events, clock=clock)

        breaker.force_open()
        assert seen == [("billing", State.OPEN)]

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock)
        await fail(breaker, 4)
        assert breaker.state == State.OPEN

        breaker.reset()
        stats = breaker.get_stats()
        assert stats.state == State.CLOSED
        assert stats.total_requests == 0
        assert stats.last_failure_time is None

    @pytest.mark.asyncio
    async def test_stats_failure_rate_is_percentage(self, clock: FakeClock) -> None:
        breaker = make_breaker(clock, minimum_requests=100)
        await succeed(breaker, 3)
        await fail(breaker, 1)
        stats = breaker.get_stats()
        assert stats.failure_rate == pytest.approx(25.0)
        assert stats.successful_requests == 3
        assert stats.last_failure_time == clock.now
