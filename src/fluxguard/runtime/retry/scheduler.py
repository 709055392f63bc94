"""Advanced retry scheduler with optional circuit breaker gating.

Runs a bounded attempt loop around a request executor. Each attempt may be
routed through a named CircuitBreaker taken from the scheduler's lazily
populated cache, raced against a per-attempt timeout, and followed by a
backoff delay with jitter.

Example:
    >>> scheduler = AdvancedRetryScheduler(AdvancedRetryConfig(max_attempts=5))
    >>> response = await scheduler.execute_with_retry(
    ...     lambda: executor(config),
    ...     {"backoff_strategy": "linear"},
    ...     circuit_breaker_name="users-api",
    ... )
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Mapping
from typing import Any, Callable, TypeVar

from fluxguard.foundation.errors import ErrorCode, HttpError, RetryTimeoutError
from fluxguard.foundation.events import EventEmitter
from fluxguard.runtime.concurrency import race_timeout
from fluxguard.runtime.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerStats

from .backoff import apply_jitter, backoff_for
from .policy import AdvancedRetryConfig

logger = logging.getLogger("fluxguard.retry")

T = TypeVar("T")

RetryOverride = AdvancedRetryConfig | Mapping[str, Any]


class AdvancedRetryScheduler:
    """Retry loop plus a name-keyed circuit breaker cache.

    Args:
        default_config: Retry defaults that per-call overrides merge over
        default_breaker_config: Template for lazily created breakers; each
            breaker gets the requested name
        events: Sink handed to every breaker this scheduler creates
        sleep: Awaitable delay function (injectable for tests)
        clock: Monotonic time source for budget arithmetic
        random: Uniform [0, 1) source for jitter
    """

    __slots__ = ("_config", "_breaker_config", "_events", "_sleep", "_clock", "_random", "_breakers")

    def __init__(
        self,
        default_config: AdvancedRetryConfig | None = None,
        default_breaker_config: CircuitBreakerConfig | None = None,
        *,
        events: EventEmitter | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        random: Callable[[], float] = random.random,
    ) -> None:
        self._config = default_config or AdvancedRetryConfig()
        self._breaker_config = default_breaker_config or CircuitBreakerConfig()
        self._events = events
        self._sleep = sleep
        self._clock = clock
        self._random = random
        self._breakers: dict[str, CircuitBreaker] = {}

    @property
    def default_config(self) -> AdvancedRetryConfig:
        return self._config

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    async def execute_with_retry(
        self,
        request_fn: Callable[[], Awaitable[T]],
        config: RetryOverride | None = None,
        circuit_breaker_name: str | None = None,
    ) -> T:
        """Invoke ``request_fn`` until success, exhaustion or a non-retryable error.

        Args:
            request_fn: Zero-argument async callable performing one attempt
            config: Partial override merged over the scheduler defaults
            circuit_breaker_name: Gate every attempt through this breaker

        Returns:
            The first successful result.

        Raises:
            RetryTimeoutError: ``total_timeout`` elapsed or the next delay would
                cross it.
            The last attempt's error, unchanged, when attempts are exhausted or
            the error is not retryable (including CircuitOpenError).
        """
        cfg = self._config.merged(config)
        breaker = self.get_circuit_breaker(circuit_breaker_name) if circuit_breaker_name else None
        start = self._clock()
        attempt = 0
        while True:
            attempt += 1
            elapsed = self._clock() - start
            if cfg.total_timeout is not None and elapsed >= cfg.total_timeout:
                raise RetryTimeoutError(f"Total retry timeout of {cfg.total_timeout}s exceeded", elapsed)
            try:
                return await self._attempt(request_fn, cfg, breaker)
            except Exception as e:
                if attempt >= cfg.max_attempts or not cfg.should_retry(e, attempt):
                    raise
                delay = self.calculate_delay(attempt, cfg)
                elapsed = self._clock() - start
                if cfg.total_timeout is not None and elapsed + delay >= cfg.total_timeout:
                    raise RetryTimeoutError(
                        f"Total retry timeout of {cfg.total_timeout}s would be exceeded by next delay", elapsed,
                    ) from e
                logger.warning(
                    "Retry %d/%d after %.3fs (%s: %s)", attempt, cfg.max_attempts - 1, delay, type(e).__name__, e,
                )
                await self._sleep(delay)

    async def _attempt(
        self, request_fn: Callable[[], Awaitable[T]], cfg: AdvancedRetryConfig, breaker: CircuitBreaker | None,
    ) -> T:
        call = request_fn
        if (timeout := cfg.attempt_timeout) is not None:
            def call() -> Awaitable[T]:
                return race_timeout(
                    request_fn(), timeout,
                    lambda: HttpError(f"Attempt timed out after {timeout}s", code=ErrorCode.TIMEOUT),
                )
        if breaker is not None:
            return await breaker.execute(call)
        return await call()

    def calculate_delay(self, attempt: int, config: RetryOverride | None = None) -> float:
        """Delay in seconds after failed ``attempt`` (1-based), jitter included."""
        cfg = self._config.merged(config)
        delay = backoff_for(cfg.backoff_strategy, cfg.initial_delay, cfg.max_delay).delay(attempt)
        if cfg.jitter.enabled:
            delay = apply_jitter(delay, cfg.jitter.type, cfg.jitter.max_jitter, self._random())
        return max(0.0, delay)

    # ─────────────────────────────────────────────────────────────────
    # Circuit Breaker Cache
    # ─────────────────────────────────────────────────────────────────

    def get_circuit_breaker(self, name: str) -> CircuitBreaker:
        """Breaker for ``name``, created from the default breaker config on first use."""
        if (breaker := self._breakers.get(name)) is None:
            breaker = CircuitBreaker(
                self._breaker_config.model_copy(update={"name": name}),
                events=self._events,
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def get_all_circuit_breaker_stats(self) -> dict[str, CircuitBreakerStats]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    def reset_all_circuit_breakers(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()

    def remove_circuit_breaker(self, name: str) -> bool:
        return self._breakers.pop(name, None) is not None
