"""Circuit breaker primitive."""

from .breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    RequestAttempt,
    State,
    StateChangeListener,
    UnsuccessfulResponseError,
)

__all__ = [
    "CircuitBreaker", "CircuitBreakerConfig", "CircuitBreakerStats", "RequestAttempt",
    "State", "StateChangeListener", "UnsuccessfulResponseError",
]
