"""Backoff strategies and jitter for the retry scheduler.

Provides pluggable delay calculation for retry attempts:
- ExponentialBackoff: initial * 2^(attempt-1)
- LinearBackoff: initial * attempt
- FibonacciBackoff: initial * fib(attempt), fib = 1, 1, 2, 3, 5, ...
- ConstantBackoff: initial

Every strategy clamps to ``max_delay``. Jitter is applied afterwards by
``apply_jitter`` so that strategies stay deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from typing import Protocol, runtime_checkable


class BackoffStrategy(StrEnum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIBONACCI = "fibonacci"
    CONSTANT = "constant"


class JitterType(StrEnum):
    FULL = "full"
    EQUAL = "equal"
    DECORRELATED = "decorrelated"


@runtime_checkable
class Backoff(Protocol):
    """Protocol for backoff delay calculation.

    Attempt numbers are 1-based: the delay after the first failed attempt is
    ``delay(1)``.
    """

    def delay(self, attempt: int) -> float:
        """Delay in seconds before the attempt following ``attempt``."""
        ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Delay = min(initial * 2^(attempt-1), max_delay)"""

    initial: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.initial * 2 ** max(attempt - 1, 0), self.max_delay)


@dataclass(frozen=True, slots=True)
class LinearBackoff:
    """Delay = min(initial * attempt, max_delay)"""

    initial: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.initial * attempt, self.max_delay)


@lru_cache(maxsize=128)
def fibonacci(n: int) -> int:
    """fib(0) = fib(1) = fib(2) = 1, then the usual recurrence."""
    a, b = 1, 1
    for _ in range(max(n - 2, 0)):
        a, b = b, a + b
    return b


@dataclass(frozen=True, slots=True)
class FibonacciBackoff:
    """Delay = min(initial * fib(attempt), max_delay)"""

    initial: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.initial * fibonacci(attempt), self.max_delay)


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Fixed delay between retries, still capped by ``max_delay``."""

    initial: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.initial, self.max_delay)


_STRATEGIES: dict[BackoffStrategy, type[ExponentialBackoff | LinearBackoff | FibonacciBackoff | ConstantBackoff]] = {
    BackoffStrategy.EXPONENTIAL: ExponentialBackoff,
    BackoffStrategy.LINEAR: LinearBackoff,
    BackoffStrategy.FIBONACCI: FibonacciBackoff,
    BackoffStrategy.CONSTANT: ConstantBackoff,
}


def backoff_for(strategy: BackoffStrategy | str, initial: float, max_delay: float) -> Backoff:
    """Build the Backoff implementation named by ``strategy``."""
    return _STRATEGIES[BackoffStrategy(strategy)](initial, max_delay)


def apply_jitter(delay: float, kind: JitterType | str, max_jitter: float, u: float) -> float:
    """Randomize an already clamped delay.

    Args:
        delay: Clamped base delay in seconds
        kind: Jitter formula
        max_jitter: Jitter fraction in 0..1
        u: Uniform random sample in [0, 1)

    Formulas:
        full:         d * (1 - max_jitter * u)
        equal:        d + u * d * max_jitter
        decorrelated: min(d * 3, u * d * (max_jitter + 1))
    """
    match JitterType(kind):
        case JitterType.FULL:
            jittered = delay * (1 - max_jitter * u)
        case JitterType.EQUAL:
            jittered = delay + u * delay * max_jitter
        case JitterType.DECORRELATED:
            jittered = min(delay * 3, u * delay * (max_jitter + 1))
    return max(0.0, jittered)
