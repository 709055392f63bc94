"""Advanced retry scheduling.

Bounded retry loop with pluggable backoff strategies, jitter, attempt and
total time budgets, and optional circuit breaker gating per resource name.

Example:
    >>> from fluxguard.runtime.retry import AdvancedRetryConfig, AdvancedRetryScheduler, JitterConfig
    >>>
    >>> scheduler = AdvancedRetryScheduler(AdvancedRetryConfig(
    ...     max_attempts=4,
    ...     initial_delay=0.5,
    ...     backoff_strategy="exponential",
    ...     jitter=JitterConfig(type="equal", max_jitter=0.2),
    ...     total_timeout=20.0,
    ... ))
    >>> response = await scheduler.execute_with_retry(lambda: executor(config), circuit_breaker_name="billing")
"""

from .backoff import (
    Backoff,
    BackoffStrategy,
    ConstantBackoff,
    ExponentialBackoff,
    FibonacciBackoff,
    JitterType,
    LinearBackoff,
    apply_jitter,
    backoff_for,
    fibonacci,
)
from .policy import (
    DEFAULT_RETRY_ERROR_CODES,
    DEFAULT_RETRY_STATUS_CODES,
    AdvancedRetryConfig,
    JitterConfig,
    RetryCondition,
    is_network_error,
    is_timeout_error,
)
from .scheduler import AdvancedRetryScheduler, RetryOverride

__all__ = [
    # Backoff strategies
    "Backoff",
    "BackoffStrategy",
    "ExponentialBackoff",
    "LinearBackoff",
    "FibonacciBackoff",
    "ConstantBackoff",
    "backoff_for",
    "fibonacci",
    # Jitter
    "JitterType",
    "apply_jitter",
    # Policy
    "AdvancedRetryConfig",
    "JitterConfig",
    "RetryCondition",
    "DEFAULT_RETRY_STATUS_CODES",
    "DEFAULT_RETRY_ERROR_CODES",
    "is_network_error",
    "is_timeout_error",
    # Execution
    "AdvancedRetryScheduler",
    "RetryOverride",
]
