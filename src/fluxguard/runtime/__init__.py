"""Runtime: concurrency helpers, circuit breaker, retry scheduler and middleware pipeline.

Import from the subpackages directly:
    >>> from fluxguard.runtime.resilience import CircuitBreaker
    >>> from fluxguard.runtime.retry import AdvancedRetryScheduler
    >>> from fluxguard.runtime.middleware import MiddlewarePipeline
"""
