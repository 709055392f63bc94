"""Middleware pipeline for request, response and error phases.

Example:
    >>> from fluxguard.runtime.middleware import MiddlewarePipeline, MiddlewareConditions, middleware
    >>>
    >>> @middleware("request", conditions=MiddlewareConditions(include_methods=("POST", "PUT")))
    ... def idempotency_key(context):
    ...     context.config.headers.setdefault("Idempotency-Key", context.request_id)
    >>>
    >>> pipeline = MiddlewarePipeline()
    >>> pipeline.use(idempotency_key)
"""

from .composer import MiddlewareComposer
from .middleware import (
    ErrorMiddleware,
    FunctionMiddleware,
    Middleware,
    MiddlewareConditions,
    MiddlewareContext,
    MiddlewareFn,
    MiddlewareKind,
    MiddlewareResult,
    RequestMiddleware,
    ResponseMiddleware,
    middleware,
    next_request_id,
)
from .pipeline import (
    MiddlewareExecutionResult,
    MiddlewareExecutionStats,
    MiddlewareMetrics,
    MiddlewarePipeline,
    MiddlewarePipelineConfig,
    PipelineStats,
)

__all__ = [
    # Core types
    "Middleware", "RequestMiddleware", "ResponseMiddleware", "ErrorMiddleware", "FunctionMiddleware",
    "MiddlewareKind", "MiddlewareContext", "MiddlewareConditions", "MiddlewareFn", "MiddlewareResult",
    "middleware", "next_request_id",
    # Pipeline
    "MiddlewarePipeline", "MiddlewarePipelineConfig", "MiddlewareMetrics", "MiddlewareExecutionStats",
    "MiddlewareExecutionResult", "PipelineStats",
    # Composition
    "MiddlewareComposer",
]
