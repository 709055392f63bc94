"""Fluxguard - resilience and extensibility control plane for async HTTP clients.

Turns a single "send one request" capability into a fault-tolerant, pluggable
request pipeline: circuit breakers, an advanced retry scheduler, a middleware
pipeline and a plugin registry with dependency-ordered lifecycle.

Quick Start:
    >>> from fluxguard import HttpxExecutor, RequestConfig, ResilientClient
    >>>
    >>> async with HttpxExecutor(timeout=10.0) as executor:
    ...     client = ResilientClient(executor, retry={"max_attempts": 4}, circuit_breaker="users-api")
    ...     response = await client.request(RequestConfig(url="https://users.example.com/me"))

Middleware:
    >>> from fluxguard import middleware
    >>>
    >>> @middleware("request", priority=-10)
    ... def auth(context):
    ...     context.config.headers["Authorization"] = "Bearer sk-xxx"
    >>>
    >>> client.pipeline.use(auth)

Plugins:
    >>> from fluxguard import PluginBuilder, PluginRegistry
    >>>
    >>> registry = PluginRegistry(pipeline=client.pipeline)
    >>> await registry.register(PluginBuilder("auth").request_middleware(auth).build())
"""

__version__ = "0.1.0"

from fluxguard.foundation.config import FluxguardSettings, clear_settings_cache, get_settings
from fluxguard.foundation.errors import (
    CircuitOpenError,
    ErrorCode,
    FluxError,
    HttpError,
    MiddlewareCancelledError,
    MiddlewareFailedError,
    MiddlewareRegistrationError,
    MiddlewareTimeoutError,
    PluginAlreadyRegisteredError,
    PluginCircularDependencyError,
    PluginCommandNotFoundError,
    PluginDependencyMissingError,
    PluginError,
    PluginLimitError,
    PluginLoadTimeoutError,
    PluginNotFoundError,
    RetryTimeoutError,
    classify_exception,
)
from fluxguard.foundation.events import EventEmitter, EventKind
from fluxguard.foundation.logging import configure_logging
from fluxguard.http import HttpxExecutor, RequestConfig, Response
from fluxguard.runtime.concurrency import CancellationSignal
from fluxguard.runtime.middleware import (
    ErrorMiddleware,
    FunctionMiddleware,
    Middleware,
    MiddlewareComposer,
    MiddlewareConditions,
    MiddlewareContext,
    MiddlewarePipeline,
    MiddlewarePipelineConfig,
    RequestMiddleware,
    ResponseMiddleware,
    middleware,
)
from fluxguard.runtime.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerStats, State
from fluxguard.runtime.retry import AdvancedRetryConfig, AdvancedRetryScheduler, JitterConfig, RetryCondition
from fluxguard.plugins import (
    DependencyGraph,
    Plugin,
    PluginBuilder,
    PluginConfig,
    PluginHooks,
    PluginMetadata,
    PluginRegistry,
    PluginRegistryConfig,
    PluginState,
)
from fluxguard.client import ResilientClient

__all__ = [
    "__version__",
    # Client
    "ResilientClient", "HttpxExecutor", "RequestConfig", "Response", "CancellationSignal",
    # Resilience
    "CircuitBreaker", "CircuitBreakerConfig", "CircuitBreakerStats", "State",
    "AdvancedRetryScheduler", "AdvancedRetryConfig", "JitterConfig", "RetryCondition",
    # Middleware
    "Middleware", "RequestMiddleware", "ResponseMiddleware", "ErrorMiddleware", "FunctionMiddleware",
    "MiddlewareContext", "MiddlewareConditions", "MiddlewarePipeline", "MiddlewarePipelineConfig",
    "MiddlewareComposer", "middleware",
    # Plugins
    "Plugin", "PluginMetadata", "PluginConfig", "PluginHooks", "PluginState", "PluginBuilder",
    "PluginRegistry", "PluginRegistryConfig", "DependencyGraph",
    # Events
    "EventEmitter", "EventKind",
    # Errors
    "ErrorCode", "FluxError", "HttpError", "classify_exception", "CircuitOpenError", "RetryTimeoutError",
    "MiddlewareTimeoutError", "MiddlewareFailedError", "MiddlewareCancelledError", "MiddlewareRegistrationError",
    "PluginError", "PluginNotFoundError", "PluginAlreadyRegisteredError", "PluginLimitError",
    "PluginDependencyMissingError", "PluginCircularDependencyError", "PluginLoadTimeoutError",
    "PluginCommandNotFoundError",
    # Config & logging
    "FluxguardSettings", "get_settings", "clear_settings_cache", "configure_logging",
]
