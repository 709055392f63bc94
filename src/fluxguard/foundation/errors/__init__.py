"""Unified error handling for fluxguard.

- ErrorCode: Standard machine-readable codes
- FluxError: Base exception carrying a code
- HttpError: Request executor failure contract (status + code)
- Typed control-plane errors for breaker, retry, middleware and plugins
"""

from .errors import (
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

__all__ = [
    # Core
    "ErrorCode", "FluxError", "HttpError", "classify_exception",
    # Resilience
    "CircuitOpenError", "RetryTimeoutError",
    # Middleware
    "MiddlewareTimeoutError", "MiddlewareFailedError", "MiddlewareCancelledError",
    "MiddlewareRegistrationError",
    # Plugins
    "PluginError", "PluginNotFoundError", "PluginAlreadyRegisteredError", "PluginLimitError",
    "PluginDependencyMissingError", "PluginCircularDependencyError", "PluginLoadTimeoutError",
    "PluginCommandNotFoundError",
]
