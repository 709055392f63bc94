"""Error codes and exception hierarchy for the control plane.

Every exception raised by fluxguard derives from FluxError and carries a
machine-readable ``code``. Request executors report failures with HttpError,
which exposes the optional HTTP status the retry predicate inspects.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fluxguard.http.models import RequestConfig, Response


class ErrorCode(StrEnum):
    """Standard error codes.

    Transport codes are what request executors attach to HttpError; the rest
    identify failures raised by the control plane itself.
    """
    # Transport
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    CONNECTION_RESET = "ECONNRESET"
    BAD_RESPONSE = "ERR_BAD_RESPONSE"
    # Control plane
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    RETRY_TIMEOUT = "RETRY_TIMEOUT"
    MIDDLEWARE_TIMEOUT = "MIDDLEWARE_TIMEOUT"
    MIDDLEWARE_FAILED = "MIDDLEWARE_FAILED"
    MIDDLEWARE_REGISTRATION = "MIDDLEWARE_REGISTRATION"
    CANCELLED = "CANCELLED"
    PLUGIN_NOT_FOUND = "PLUGIN_NOT_FOUND"
    PLUGIN_REGISTRATION = "PLUGIN_REGISTRATION"
    PLUGIN_DEPENDENCY_MISSING = "PLUGIN_DEPENDENCY_MISSING"
    PLUGIN_CIRCULAR_DEPENDENCY = "PLUGIN_CIRCULAR_DEPENDENCY"
    PLUGIN_LOAD_TIMEOUT = "PLUGIN_LOAD_TIMEOUT"
    PLUGIN_COMMAND_NOT_FOUND = "PLUGIN_COMMAND_NOT_FOUND"
    UNKNOWN = "UNKNOWN"


# Ordered: first match wins
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "timed out": ErrorCode.TIMEOUT,
    "econnreset": ErrorCode.CONNECTION_RESET,
    "connection": ErrorCode.CONNECTION_ERROR,
    "connect": ErrorCode.CONNECTION_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES)
_CODE_VALUES: frozenset[str] = frozenset(c.value for c in ErrorCode)


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map an exception to an error code.

    An explicit ``code`` attribute that names a known ErrorCode wins; otherwise
    the exception's type name and message are pattern matched.
    """
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in _CODE_VALUES and code != ErrorCode.UNKNOWN:
        return ErrorCode(code)
    return _classify_cached(f"{type(exc).__name__} {exc}")


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class FluxError(Exception):
    """Base class for every error raised by fluxguard."""

    code: str = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"


class HttpError(FluxError):
    """Failure reported by a request executor.

    Attributes:
        status: HTTP status code when a response was received
        code: Machine-readable failure code (e.g. TIMEOUT, NETWORK_ERROR)
        response: Response descriptor for HTTP-level failures
        config: Request descriptor of the failed attempt
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        response: Response | None = None,
        config: RequestConfig | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self._status = status
        self.response = response
        self.config = config

    @property
    def status(self) -> int | None:
        if self._status is not None:
            return self._status
        return self.response.status if self.response is not None else None


class CircuitOpenError(FluxError):
    """Admission rejected because the named circuit is open."""

    code = ErrorCode.CIRCUIT_BREAKER_OPEN

    def __init__(self, name: str, retry_after: float | None = None) -> None:
        super().__init__(f"Circuit breaker is OPEN for {name}")
        self.name = name
        self.retry_after = retry_after


class RetryTimeoutError(FluxError):
    """Total retry time budget exceeded."""

    code = ErrorCode.RETRY_TIMEOUT

    def __init__(self, message: str, elapsed: float) -> None:
        super().__init__(f"{message} (elapsed: {elapsed:.3f}s)")
        self.elapsed = elapsed


class MiddlewareTimeoutError(FluxError):
    """A single middleware exceeded its allotted time."""

    code = ErrorCode.MIDDLEWARE_TIMEOUT

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(f"Middleware '{name}' execution timeout after {timeout}s")
        self.name = name
        self.timeout = timeout


class MiddlewareFailedError(FluxError):
    """A middleware raised while the pipeline was configured to stop on error."""

    code = ErrorCode.MIDDLEWARE_FAILED

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Middleware '{name}' failed: {cause}")
        self.name = name
        self.cause = cause


class MiddlewareCancelledError(FluxError):
    """The context's cancellation signal fired during a pipeline run."""

    code = ErrorCode.CANCELLED

    def __init__(self, message: str = "Middleware execution cancelled") -> None:
        super().__init__(message)


class MiddlewareRegistrationError(FluxError):
    """Duplicate middleware name or phase capacity reached."""

    code = ErrorCode.MIDDLEWARE_REGISTRATION


class PluginError(FluxError):
    """Base class for plugin registry failures."""


class PluginNotFoundError(PluginError):
    code = ErrorCode.PLUGIN_NOT_FOUND

    def __init__(self, name: str, *, kind: str = "Plugin") -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.name = name


class PluginAlreadyRegisteredError(PluginError):
    code = ErrorCode.PLUGIN_REGISTRATION

    def __init__(self, name: str, *, kind: str = "Plugin") -> None:
        super().__init__(f"{kind} '{name}' is already registered")
        self.name = name


class PluginLimitError(PluginError):
    code = ErrorCode.PLUGIN_REGISTRATION

    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum plugin limit reached ({limit})")
        self.limit = limit


class PluginDependencyMissingError(PluginError):
    code = ErrorCode.PLUGIN_DEPENDENCY_MISSING

    def __init__(self, plugin: str, dependency: str) -> None:
        super().__init__(f"Plugin dependency '{dependency}' not found for plugin '{plugin}'")
        self.plugin = plugin
        self.dependency = dependency


class PluginCircularDependencyError(PluginError):
    """Dependency cycle found at registration or while computing load order."""

    code = ErrorCode.PLUGIN_CIRCULAR_DEPENDENCY

    def __init__(self, nodes: Iterable[str]) -> None:
        self.nodes = tuple(nodes)
        super().__init__(f"Circular dependency detected in plugins: {', '.join(self.nodes)}")


class PluginLoadTimeoutError(PluginError):
    code = ErrorCode.PLUGIN_LOAD_TIMEOUT

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(f"Plugin '{name}' load timeout after {timeout}s")
        self.name = name
        self.timeout = timeout


class PluginCommandNotFoundError(PluginError):
    code = ErrorCode.PLUGIN_COMMAND_NOT_FOUND

    def __init__(self, plugin: str, command: str) -> None:
        super().__init__(f"Command '{command}' not found in plugin '{plugin}'")
        self.plugin = plugin
        self.command = command
