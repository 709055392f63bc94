"""Retry configuration and the retry predicate.

AdvancedRetryConfig is immutable. A per-call override is merged over the
scheduler's defaults with ``merged``; ``jitter`` and ``retry_condition`` merge
field by field, so overriding ``jitter.enabled`` keeps the default
``jitter.max_jitter``.

Optimizations:
- Frozen for immutability
- Only explicitly set fields of an override model participate in a merge
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat

from fluxguard.foundation.errors import ErrorCode, classify_exception

from .backoff import BackoffStrategy, JitterType

# Transient failures worth another attempt
DEFAULT_RETRY_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRY_ERROR_CODES: frozenset[str] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.CONNECTION_ERROR,
})

_NETWORK_CODES = frozenset({ErrorCode.NETWORK_ERROR, ErrorCode.CONNECTION_ERROR})
_TIMEOUT_CODES = frozenset({ErrorCode.TIMEOUT, ErrorCode.CONNECTION_RESET})


class JitterConfig(BaseModel):
    """Randomization applied to each clamped delay."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    type: JitterType = JitterType.FULL
    max_jitter: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1


class RetryCondition(BaseModel):
    """Which failures are retryable.

    Attributes:
        status_codes: HTTP statuses that are retried
        error_codes: Error ``code`` values that are retried
        custom: ``(error, attempt) -> bool``; when set its answer is final
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    status_codes: frozenset[int] = DEFAULT_RETRY_STATUS_CODES
    error_codes: frozenset[str] = DEFAULT_RETRY_ERROR_CODES
    custom: Callable[[BaseException, int], bool] | None = Field(default=None, exclude=True, repr=False)


class AdvancedRetryConfig(BaseModel):
    """Retry scheduler configuration. Durations are seconds.

    Example:
        >>> config = AdvancedRetryConfig(max_attempts=5, backoff_strategy="fibonacci")
        >>> config.merged({"jitter": {"enabled": False}}).jitter.max_jitter
        0.1
    """

    model_config = ConfigDict(
        frozen=True,
        validate_default=True,
        extra="forbid",
        json_schema_extra={
            "title": "Advanced Retry Config",
            "examples": [{"max_attempts": 3, "initial_delay": 1.0, "backoff_strategy": "exponential"}],
        },
    )

    max_attempts: Annotated[int, Field(ge=1)] = 3
    initial_delay: Annotated[float, Field(ge=0.0)] = 1.0
    max_delay: Annotated[float, Field(ge=0.0)] = 30.0
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    jitter: JitterConfig = Field(default_factory=JitterConfig)
    retry_condition: RetryCondition = Field(default_factory=RetryCondition)
    attempt_timeout: PositiveFloat | None = None
    total_timeout: PositiveFloat | None = None
    retry_on_network_error: bool = True
    retry_on_timeout: bool = True

    def merged(self, override: AdvancedRetryConfig | Mapping[str, Any] | None) -> AdvancedRetryConfig:
        """Overlay ``override`` on this config and return the result.

        A model override contributes only the fields it was constructed with.
        """
        if override is None:
            return self
        changes = _explicit(override)
        for key in ("jitter", "retry_condition"):
            if key in changes and changes[key] is not None:
                base = getattr(self, key)
                changes[key] = type(base)(**{**_fields(base), **_explicit(changes[key])})
        return AdvancedRetryConfig(**{**_fields(self), **changes})

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Retry predicate.

        Order: custom predicate (final), status code, error code, generic
        network detection, generic timeout detection.
        """
        condition = self.retry_condition
        if condition.custom is not None:
            return bool(condition.custom(error, attempt))
        status = getattr(error, "status", None)
        if isinstance(status, int) and status in condition.status_codes:
            return True
        code = getattr(error, "code", None)
        if isinstance(code, str) and code in condition.error_codes:
            return True
        if self.retry_on_network_error and is_network_error(error):
            return True
        return self.retry_on_timeout and is_timeout_error(error)


def _fields(model: BaseModel) -> dict[str, Any]:
    return {name: getattr(model, name) for name in type(model).model_fields}


def _explicit(value: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return {name: getattr(value, name) for name in value.model_fields_set}
    return dict(value)


def is_network_error(error: BaseException) -> bool:
    """No response was received and the failure looks like a network fault."""
    if getattr(error, "response", None) is not None:
        return False
    return classify_exception(error) in _NETWORK_CODES


def is_timeout_error(error: BaseException) -> bool:
    return classify_exception(error) in _TIMEOUT_CODES
