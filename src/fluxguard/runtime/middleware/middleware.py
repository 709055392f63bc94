"""Core middleware types: context, conditions and the middleware base class.

Middleware are phase handlers. Each receives the running MiddlewareContext
and returns a context (or None after modifying it in place). The pipeline
merges a returned context back into the running one.
"""

from __future__ import annotations

import itertools
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache
from typing import Callable, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fluxguard.http.models import DEFAULT_METHOD, RequestConfig, Response
from fluxguard.runtime.concurrency import CancellationSignal

_request_counter = itertools.count(1)


def next_request_id() -> str:
    """``req-<epoch ms>-<process-wide counter>``"""
    return f"req-{int(time.time() * 1000)}-{next(_request_counter)}"


class MiddlewareKind(StrEnum):
    """Pipeline phase a middleware belongs to."""
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"


@dataclass(slots=True)
class MiddlewareContext:
    """State carried through one pipeline run.

    Metadata is also reachable with item access, for sharing state between
    middleware of the same run.

    Example:
        >>> ctx = MiddlewareContext.create(RequestConfig(url="https://api.example.com"))
        >>> ctx["tenant"] = "acme"
        >>> ctx.get("tenant")
        'acme'
    """

    config: RequestConfig
    response: Response | None = None
    error: BaseException | None = None
    metadata: dict[str, object] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)
    request_id: str = field(default_factory=next_request_id)
    signal: CancellationSignal | None = None

    @classmethod
    def create(
        cls,
        config: RequestConfig,
        *,
        response: Response | None = None,
        error: BaseException | None = None,
    ) -> MiddlewareContext:
        """Fresh context over a private copy of ``config``."""
        return cls(config=config.fork(), response=response, error=error, signal=config.signal)

    def merge(self, other: MiddlewareContext) -> None:
        """Take every field of ``other``; metadata keys are overlaid."""
        if other is self:
            return
        self.config, self.response, self.error = other.config, other.response, other.error
        self.metadata.update(other.metadata)
        self.start_time, self.request_id, self.signal = other.start_time, other.request_id, other.signal

    @property
    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.cancelled

    def __getitem__(self, key: str) -> object:
        return self.metadata[key]

    def __setitem__(self, key: str, value: object) -> None:
        self.metadata[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.metadata

    def get(self, key: str, default: object = None) -> object:
        return self.metadata.get(key, default)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


class MiddlewareConditions(BaseModel):
    """Filters deciding whether a middleware runs for a context.

    Include lists pass when any entry matches; exclude lists fail when any
    entry matches; ``custom`` is consulted last. URL entries are regular
    expressions searched anywhere in the URL. Methods compare upper-cased.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    include_urls: tuple[str, ...] = ()
    exclude_urls: tuple[str, ...] = ()
    include_methods: tuple[str, ...] = ()
    exclude_methods: tuple[str, ...] = ()
    custom: Callable[[MiddlewareContext], bool] | None = Field(default=None, exclude=True, repr=False)

    @field_validator("include_urls", "exclude_urls")
    @classmethod
    def _patterns_compile(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in v:
            try:
                _compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid URL pattern {pattern!r}: {e}") from e
        return v

    def matches(self, context: MiddlewareContext) -> bool:
        url = context.config.url
        method = (context.config.method or DEFAULT_METHOD).upper()
        if self.include_urls and not any(_compile(p).search(url) for p in self.include_urls):
            return False
        if self.exclude_urls and any(_compile(p).search(url) for p in self.exclude_urls):
            return False
        if self.include_methods and method not in {m.upper() for m in self.include_methods}:
            return False
        if self.exclude_methods and method in {m.upper() for m in self.exclude_methods}:
            return False
        return self.custom is None or bool(self.custom(context))


MiddlewareResult: TypeAlias = "MiddlewareContext | None | Awaitable[MiddlewareContext | None]"


class Middleware(ABC):
    """Base class for phase handlers.

    Subclass one of RequestMiddleware, ResponseMiddleware or ErrorMiddleware
    and implement ``execute``. Within a phase, lower ``priority`` runs first.

    Example:
        >>> class AuthHeader(RequestMiddleware):
        ...     def __init__(self, token: str) -> None:
        ...         super().__init__("auth", priority=-10)
        ...         self.token = token
        ...
        ...     async def execute(self, context):
        ...         context.config.headers["Authorization"] = f"Bearer {self.token}"
        ...         return context
    """

    kind: MiddlewareKind

    def __init__(
        self,
        name: str,
        *,
        priority: int = 0,
        enabled: bool = True,
        conditions: MiddlewareConditions | None = None,
    ) -> None:
        self.name = name
        self.priority = priority
        self.enabled = enabled
        self.conditions = conditions

    @abstractmethod
    def execute(self, context: MiddlewareContext) -> MiddlewareResult:
        """Handle ``context``; may be sync or async."""
        ...

    def should_run(self, context: MiddlewareContext) -> bool:
        return self.enabled and (self.conditions is None or self.conditions.matches(context))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority}, enabled={self.enabled})"


class RequestMiddleware(Middleware):
    kind = MiddlewareKind.REQUEST


class ResponseMiddleware(Middleware):
    kind = MiddlewareKind.RESPONSE


class ErrorMiddleware(Middleware):
    kind = MiddlewareKind.ERROR


MiddlewareFn = Callable[[MiddlewareContext], "MiddlewareResult"]


class FunctionMiddleware(Middleware):
    """Middleware backed by a plain or async callable."""

    def __init__(
        self,
        name: str,
        fn: MiddlewareFn,
        *,
        kind: MiddlewareKind | str = MiddlewareKind.REQUEST,
        priority: int = 0,
        enabled: bool = True,
        conditions: MiddlewareConditions | None = None,
    ) -> None:
        super().__init__(name, priority=priority, enabled=enabled, conditions=conditions)
        self.kind = MiddlewareKind(kind)
        self.fn = fn

    def execute(self, context: MiddlewareContext) -> MiddlewareResult:
        return self.fn(context)


def middleware(
    kind: MiddlewareKind | str,
    *,
    name: str | None = None,
    priority: int = 0,
    enabled: bool = True,
    conditions: MiddlewareConditions | None = None,
) -> Callable[[MiddlewareFn], FunctionMiddleware]:
    """Decorator turning a function into a FunctionMiddleware.

    Example:
        >>> @middleware("response", priority=5)
        ... async def unwrap_envelope(context):
        ...     context.response = context.response.model_copy(update={"data": context.response.data["data"]})
        ...     return context
    """
    def decorate(fn: MiddlewareFn) -> FunctionMiddleware:
        return FunctionMiddleware(
            name or fn.__name__, fn, kind=kind, priority=priority, enabled=enabled, conditions=conditions,
        )
    return decorate
