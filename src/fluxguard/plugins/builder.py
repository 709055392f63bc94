"""Fluent plugin construction.

Example:
    >>> plugin = (
    ...     PluginBuilder("request-id")
    ...     .version("2.1.0")
    ...     .depends_on("auth")
    ...     .request_middleware(FunctionMiddleware("request-id", stamp_request_id))
    ...     .command("last", lambda: last_id)
    ...     .hook("on_start", lambda p: print(f"{p.name} up"))
    ...     .build()
    ... )
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any, Callable

from fluxguard.foundation.errors import PluginError
from fluxguard.foundation.events import EventKind
from fluxguard.runtime.middleware import Middleware

from .types import (
    HookFn,
    MiddlewareCapabilities,
    Plugin,
    PluginCapabilities,
    PluginConfig,
    PluginHooks,
    PluginMetadata,
)

_HOOK_NAMES = frozenset(f.name for f in fields(PluginHooks))


class PluginBuilder:
    """Accumulates plugin parts; ``build`` validates and assembles them."""

    __slots__ = ("_metadata", "_config", "_hooks", "_middleware", "_events", "_commands")

    def __init__(self, name: str | None = None) -> None:
        self._metadata: dict[str, Any] = {"name": name} if name else {}
        self._config: dict[str, Any] = {}
        self._hooks: dict[str, HookFn] = {}
        self._middleware = MiddlewareCapabilities()
        self._events: dict[EventKind, Callable[..., object]] = {}
        self._commands: dict[str, Callable[..., object]] = {}

    def metadata(self, **values: Any) -> PluginBuilder:
        """Set any PluginMetadata fields (name, version, description, ...)."""
        self._metadata.update(values)
        return self

    def version(self, version: str) -> PluginBuilder:
        return self.metadata(version=version)

    def depends_on(self, *names: str) -> PluginBuilder:
        self._metadata["dependencies"] = (*self._metadata.get("dependencies", ()), *names)
        return self

    def config(self, **values: Any) -> PluginBuilder:
        """Set any PluginConfig fields (enabled, settings, priority, auto_start)."""
        self._config.update(values)
        return self

    def hook(self, name: str, handler: HookFn) -> PluginBuilder:
        if name not in _HOOK_NAMES:
            raise PluginError(f"Unknown hook '{name}'; expected one of {', '.join(sorted(_HOOK_NAMES))}")
        self._hooks[name] = handler
        return self

    def request_middleware(self, middleware: Middleware) -> PluginBuilder:
        self._middleware.request.append(middleware)
        return self

    def response_middleware(self, middleware: Middleware) -> PluginBuilder:
        self._middleware.response.append(middleware)
        return self

    def error_middleware(self, middleware: Middleware) -> PluginBuilder:
        self._middleware.error.append(middleware)
        return self

    def on(self, kind: EventKind | str, handler: Callable[..., object]) -> PluginBuilder:
        self._events[EventKind(kind)] = handler
        return self

    def command(self, name: str, fn: Callable[..., object]) -> PluginBuilder:
        self._commands[name] = fn
        return self

    def build(self) -> Plugin:
        """Assemble the plugin.

        Raises:
            PluginError: Name or version missing.
        """
        if not self._metadata.get("name"):
            raise PluginError("Plugin name is required")
        if not self._metadata.get("version", "1.0.0"):
            raise PluginError("Plugin version is required")
        return Plugin(
            metadata=PluginMetadata(**self._metadata),
            config=PluginConfig(**self._config),
            hooks=PluginHooks(**self._hooks),
            capabilities=PluginCapabilities(
                middleware=MiddlewareCapabilities(
                    list(self._middleware.request), list(self._middleware.response), list(self._middleware.error),
                ),
                events=dict(self._events),
                commands=dict(self._commands),
            ),
        )
