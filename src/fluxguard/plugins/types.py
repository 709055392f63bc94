"""Plugin data model: metadata, config, hooks, capabilities and lifecycle state."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fluxguard.foundation.events import EventKind
from fluxguard.runtime.middleware import Middleware


class PluginState(StrEnum):
    """Lifecycle states.

    UNINITIALIZED → INITIALIZING → INITIALIZED → STARTING → STARTED →
    STOPPING → STOPPED; any failure → ERROR.
    """
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class PluginMetadata(BaseModel):
    """Descriptive identity of a plugin. ``name`` is the registry key."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    name: Annotated[str, Field(min_length=1)]
    version: Annotated[str, Field(min_length=1)] = "1.0.0"
    description: str = ""
    author: str | None = None
    dependencies: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    homepage: str | None = None
    license: str | None = None

    @field_validator("dependencies")
    @classmethod
    def _unique_dependencies(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))


class PluginConfig(BaseModel):
    """Runtime switches for a plugin."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    settings: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    auto_start: bool = True


HookFn = Callable[..., "Awaitable[object] | object"]


@dataclass(slots=True)
class PluginHooks:
    """Optional lifecycle callbacks; each may be sync or async.

    Signatures:
        on_init / on_start / on_stop / on_dispose: ``(plugin)``
        on_config_change: ``(plugin, old_config, new_config)``
        on_error: ``(plugin, error)``
    """
    on_init: HookFn | None = None
    on_start: HookFn | None = None
    on_stop: HookFn | None = None
    on_dispose: HookFn | None = None
    on_config_change: HookFn | None = None
    on_error: HookFn | None = None


@dataclass(slots=True)
class MiddlewareCapabilities:
    request: list[Middleware] = field(default_factory=list)
    response: list[Middleware] = field(default_factory=list)
    error: list[Middleware] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.request or self.response or self.error)


@dataclass(slots=True)
class PluginCapabilities:
    """What a started plugin contributes to the registry's pipeline and event sink."""
    middleware: MiddlewareCapabilities = field(default_factory=MiddlewareCapabilities)
    events: dict[EventKind, Callable[..., object]] = field(default_factory=dict)
    commands: dict[str, Callable[..., object]] = field(default_factory=dict)


@dataclass(eq=False)
class Plugin:
    """A pluggable module.

    Override ``init``, ``start``, ``stop`` or ``dispose`` in a subclass for
    lifecycle work; hooks run just before the matching method.

    Example:
        >>> class Metrics(Plugin):
        ...     async def start(self) -> None:
        ...         self.capabilities.commands["snapshot"] = self.snapshot
        >>> plugin = Metrics(PluginMetadata(name="metrics", dependencies=("auth",)))
    """

    metadata: PluginMetadata
    config: PluginConfig = field(default_factory=PluginConfig)
    hooks: PluginHooks = field(default_factory=PluginHooks)
    capabilities: PluginCapabilities = field(default_factory=PluginCapabilities)
    state: PluginState = PluginState.UNINITIALIZED

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def dependencies(self) -> tuple[str, ...]:
        return self.metadata.dependencies

    async def init(self) -> None:
        """One-time setup."""

    async def start(self) -> None:
        """Begin work."""

    async def stop(self) -> None:
        """Pause work; ``start`` may be called again afterwards."""

    async def dispose(self) -> None:
        """Release resources; the plugin is being removed."""
