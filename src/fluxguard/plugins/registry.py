"""Plugin registry: registration, dependency-ordered lifecycle and integration.

The registry owns plugin state and the dependency graph. Starting a plugin
registers its contributed middleware into the bound MiddlewarePipeline and
attaches its event handlers to the registry's EventEmitter; stopping or
unregistering it detaches them again.

Example:
    >>> registry = PluginRegistry(pipeline=pipeline)
    >>> await registry.register(auth_plugin)
    >>> await registry.register(billing_plugin)  # depends on "auth"
    >>> await registry.start_all()
    >>> registry.get_stats().load_order
    ['auth', 'billing']
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat

from fluxguard.foundation.errors import (
    PluginAlreadyRegisteredError,
    PluginCircularDependencyError,
    PluginCommandNotFoundError,
    PluginDependencyMissingError,
    PluginError,
    PluginLimitError,
    PluginLoadTimeoutError,
    PluginNotFoundError,
)
from fluxguard.foundation.events import EventEmitter, EventKind
from fluxguard.runtime.concurrency import maybe_await, race_timeout
from fluxguard.runtime.middleware import MiddlewareKind, MiddlewarePipeline

from .graph import DependencyGraph
from .types import HookFn, Plugin, PluginConfig, PluginState

logger = logging.getLogger("fluxguard.plugins")

PluginFactory = Callable[[PluginConfig | None], "Plugin | Awaitable[Plugin]"]


class PluginRegistryConfig(BaseModel):
    """Registry limits and defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_plugins: Annotated[int, Field(ge=1)] = 50
    load_timeout: PositiveFloat | None = 10.0
    auto_start: bool = True


@dataclass(frozen=True, slots=True)
class RegistryStats:
    total_plugins: int
    plugins_by_state: dict[PluginState, int]
    load_order: list[str]


class PluginRegistry:
    """Registry of named plugins with a lifecycle state machine.

    Args:
        config: Limits and defaults (default: PluginRegistryConfig())
        pipeline: Pipeline that receives contributed middleware
        events: Sink for lifecycle events and contributed handlers
    """

    __slots__ = ("_config", "_pipeline", "_events", "_plugins", "_factories", "_graph", "_contributions")

    def __init__(
        self,
        config: PluginRegistryConfig | None = None,
        *,
        pipeline: MiddlewarePipeline | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        self._config = config or PluginRegistryConfig()
        self._pipeline = pipeline
        self._events = events or EventEmitter()
        self._plugins: dict[str, Plugin] = {}
        self._factories: dict[str, PluginFactory] = {}
        self._graph = DependencyGraph()
        self._contributions: dict[str, list[tuple[str, Any, Any]]] = {}

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def pipeline(self) -> MiddlewarePipeline | None:
        return self._pipeline

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    async def register(self, plugin: Plugin) -> None:
        """Validate, store and (with auto start) start ``plugin``.

        Raises:
            PluginAlreadyRegisteredError: Name taken.
            PluginLimitError: ``max_plugins`` reached.
            PluginCircularDependencyError: Self-dependency, or the new edges
                close a cycle. The graph is left as it was.
            PluginDependencyMissingError: A dependency is not registered.
        """
        name = plugin.name
        if name in self._plugins:
            raise PluginAlreadyRegisteredError(name)
        if len(self._plugins) >= self._config.max_plugins:
            raise PluginLimitError(self._config.max_plugins)
        if name in plugin.dependencies:
            raise PluginCircularDependencyError([name, name])
        for dep in plugin.dependencies:
            if dep not in self._plugins:
                raise PluginDependencyMissingError(name, dep)

        self._graph.add_node(name, plugin.dependencies)
        if (cycle := self._graph.find_cycle(name)) is not None:
            self._graph.remove_node(name)
            raise PluginCircularDependencyError(cycle)

        plugin.state = PluginState.UNINITIALIZED
        self._plugins[name] = plugin
        logger.info("Registered plugin '%s' v%s", name, plugin.metadata.version)
        self._events.emit(EventKind.PLUGIN_REGISTERED, plugin)

        if self._config.auto_start and plugin.config.auto_start and plugin.config.enabled:
            await self.start(name)

    async def unregister(self, name: str) -> None:
        """Stop, dispose and remove ``name``, detaching everything it contributed."""
        plugin = self._require(name)
        if dependents := [d for d in self._graph.get_dependents(name) if d in self._plugins]:
            logger.warning("Unregistering plugin '%s' still required by %s", name, ", ".join(dependents))
        await self.stop(name)
        async with self._guard(plugin):
            await _call_hook(plugin.hooks.on_dispose, plugin)
            await plugin.dispose()
        self._detach(name)
        del self._plugins[name]
        self._graph.remove_node(name)
        logger.info("Unregistered plugin '%s'", name)
        self._events.emit(EventKind.PLUGIN_UNREGISTERED, plugin)

    def register_factory(self, name: str, factory: PluginFactory) -> None:
        if name in self._factories:
            raise PluginAlreadyRegisteredError(name, kind="Plugin factory")
        self._factories[name] = factory

    def unregister_factory(self, name: str) -> bool:
        return self._factories.pop(name, None) is not None

    async def load(self, name: str, config: PluginConfig | None = None) -> Plugin:
        """Build a plugin with the factory named ``name`` and register it.

        Raises:
            PluginNotFoundError: No such factory.
            PluginLoadTimeoutError: The factory did not finish within ``load_timeout``.
        """
        if (factory := self._factories.get(name)) is None:
            raise PluginNotFoundError(name, kind="Plugin factory")
        timeout = self._config.load_timeout
        plugin = await race_timeout(
            maybe_await(factory(config)), timeout, lambda: PluginLoadTimeoutError(name, timeout or 0.0),
        )
        await self.register(plugin)
        return plugin

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    async def initialize(self, name: str) -> None:
        """Initialize dependencies first, then ``name``. No-op once past UNINITIALIZED."""
        plugin = self._require(name)
        self._ensure_recoverable(plugin)
        if plugin.state != PluginState.UNINITIALIZED:
            return
        self._set_state(plugin, PluginState.INITIALIZING)
        async with self._guard(plugin):
            for dep in plugin.dependencies:
                await self.initialize(dep)
            await _call_hook(plugin.hooks.on_init, plugin)
            await plugin.init()
        self._set_state(plugin, PluginState.INITIALIZED)

    async def start(self, name: str) -> None:
        """Start dependencies first, then ``name``, then integrate its capabilities."""
        plugin = self._require(name)
        self._ensure_recoverable(plugin)
        if plugin.state == PluginState.UNINITIALIZED:
            await self.initialize(name)
        if plugin.state not in (PluginState.INITIALIZED, PluginState.STOPPED):
            return
        self._set_state(plugin, PluginState.STARTING)
        async with self._guard(plugin):
            for dep in plugin.dependencies:
                await self.start(dep)
            await _call_hook(plugin.hooks.on_start, plugin)
            await plugin.start()
            self._integrate(plugin)
        self._set_state(plugin, PluginState.STARTED)

    async def stop(self, name: str) -> None:
        plugin = self._require(name)
        if plugin.state != PluginState.STARTED:
            return
        self._set_state(plugin, PluginState.STOPPING)
        async with self._guard(plugin):
            await _call_hook(plugin.hooks.on_stop, plugin)
            await plugin.stop()
        self._detach(name)
        self._set_state(plugin, PluginState.STOPPED)

    async def start_all(self) -> None:
        """Start every enabled plugin in dependency order (ties by name).

        Raises:
            PluginCircularDependencyError: The graph has no complete order.
        """
        for name in self._graph.get_load_order():
            if (plugin := self._plugins.get(name)) is not None and plugin.config.enabled:
                await self.start(name)

    async def stop_all(self) -> None:
        """Stop running plugins in reverse registration order."""
        for name in reversed(list(self._plugins)):
            await self.stop(name)

    async def dispose(self) -> None:
        """Unregister everything (reverse registration order) and drop factories."""
        for name in reversed(list(self._plugins)):
            await self.unregister(name)
        self._factories.clear()
        self._graph.clear()

    # ─────────────────────────────────────────────────────────────────
    # Configuration & Commands
    # ─────────────────────────────────────────────────────────────────

    async def update_config(self, name: str, **changes: Any) -> PluginConfig:
        """Replace fields of a plugin's config, notify its hook and emit ``plugin:config-changed``.

        A failing ``on_config_change`` hook puts the old config back, emits
        ``plugin:error`` and re-raises. The lifecycle state is left alone.
        """
        plugin = self._require(name)
        old = plugin.config
        new = PluginConfig(**{**old.model_dump(), **changes})
        plugin.config = new
        try:
            await _call_hook(plugin.hooks.on_config_change, plugin, old, new)
        except Exception as e:
            plugin.config = old
            logger.error("Config change of plugin '%s' rejected: %s", name, e)
            self._events.emit(EventKind.PLUGIN_ERROR, plugin, e)
            raise
        self._events.emit(EventKind.PLUGIN_CONFIG_CHANGED, plugin, old, new)
        return new

    async def execute_command(self, plugin_name: str, command: str, *args: Any, **kwargs: Any) -> Any:
        plugin = self._require(plugin_name)
        if (fn := plugin.capabilities.commands.get(command)) is None:
            raise PluginCommandNotFoundError(plugin_name, command)
        return await maybe_await(fn(*args, **kwargs))

    # ─────────────────────────────────────────────────────────────────
    # Queries & Events
    # ─────────────────────────────────────────────────────────────────

    def get_plugin(self, name: str) -> Plugin | None:
        return self._plugins.get(name)

    def get_all_plugins(self) -> list[Plugin]:
        return list(self._plugins.values())

    def get_plugins_by_state(self, state: PluginState | str) -> list[Plugin]:
        state = PluginState(state)
        return [p for p in self._plugins.values() if p.state == state]

    def get_stats(self) -> RegistryStats:
        try:
            order = self._graph.get_load_order()
        except PluginCircularDependencyError:
            order = []
        counts = Counter(p.state for p in self._plugins.values())
        return RegistryStats(
            total_plugins=len(self._plugins),
            plugins_by_state={state: counts.get(state, 0) for state in PluginState},
            load_order=order,
        )

    def on(self, kind: EventKind | str, listener: Callable[..., object]) -> None:
        self._events.on(kind, listener)

    def off(self, kind: EventKind | str, listener: Callable[..., object]) -> bool:
        return self._events.off(kind, listener)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _require(self, name: str) -> Plugin:
        if (plugin := self._plugins.get(name)) is None:
            raise PluginNotFoundError(name)
        return plugin

    @staticmethod
    def _ensure_recoverable(plugin: Plugin) -> None:
        if plugin.state == PluginState.ERROR:
            raise PluginError(f"Plugin '{plugin.name}' is in ERROR state; unregister and register it again")

    def _set_state(self, plugin: Plugin, state: PluginState) -> None:
        old, plugin.state = plugin.state, state
        logger.debug("Plugin '%s': %s -> %s", plugin.name, old.value, state.value)
        if state == PluginState.STARTED:
            logger.info("Plugin '%s' started", plugin.name)
        self._events.emit(EventKind.PLUGIN_STATE_CHANGED, plugin, old, state)

    @asynccontextmanager
    async def _guard(self, plugin: Plugin) -> AsyncIterator[None]:
        """Move ``plugin`` to ERROR, emit ``plugin:error`` and call ``on_error`` on failure; re-raise."""
        try:
            yield
        except Exception as e:
            self._set_state(plugin, PluginState.ERROR)
            logger.error("Plugin '%s' failed: %s", plugin.name, e)
            self._events.emit(EventKind.PLUGIN_ERROR, plugin, e)
            try:
                await _call_hook(plugin.hooks.on_error, plugin, e)
            except Exception:
                logger.exception("on_error hook of plugin '%s' failed", plugin.name)
            raise

    def _integrate(self, plugin: Plugin) -> None:
        """Register contributed middleware and event handlers; all or nothing."""
        try:
            self._attach(plugin)
        except Exception:
            self._detach(plugin.name)
            raise

    def _attach(self, plugin: Plugin) -> None:
        record = self._contributions.setdefault(plugin.name, [])
        mw = plugin.capabilities.middleware
        if (pipeline := self._pipeline) is not None:
            for kind, items, add in (
                (MiddlewareKind.REQUEST, mw.request, pipeline.add_request_middleware),
                (MiddlewareKind.RESPONSE, mw.response, pipeline.add_response_middleware),
                (MiddlewareKind.ERROR, mw.error, pipeline.add_error_middleware),
            ):
                for middleware in items:
                    add(middleware)
                    record.append(("middleware", kind, middleware.name))
        elif mw:
            logger.warning("Plugin '%s' contributes middleware but no pipeline is bound", plugin.name)
        for kind, handler in plugin.capabilities.events.items():
            self._events.on(kind, handler)
            record.append(("event", kind, handler))

    def _detach(self, name: str) -> None:
        for what, kind, item in self._contributions.pop(name, []):
            if what == "middleware" and self._pipeline is not None:
                self._pipeline.remove_middleware(item, kind)
            elif what == "event":
                self._events.off(kind, item)


async def _call_hook(hook: HookFn | None, *args: object) -> None:
    if hook is not None:
        await maybe_await(hook(*args))
