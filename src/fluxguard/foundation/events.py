"""Publish/subscribe event sink keyed by a closed set of event kinds.

The circuit breaker and the plugin registry notify an EventEmitter of state
transitions and lifecycle events. Listeners run synchronously in registration
order; a failing listener is logged and never stops delivery to the rest.

Example:
    >>> events = EventEmitter()
    >>> events.on(EventKind.PLUGIN_REGISTERED, lambda plugin: print(plugin.name))
    >>> events.emit(EventKind.PLUGIN_REGISTERED, plugin)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

logger = logging.getLogger("fluxguard.events")

Listener = Callable[..., object]


class EventKind(StrEnum):
    """Event kinds understood by the sink."""
    STATE_CHANGED = "state-changed"
    PLUGIN_REGISTERED = "plugin:registered"
    PLUGIN_UNREGISTERED = "plugin:unregistered"
    PLUGIN_STATE_CHANGED = "plugin:state-changed"
    PLUGIN_ERROR = "plugin:error"
    PLUGIN_CONFIG_CHANGED = "plugin:config-changed"


@dataclass(slots=True, frozen=True)
class _Subscription:
    listener: Listener
    once: bool = False


class EventEmitter:
    """Explicit per-kind listener lists with fault-isolated delivery.

    Listeners may be plain callables or coroutine functions; coroutines are
    scheduled on the running loop and their failures logged.
    """

    __slots__ = ("_listeners", "_max_listeners", "_pending")

    def __init__(self, max_listeners: int = 100) -> None:
        self._listeners: dict[EventKind, list[_Subscription]] = {}
        self._max_listeners = max_listeners
        self._pending: set[asyncio.Task[object]] = set()

    def on(self, kind: EventKind | str, listener: Listener) -> None:
        """Subscribe ``listener`` to ``kind``."""
        self._add(EventKind(kind), _Subscription(listener))

    def once(self, kind: EventKind | str, listener: Listener) -> None:
        """Subscribe ``listener`` for the next emission only."""
        self._add(EventKind(kind), _Subscription(listener, once=True))

    def off(self, kind: EventKind | str, listener: Listener) -> bool:
        """Unsubscribe the first registration of ``listener``. Returns True if found."""
        subs = self._listeners.get(EventKind(kind))
        if not subs:
            return False
        for i, sub in enumerate(subs):
            if sub.listener == listener:
                del subs[i]
                if not subs:
                    del self._listeners[EventKind(kind)]
                return True
        return False

    def emit(self, kind: EventKind | str, *args: object) -> int:
        """Deliver to every listener of ``kind``. Returns the number notified."""
        kind = EventKind(kind)
        subs = self._listeners.get(kind)
        if not subs:
            return 0
        snapshot = list(subs)  # listeners may (un)subscribe while we iterate
        if any(s.once for s in snapshot):
            remaining = [s for s in subs if not s.once]
            if remaining:
                self._listeners[kind] = remaining
            else:
                del self._listeners[kind]
        for sub in snapshot:
            try:
                result = sub.listener(*args)
                if inspect.isawaitable(result):
                    self._schedule(kind, result)
            except Exception:
                logger.exception("Error in event listener for '%s'", kind)
        return len(snapshot)

    def listener_count(self, kind: EventKind | str | None = None) -> int:
        if kind is None:
            return sum(len(subs) for subs in self._listeners.values())
        return len(self._listeners.get(EventKind(kind), ()))

    def remove_all_listeners(self, kind: EventKind | str | None = None) -> None:
        if kind is None:
            self._listeners.clear()
        else:
            self._listeners.pop(EventKind(kind), None)

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _add(self, kind: EventKind, sub: _Subscription) -> None:
        subs = self._listeners.setdefault(kind, [])
        if len(subs) >= self._max_listeners:
            logger.warning("Listener limit (%d) reached for '%s'", self._max_listeners, kind)
        subs.append(sub)

    def _schedule(self, kind: EventKind, awaitable: object) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async listener for '%s' dropped: no running event loop", kind)
            close = getattr(awaitable, "close", None)
            close and close()
            return

        async def _run() -> None:
            try:
                await awaitable  # type: ignore[misc]
            except Exception:
                logger.exception("Error in async event listener for '%s'", kind)

        task = asyncio.ensure_future(_run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
