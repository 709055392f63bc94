"""Tests for the event sink."""

from __future__ import annotations

import asyncio

import pytest

from fluxguard.foundation.events import EventEmitter, EventKind


def test_emit_delivers_in_order() -> None:
    """Listeners run in registration order with the emitted args."""
    events = EventEmitter()
    seen: list[tuple[str, object]] = []
    events.on(EventKind.PLUGIN_REGISTERED, lambda p: seen.append(("first", p)))
    events.on("plugin:registered", lambda p: seen.append(("second", p)))

    assert events.emit(EventKind.PLUGIN_REGISTERED, "auth") == 2
    assert seen == [("first", "auth"), ("second", "auth")]


def test_emit_without_listeners() -> None:
    assert EventEmitter().emit(EventKind.STATE_CHANGED, "x") == 0


def test_once_fires_a_single_time() -> None:
    events = EventEmitter()
    calls: list[int] = []
    events.once(EventKind.PLUGIN_ERROR, lambda: calls.append(1))
    events.emit(EventKind.PLUGIN_ERROR)
    events.emit(EventKind.PLUGIN_ERROR)
    assert calls == [1]
    assert events.listener_count(EventKind.PLUGIN_ERROR) == 0


def test_off_removes_listener() -> None:
    events = EventEmitter()
    listener = lambda: None  # noqa: E731
    events.on(EventKind.STATE_CHANGED, listener)
    assert events.off(EventKind.STATE_CHANGED, listener) is True
    assert events.off(EventKind.STATE_CHANGED, listener) is False
    assert events.listener_count() == 0


def test_failing_listener_is_isolated(caplog: pytest.LogCaptureFixture) -> None:
    """A raising listener is logged and delivery continues."""
    events = EventEmitter()
    seen: list[str] = []

    def broken(_: str) -> None:
        raise RuntimeError("listener bug")

    events.on(EventKind.PLUGIN_UNREGISTERED, broken)
    events.on(EventKind.PLUGIN_UNREGISTERED, seen.append)
    events.emit(EventKind.PLUGIN_UNREGISTERED, "auth")

    assert seen == ["auth"]
    assert "Error in event listener" in caplog.text


def test_remove_all_listeners() -> None:
    events = EventEmitter()
    events.on(EventKind.STATE_CHANGED, lambda *a: None)
    events.on(EventKind.PLUGIN_ERROR, lambda *a: None)
    events.remove_all_listeners(EventKind.STATE_CHANGED)
    assert events.listener_count() == 1
    events.remove_all_listeners()
    assert events.listener_count() == 0


@pytest.mark.asyncio
async def test_async_listener_scheduled() -> None:
    """Coroutine listeners run on the running loop."""
    events = EventEmitter()
    done = asyncio.Event()

    async def listener(name: str) -> None:
        done.set()

    events.on(EventKind.PLUGIN_REGISTERED, listener)
    events.emit(EventKind.PLUGIN_REGISTERED, "auth")
    await asyncio.wait_for(done.wait(), timeout=1.0)
