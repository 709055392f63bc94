"""Cooperative cancellation signal carried by a request.

The signal never interrupts running code by itself. Components poll
``cancelled`` at their checkpoints (the middleware pipeline checks after every
middleware) or await ``wait()``.

Example:
    >>> signal = CancellationSignal()
    >>> config = RequestConfig(url="https://api.example.com", signal=signal)
    >>> signal.cancel("user navigated away")
    >>> signal.cancelled
    True
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger("fluxguard.concurrency")


class CancellationSignal:
    """One-shot cancellation flag with optional callbacks."""

    __slots__ = ("_reason", "_cancelled", "_event", "_callbacks")

    def __init__(self) -> None:
        self._reason: str | None = None
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._callbacks: list[Callable[[str | None], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self._cancelled:
            return False
        self._cancelled, self._reason = True, reason
        if self._event is not None:
            self._event.set()
        for callback in self._callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception("Cancellation callback failed")
        self._callbacks.clear()
        return True

    def add_callback(self, callback: Callable[[str | None], object]) -> None:
        """Run ``callback(reason)`` on cancel, immediately if already cancelled."""
        if self._cancelled:
            callback(self._reason)
        else:
            self._callbacks.append(callback)

    async def wait(self) -> str | None:
        """Suspend until the signal fires; returns the reason."""
        if not self._cancelled:
            if self._event is None:
                self._event = asyncio.Event()
            await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        return f"CancellationSignal(cancelled={self._cancelled}, reason={self._reason!r})"
