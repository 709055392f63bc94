"""Timeout races for single operations.

Per-operation timeouts (middleware execution, plugin load, attempt timeout)
race the operation against a timer. The first to finish wins; a losing
operation is cancelled and abandoned without being awaited further.

Example:
    >>> result = await race_timeout(
    ...     fetch(),
    ...     timeout=5.0,
    ...     on_timeout=lambda: MiddlewareTimeoutError("auth", 5.0),
    ... )
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import Callable, TypeVar

T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await ``value`` if it is awaitable, else return it unchanged.

    Lets hooks and middleware be written as plain or async callables.
    """
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


def _consume(task: asyncio.Future[object]) -> None:
    """Retrieve an abandoned task's outcome so it is never reported as unhandled."""
    if not task.cancelled():
        task.exception()


async def race_timeout(
    operation: Awaitable[T],
    timeout: float | None,
    on_timeout: Callable[[], BaseException],
) -> T:
    """Run ``operation`` unless ``timeout`` seconds pass first.

    Args:
        operation: Awaitable to run
        timeout: Seconds allowed; None disables the timer
        on_timeout: Factory for the exception raised when the timer wins

    Raises:
        The exception built by ``on_timeout`` when the timer wins, or whatever
        ``operation`` raised.
    """
    if timeout is None:
        return await operation
    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if not done:
        task.cancel()
        task.add_done_callback(_consume)
        raise on_timeout()
    return task.result()
