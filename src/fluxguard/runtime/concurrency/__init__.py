"""Concurrency helpers: timeout races and cooperative cancellation."""

from .signal import CancellationSignal
from .wait import maybe_await, race_timeout

__all__ = ["CancellationSignal", "maybe_await", "race_timeout"]
