"""Ordered request, response and error middleware chains.

Each phase keeps its own list sorted by ascending priority (stable for equal
priorities). A run builds a fresh context, skips disabled or non-matching
entries, races every executed entry against the pipeline timeout and updates
that entry's cumulative metrics. Runs never raise: failures come back as an
unsuccessful MiddlewareExecutionResult.

Example:
    >>> pipeline = MiddlewarePipeline(MiddlewarePipelineConfig(timeout=2.0))
    >>> pipeline.add_request_middleware(FunctionMiddleware("trace", add_trace_header))
    >>> result = await pipeline.execute_request_middleware(RequestConfig(url="https://api.example.com"))
    >>> result.success, result.stats.middleware_count
    (True, 1)
"""

from __future__ import annotations

import logging
import math
import time
import tracemalloc
from dataclasses import dataclass, field, replace
from typing import Annotated, Callable

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat

from fluxguard.foundation.errors import (
    MiddlewareCancelledError,
    MiddlewareFailedError,
    MiddlewareRegistrationError,
    MiddlewareTimeoutError,
)
from fluxguard.http.models import RequestConfig, Response
from fluxguard.runtime.concurrency import maybe_await, race_timeout

from .middleware import Middleware, MiddlewareContext, MiddlewareKind

logger = logging.getLogger("fluxguard.middleware")


class MiddlewarePipelineConfig(BaseModel):
    """Pipeline behavior.

    Attributes:
        stop_on_error: End a run at the first failing middleware
        timeout: Seconds allowed per middleware; None disables the timer
        enable_profiling: Record traced memory growth per run (needs
            ``tracemalloc`` to be tracing)
        max_middleware: Capacity of each phase
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stop_on_error: bool = True
    timeout: PositiveFloat | None = 10.0
    enable_profiling: bool = False
    max_middleware: Annotated[int, Field(ge=1)] = 100


@dataclass(slots=True)
class MiddlewareMetrics:
    """Cumulative execution metrics for one middleware name."""
    name: str
    total_executions: int = 0
    total_time: float = 0.0
    average_time: float = 0.0
    min_time: float = math.inf
    max_time: float = 0.0
    success_rate: float = 100.0
    error_count: int = 0
    last_execution_time: float | None = None

    def record(self, duration: float, success: bool) -> None:
        self.total_executions += 1
        self.total_time += duration
        self.average_time = self.total_time / self.total_executions
        self.min_time = min(self.min_time, duration)
        self.max_time = max(self.max_time, duration)
        if not success:
            self.error_count += 1
        self.success_rate = (self.total_executions - self.error_count) / self.total_executions * 100
        self.last_execution_time = time.time()


@dataclass(slots=True)
class MiddlewareExecutionStats:
    total_time: float = 0.0
    middleware_count: int = 0
    middleware_times: dict[str, float] = field(default_factory=dict)
    memory_usage: int | None = None


@dataclass(slots=True)
class MiddlewareExecutionResult:
    """Outcome of one phase run; ``error`` is set exactly when ``success`` is False."""
    success: bool
    context: MiddlewareContext
    error: BaseException | None = None
    stats: MiddlewareExecutionStats = field(default_factory=MiddlewareExecutionStats)


@dataclass(frozen=True, slots=True)
class PipelineStats:
    total_middleware: int
    request_middleware: int
    response_middleware: int
    error_middleware: int
    enabled_middleware: int
    disabled_middleware: int


class MiddlewarePipeline:
    """Three independently ordered middleware chains with shared metrics.

    Args:
        config: Pipeline behavior (default: MiddlewarePipelineConfig())
        clock: High-resolution timer used for durations
    """

    __slots__ = ("_config", "_clock", "_chains", "_metrics")

    def __init__(
        self,
        config: MiddlewarePipelineConfig | None = None,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._config = config or MiddlewarePipelineConfig()
        self._clock = clock
        self._chains: dict[MiddlewareKind, list[Middleware]] = {kind: [] for kind in MiddlewareKind}
        self._metrics: dict[str, MiddlewareMetrics] = {}

    @property
    def config(self) -> MiddlewarePipelineConfig:
        return self._config

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def add_request_middleware(self, middleware: Middleware) -> None:
        self._add(MiddlewareKind.REQUEST, middleware)

    def add_response_middleware(self, middleware: Middleware) -> None:
        self._add(MiddlewareKind.RESPONSE, middleware)

    def add_error_middleware(self, middleware: Middleware) -> None:
        self._add(MiddlewareKind.ERROR, middleware)

    def use(self, middleware: Middleware) -> None:
        """Register ``middleware`` in the phase named by its ``kind``."""
        self._add(middleware.kind, middleware)

    def _add(self, kind: MiddlewareKind, middleware: Middleware) -> None:
        chain = self._chains[kind]
        if any(m.name == middleware.name for m in chain):
            raise MiddlewareRegistrationError(f"{kind.capitalize()} middleware '{middleware.name}' already exists")
        if len(chain) >= self._config.max_middleware:
            raise MiddlewareRegistrationError(
                f"Maximum {kind} middleware limit reached ({self._config.max_middleware})"
            )
        chain.append(middleware)
        chain.sort(key=lambda m: m.priority)
        self._metrics.setdefault(middleware.name, MiddlewareMetrics(middleware.name))
        logger.debug("Registered %s middleware '%s' (priority %d)", kind, middleware.name, middleware.priority)

    def remove_middleware(self, name: str, kind: MiddlewareKind | str | None = None) -> bool:
        """Remove ``name`` from one phase, or from every phase when ``kind`` is None."""
        kinds = [MiddlewareKind(kind)] if kind is not None else list(MiddlewareKind)
        removed = False
        for k in kinds:
            chain = self._chains[k]
            kept = [m for m in chain if m.name != name]
            if len(kept) != len(chain):
                self._chains[k] = kept
                removed = True
        if removed and not any(m.name == name for chain in self._chains.values() for m in chain):
            self._metrics.pop(name, None)
        return removed

    def set_middleware_enabled(self, name: str, enabled: bool) -> bool:
        found = False
        for chain in self._chains.values():
            for m in chain:
                if m.name == name:
                    m.enabled = enabled
                    found = True
        return found

    def get_middleware(self) -> dict[MiddlewareKind, list[Middleware]]:
        """Copies of the three chains in execution order."""
        return {kind: list(chain) for kind, chain in self._chains.items()}

    def clear(self) -> None:
        for chain in self._chains.values():
            chain.clear()
        self._metrics.clear()

    # ─────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────

    def get_metrics(self, name: str | None = None) -> MiddlewareMetrics | dict[str, MiddlewareMetrics]:
        """Copy of one middleware's metrics, or of all of them.

        Raises:
            KeyError: No middleware named ``name`` has been registered.
        """
        if name is None:
            return {n: replace(m) for n, m in self._metrics.items()}
        if (metrics := self._metrics.get(name)) is None:
            raise KeyError(f"Middleware '{name}' not found")
        return replace(metrics)

    def reset_metrics(self, name: str | None = None) -> None:
        names = [name] if name is not None else list(self._metrics)
        for n in names:
            if n in self._metrics:
                self._metrics[n] = MiddlewareMetrics(n)

    def get_stats(self) -> PipelineStats:
        every = [m for chain in self._chains.values() for m in chain]
        enabled = sum(1 for m in every if m.enabled)
        return PipelineStats(
            total_middleware=len(every),
            request_middleware=len(self._chains[MiddlewareKind.REQUEST]),
            response_middleware=len(self._chains[MiddlewareKind.RESPONSE]),
            error_middleware=len(self._chains[MiddlewareKind.ERROR]),
            enabled_middleware=enabled,
            disabled_middleware=len(every) - enabled,
        )

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    async def execute_request_middleware(self, config: RequestConfig) -> MiddlewareExecutionResult:
        return await self._run(MiddlewareKind.REQUEST, MiddlewareContext.create(config))

    async def execute_response_middleware(
        self, config: RequestConfig, response: Response,
    ) -> MiddlewareExecutionResult:
        return await self._run(MiddlewareKind.RESPONSE, MiddlewareContext.create(config, response=response))

    async def execute_error_middleware(
        self, config: RequestConfig, error: BaseException,
    ) -> MiddlewareExecutionResult:
        return await self._run(MiddlewareKind.ERROR, MiddlewareContext.create(config, error=error))

    async def _run(self, kind: MiddlewareKind, context: MiddlewareContext) -> MiddlewareExecutionResult:
        stats = MiddlewareExecutionStats()
        start = self._clock()
        memory_before = self._traced_memory()
        timeout = self._config.timeout

        def finish(error: BaseException | None = None) -> MiddlewareExecutionResult:
            stats.total_time = self._clock() - start
            if memory_before is not None and (memory_after := self._traced_memory()) is not None:
                stats.memory_usage = memory_after - memory_before
            return MiddlewareExecutionResult(error is None, context, error, stats)

        if context.cancelled:
            return finish(MiddlewareCancelledError())
        for mw in list(self._chains[kind]):
            t0 = self._clock()
            try:
                if not mw.should_run(context):
                    continue
                result = await race_timeout(
                    maybe_await(mw.execute(context)), timeout,
                    lambda name=mw.name: MiddlewareTimeoutError(name, timeout),  # type: ignore[misc]
                )
            except Exception as e:
                self._record(mw.name, stats, self._clock() - t0, success=False)
                if self._config.stop_on_error:
                    logger.error("%s middleware '%s' failed: %s", kind.capitalize(), mw.name, e)
                    return finish(e if isinstance(e, MiddlewareTimeoutError) else MiddlewareFailedError(mw.name, e))
                logger.warning("%s middleware '%s' failed, continuing: %s", kind.capitalize(), mw.name, e)
            else:
                self._record(mw.name, stats, self._clock() - t0, success=True)
                if isinstance(result, MiddlewareContext):
                    context.merge(result)
            if context.cancelled:
                return finish(MiddlewareCancelledError())
        return finish()

    def _record(self, name: str, stats: MiddlewareExecutionStats, duration: float, *, success: bool) -> None:
        stats.middleware_times[name] = duration
        stats.middleware_count += 1
        self._metrics.setdefault(name, MiddlewareMetrics(name)).record(duration, success)

    def _traced_memory(self) -> int | None:
        if not self._config.enable_profiling or not tracemalloc.is_tracing():
            return None
        return tracemalloc.get_traced_memory()[0]
