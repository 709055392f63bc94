"""Resilient request flow: request phase, retried execution, response or error phase.

Example:
    >>> async with HttpxExecutor() as executor:
    ...     client = ResilientClient(
    ...         executor,
    ...         retry={"max_attempts": 5, "backoff_strategy": "fibonacci"},
    ...         circuit_breaker="users-api",
    ...     )
    ...     client.pipeline.use(auth_header)
    ...     response = await client.request(RequestConfig(url="https://users.example.com/me"))
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Callable

from fluxguard.http.models import RequestConfig, Response
from fluxguard.runtime.middleware import MiddlewarePipeline
from fluxguard.runtime.retry import AdvancedRetryScheduler, RetryOverride

logger = logging.getLogger("fluxguard.client")

RequestExecutor = Callable[[RequestConfig], Awaitable[Response]]


class ResilientClient:
    """Drives one logical request through the control plane.

    Args:
        executor: Performs a single attempt for a request config
        pipeline: Middleware pipeline (default: empty MiddlewarePipeline())
        scheduler: Retry scheduler (default: AdvancedRetryScheduler())
        retry: Per-client retry override merged over the scheduler defaults
        circuit_breaker: Breaker name gating every attempt, or None
    """

    __slots__ = ("_executor", "_pipeline", "_scheduler", "_retry", "_breaker")

    def __init__(
        self,
        executor: RequestExecutor,
        pipeline: MiddlewarePipeline | None = None,
        scheduler: AdvancedRetryScheduler | None = None,
        retry: RetryOverride | None = None,
        circuit_breaker: str | None = None,
    ) -> None:
        self._executor = executor
        self._pipeline = pipeline or MiddlewarePipeline()
        self._scheduler = scheduler or AdvancedRetryScheduler()
        self._retry = retry
        self._breaker = circuit_breaker

    @property
    def pipeline(self) -> MiddlewarePipeline:
        return self._pipeline

    @property
    def scheduler(self) -> AdvancedRetryScheduler:
        return self._scheduler

    async def request(
        self,
        config: RequestConfig,
        *,
        retry: RetryOverride | None = None,
        circuit_breaker: str | None = None,
    ) -> Response:
        """Send ``config`` and return the (possibly rewritten) response.

        Raises:
            The request phase's error when it fails, the response phase's error
            when it fails, or the (possibly replaced) request error when no
            error middleware recovered it with a response.
        """
        before = await self._pipeline.execute_request_middleware(config)
        if not before.success:
            raise before.error  # type: ignore[misc]
        prepared = before.context.config

        try:
            response = await self._scheduler.execute_with_retry(
                lambda: self._executor(prepared),
                self._resolve_retry(retry),
                circuit_breaker or self._breaker,
            )
        except Exception as e:
            handled = await self._pipeline.execute_error_middleware(prepared, e)
            ctx = handled.context
            if ctx.response is not None:
                logger.info("Request %s %s recovered by error middleware", prepared.method, prepared.url)
                return ctx.response
            if not handled.success:
                logger.warning("Error middleware failed: %s", handled.error)
            if ctx.error is None or ctx.error is e:
                raise
            raise ctx.error from e

        after = await self._pipeline.execute_response_middleware(prepared, response)
        if not after.success:
            raise after.error  # type: ignore[misc]
        return after.context.response or response

    def _resolve_retry(self, override: RetryOverride | None) -> RetryOverride | None:
        if override is None:
            return self._retry
        if self._retry is None:
            return override
        return self._scheduler.default_config.merged(self._retry).merged(override)
