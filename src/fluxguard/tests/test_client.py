"""End-to-end tests for the resilient request flow."""

from __future__ import annotations

import httpx
import pytest

from fluxguard import ResilientClient
from fluxguard.foundation.errors import ErrorCode, FluxError, HttpError, MiddlewareFailedError
from fluxguard.http import HttpxExecutor, RequestConfig, Response
from fluxguard.runtime.middleware import MiddlewareContext, middleware
from fluxguard.runtime.resilience import CircuitBreakerConfig
from fluxguard.runtime.retry import AdvancedRetryScheduler

from conftest import FakeClock, FakeSleep, ScriptedExecutor, ok, server_error


@pytest.fixture
def scheduler(clock: FakeClock, fake_sleep: FakeSleep) -> AdvancedRetryScheduler:
    return AdvancedRetryScheduler(
        default_breaker_config=CircuitBreakerConfig(minimum_requests=2),
        sleep=fake_sleep, clock=clock, random=lambda: 0.0,
    )


class TestRequestFlow:
    """Request phase, retried execution, response phase."""

    @pytest.mark.asyncio
    async def test_middleware_wraps_execution(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        executor = ScriptedExecutor([ok(data={"id": 1})])
        client = ResilientClient(executor, scheduler=scheduler)

        @middleware("request")
        def auth(ctx: MiddlewareContext) -> None:
            ctx.config.headers["Authorization"] = "Bearer t"

        @middleware("response")
        def unwrap(ctx: MiddlewareContext) -> None:
            ctx.response = ctx.response.model_copy(update={"data": ctx.response.data["id"]})  # type: ignore[union-attr]

        client.pipeline.use(auth)
        client.pipeline.use(unwrap)

        response = await client.request(request_config)

        assert response.data == 1
        assert executor.configs[0].headers == {"Authorization": "Bearer t"}
        assert request_config.headers == {}

    @pytest.mark.asyncio
    async def test_retries_transient_failures(
        self, scheduler: AdvancedRetryScheduler, fake_sleep: FakeSleep, request_config: RequestConfig,
    ) -> None:
        executor = ScriptedExecutor([server_error(), server_error(), ok()])
        client = ResilientClient(executor, scheduler=scheduler)

        response = await client.request(request_config)

        assert response.status == 200
        assert executor.calls == 3
        assert fake_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_request_phase_failure_skips_executor(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        executor = ScriptedExecutor([ok()])
        client = ResilientClient(executor, scheduler=scheduler)

        @middleware("request")
        def broken(ctx: MiddlewareContext) -> None:
            raise RuntimeError("bad signer")

        client.pipeline.use(broken)
        with pytest.raises(MiddlewareFailedError):
            await client.request(request_config)
        assert executor.calls == 0

    @pytest.mark.asyncio
    async def test_response_phase_failure_raised(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        client = ResilientClient(ScriptedExecutor([ok()]), scheduler=scheduler)

        @middleware("response")
        def broken(ctx: MiddlewareContext) -> None:
            raise ValueError("schema mismatch")

        client.pipeline.use(broken)
        with pytest.raises(MiddlewareFailedError, match="schema mismatch"):
            await client.request(request_config)


class TestErrorPhase:
    """Error middleware after retries are exhausted."""

    @pytest.mark.asyncio
    async def test_original_error_without_error_middleware(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        client = ResilientClient(ScriptedExecutor([server_error(500)]), scheduler=scheduler, retry={"max_attempts": 1})
        with pytest.raises(HttpError) as exc_info:
            await client.request(request_config)
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_error_middleware_recovers(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        client = ResilientClient(ScriptedExecutor([server_error()]), scheduler=scheduler, retry={"max_attempts": 2})

        @middleware("error")
        def fallback(ctx: MiddlewareContext) -> None:
            ctx.response = Response(status=200, data="cached")

        client.pipeline.use(fallback)
        response = await client.request(request_config)
        assert response.data == "cached"

    @pytest.mark.asyncio
    async def test_error_middleware_replaces_error(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        client = ResilientClient(ScriptedExecutor([server_error()]), scheduler=scheduler, retry={"max_attempts": 1})

        @middleware("error")
        def translate(ctx: MiddlewareContext) -> None:
            ctx.error = FluxError("users service unavailable")

        client.pipeline.use(translate)
        with pytest.raises(FluxError, match="users service unavailable") as exc_info:
            await client.request(request_config)
        assert isinstance(exc_info.value.__cause__, HttpError)


class TestRetryOverrides:
    """Client-level and call-level retry settings."""

    @pytest.mark.asyncio
    async def test_call_override_merges_over_client_override(
        self, scheduler: AdvancedRetryScheduler, fake_sleep: FakeSleep, request_config: RequestConfig,
    ) -> None:
        executor = ScriptedExecutor([server_error()])
        client = ResilientClient(executor, scheduler=scheduler, retry={"max_attempts": 2})

        with pytest.raises(HttpError):
            await client.request(request_config, retry={"initial_delay": 0.25})

        assert executor.calls == 2
        assert fake_sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_circuit_breaker_gates_attempts(
        self, scheduler: AdvancedRetryScheduler, request_config: RequestConfig,
    ) -> None:
        executor = ScriptedExecutor([server_error()])
        client = ResilientClient(executor, scheduler=scheduler, circuit_breaker="users-api")

        with pytest.raises(FluxError) as exc_info:
            await client.request(request_config, retry={"max_attempts": 5})

        assert exc_info.value.code == ErrorCode.CIRCUIT_BREAKER_OPEN
        assert executor.calls == 2
        stats = scheduler.get_all_circuit_breaker_stats()["users-api"]
        assert stats.rejected_requests == 1


@pytest.mark.asyncio
async def test_end_to_end_over_httpx(scheduler: AdvancedRetryScheduler) -> None:
    """Retries a 503 from a mocked server, then succeeds."""
    statuses = iter([503, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        return httpx.Response(status, json={"status": status})

    async with HttpxExecutor(transport=httpx.MockTransport(handler)) as executor:
        client = ResilientClient(executor, scheduler=scheduler)
        response = await client.request(RequestConfig(url="https://users.example.com/me"))

    assert response.status == 200
    assert response.data == {"status": 200}
