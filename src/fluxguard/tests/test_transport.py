"""Tests for the httpx-backed request executor, using httpx.MockTransport."""

from __future__ import annotations

import httpx
import orjson
import pytest

from fluxguard.foundation.errors import ErrorCode, HttpError
from fluxguard.http import HttpxExecutor, RequestConfig
from fluxguard.runtime.concurrency import CancellationSignal


def mock(handler: object) -> HttpxExecutor:
    return HttpxExecutor(transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


# ═════════════════════════════════════════════════════════════════════════════
# Successful Responses
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sends_request_details() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={"id": 7})

    config = RequestConfig(
        url="https://api.example.com/users",
        method="post",
        headers={"Authorization": "Bearer t"},
        params={"dry_run": "1"},
        json={"name": "ada"},
    )
    async with mock(handler) as executor:
        response = await executor(config)

    request = captured[0]
    assert request.method == "POST"
    assert request.url.params["dry_run"] == "1"
    assert request.headers["Authorization"] == "Bearer t"
    assert orjson.loads(request.content) == {"name": "ada"}
    assert response.status == 201
    assert response.ok is True
    assert response.data == {"id": 7}
    assert response.config is config
    assert response.url.startswith("https://api.example.com/users")


@pytest.mark.asyncio
async def test_text_and_empty_bodies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/empty":
            return httpx.Response(204)
        return httpx.Response(200, text="hello")

    async with mock(handler) as executor:
        assert (await executor(RequestConfig(url="https://x.test/text"))).data == "hello"
        assert (await executor(RequestConfig(url="https://x.test/empty"))).data is None


# ═════════════════════════════════════════════════════════════════════════════
# Failures
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_error_status_raises_with_response() -> None:
    async with mock(lambda request: httpx.Response(503, json={"error": "busy"})) as executor:
        with pytest.raises(HttpError) as exc_info:
            await executor(RequestConfig(url="https://x.test"))

    err = exc_info.value
    assert err.code == ErrorCode.BAD_RESPONSE
    assert err.status == 503
    assert err.response is not None and err.response.data == {"error": "busy"}
    assert str(err) == "Request failed with status code 503"


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (httpx.ReadTimeout("slow"), ErrorCode.TIMEOUT),
        (httpx.ConnectTimeout("slow connect"), ErrorCode.TIMEOUT),
        (httpx.ConnectError("refused"), ErrorCode.CONNECTION_ERROR),
        (httpx.ReadError("reset"), ErrorCode.NETWORK_ERROR),
        (httpx.UnsupportedProtocol("gopher"), ErrorCode.UNKNOWN),
    ],
)
@pytest.mark.asyncio
async def test_transport_errors_are_typed(exc: Exception, code: ErrorCode) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    async with mock(handler) as executor:
        with pytest.raises(HttpError) as exc_info:
            await executor(RequestConfig(url="https://x.test"))

    assert exc_info.value.code == code
    assert exc_info.value.status is None
    assert exc_info.value.__cause__ is exc


@pytest.mark.asyncio
async def test_cancelled_signal_short_circuits() -> None:
    calls: list[httpx.Request] = []
    signal = CancellationSignal()
    signal.cancel("shutdown")

    async with mock(lambda request: calls.append(request) or httpx.Response(200)) as executor:
        with pytest.raises(HttpError) as exc_info:
            await executor(RequestConfig(url="https://x.test", signal=signal))

    assert exc_info.value.code == ErrorCode.CANCELLED
    assert calls == []


# ═════════════════════════════════════════════════════════════════════════════
# Client Ownership
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_borrowed_client_left_open() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    executor = HttpxExecutor(client)
    await executor(RequestConfig(url="https://x.test"))
    await executor.aclose()
    assert client.is_closed is False
    await client.aclose()


def test_validate_status() -> None:
    executor = HttpxExecutor()
    assert executor.validate_status(204) is True
    assert executor.validate_status(302) is False
    assert executor.validate_status(404) is False
