"""Shared fixtures: a manual clock, a clock-advancing sleep and scripted executors."""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from fluxguard.foundation.config import clear_settings_cache
from fluxguard.foundation.errors import ErrorCode, HttpError
from fluxguard.http import RequestConfig, Response


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the clock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


class ScriptedExecutor:
    """Returns or raises the scripted outcomes in order; the last one repeats."""

    def __init__(self, outcomes: Iterable[Response | BaseException]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.configs: list[RequestConfig] = []

    async def __call__(self, config: RequestConfig | None = None) -> Response:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if config is not None:
            self.configs.append(config)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def ok(status: int = 200, data: object = None) -> Response:
    return Response(status=status, data=data)


def server_error(status: int = 503) -> HttpError:
    return HttpError(f"Request failed with status code {status}", code=ErrorCode.BAD_RESPONSE, status=status)


def network_error() -> HttpError:
    return HttpError("socket hang up", code=ErrorCode.NETWORK_ERROR)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def request_config() -> RequestConfig:
    return RequestConfig(url="https://api.example.com/users")


@pytest.fixture(autouse=True)
def clean_settings() -> object:
    """Reset cached settings around each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
