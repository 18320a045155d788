"""
Shared fixtures: a controllable clock, a scripted server behind
httpx.MockTransport, and connections wired to both.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx
import pytest

from holdfast import FailureRegistry, HttpConnection, HttpTransport, RequestTarget


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def server_disconnected() -> httpx.RemoteProtocolError:
    return httpx.RemoteProtocolError("Server disconnected without sending a response.")


class ScriptedServer:
    """
    MockTransport handler that plays back a script.

    Each entry is an exception class/instance to raise, an httpx.Response
    to return, or a callable taking the request. Once the script runs out
    every request gets a 200.
    """

    def __init__(self, *script) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def push(self, *script) -> None:
        self.script.extend(script)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        outcome = self.script.pop(0) if self.script else httpx.Response(200, text="ok")

        if isinstance(outcome, type) and issubclass(outcome, BaseException):
            raise outcome("scripted failure")
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        result = outcome(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> FailureRegistry:
    return FailureRegistry(clock=clock)


@pytest.fixture
def server() -> ScriptedServer:
    return ScriptedServer()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(clock: FakeClock, sleeps: list[float]):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
        clock.advance(delay)

    return _sleep


@pytest.fixture
def test_logger() -> logging.Logger:
    logger = logging.getLogger("holdfast.tests")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def make_connection(registry, fake_sleep, test_logger) -> Callable[..., HttpConnection]:
    def _make(handler: Callable, **params) -> HttpConnection:
        params.setdefault("logger", test_logger)
        return HttpConnection(
            registry=registry,
            transport=HttpTransport(inner=httpx.MockTransport(handler)),
            sleep=fake_sleep,
            **params,
        )

    return _make


@pytest.fixture
def target() -> Callable[..., RequestTarget]:
    def _target(
        server: str = "api.example.com",
        port: int = 443,
        path: str = "/v1/items",
        method: str = "GET",
        **kwargs,
    ) -> RequestTarget:
        return RequestTarget(
            server=server,
            port=port,
            request=httpx.Request(method, f"http://placeholder{path}"),
            **kwargs,
        )

    return _target


@pytest.fixture(autouse=True)
def restore_default_params():
    saved = HttpConnection.default_params
    yield
    HttpConnection.default_params = saved
