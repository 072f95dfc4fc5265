"""Shared fixtures for tests."""

from __future__ import annotations

import datetime
from typing import Any, Callable

import httpx
import pytest

from session_gate.auth.directory import PrincipalDirectory
from session_gate.auth.principal import Principal
from session_gate.catalog.methods import DEFAULT_METHODS, MethodCatalog
from session_gate.dispatch.fanout import Dispatcher, Endpoint
from session_gate.engine import SessionEngine
from session_gate.notify.sinks import NotificationSink
from session_gate.policy.scope import TargetScope
from session_gate.sessions.registry import SessionRegistry

TODAY = datetime.date(2026, 10, 19)
ADMIN_ID = "1001"


class FakeTimer:
    def __init__(self, when: float, callback: Callable[..., None], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Simulated wall clock that also acts as the registry's scheduler."""

    def __init__(self, start: float = 1_790_000_000.0) -> None:
        self.now = start
        self.timers: list[FakeTimer] = []

    def __call__(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        self.now = target

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]


class FakeToday:
    def __init__(self, day: datetime.date = TODAY) -> None:
        self.day = day

    def __call__(self) -> datetime.date:
        return self.day


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send(self, text: str) -> None:
        self.messages.append(text)


class EndpointStub:
    """``httpx.MockTransport`` handler answering per endpoint host."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status: dict[str, int] = {}
        self.errors: dict[str, Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.errors:
            raise self.errors[host]
        return httpx.Response(self.status.get(host, 200), json={"accepted": True})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def today() -> FakeToday:
    return FakeToday()


@pytest.fixture
def alice() -> Principal:
    return Principal(identity="alice", token="tok-a", max_duration=60, concurrency_limit=1)


@pytest.fixture
def directory(today: FakeToday, alice: Principal) -> PrincipalDirectory:
    principals = {
        "alice": alice,
        "bob": Principal(
            identity="bob",
            token="tok-b",
            max_duration=300,
            concurrency_limit=2,
            expiry=TODAY - datetime.timedelta(days=1),
        ),
        "carol": Principal(
            identity="carol",
            token="tok-c",
            max_duration=120,
            concurrency_limit=2,
            expiry=TODAY + datetime.timedelta(days=30),
        ),
    }
    return PrincipalDirectory(principals=principals, admin_ids=[ADMIN_ID], today=today)


@pytest.fixture
def registry(directory: PrincipalDirectory, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(directory, scheduler=clock.call_later, clock=clock)


@pytest.fixture
def endpoint_stub() -> EndpointStub:
    return EndpointStub()


@pytest.fixture
def endpoints() -> list[Endpoint]:
    return [
        Endpoint(name="runner-a", url="https://runner-a.test/api/runs", credential="cred-a"),
        Endpoint(name="runner-b", url="https://runner-b.test/api/runs", credential="cred-b"),
    ]


@pytest.fixture
def dispatcher(endpoints: list[Endpoint], endpoint_stub: EndpointStub) -> Dispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint_stub))
    return Dispatcher(endpoints, client=client)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(
    directory: PrincipalDirectory,
    registry: SessionRegistry,
    dispatcher: Dispatcher,
    sink: RecordingSink,
) -> SessionEngine:
    return SessionEngine(
        directory=directory,
        catalog=MethodCatalog(DEFAULT_METHODS),
        scope=TargetScope(["target.test", "10.0.0.0/8"]),
        dispatcher=dispatcher,
        sink=sink,
        registry=registry,
    )
