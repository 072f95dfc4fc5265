"""End-to-end behaviour of the session engine, driven by simulated time."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from session_gate.auth.directory import PrincipalDirectory
from session_gate.catalog.methods import DEFAULT_METHODS, MethodCatalog
from session_gate.dispatch.fanout import Dispatcher, Endpoint
from session_gate.engine import SessionEngine
from session_gate.errors import (
    DispatchError,
    ExpiredError,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
    UnauthorizedError,
)
from session_gate.notify.sinks import NotificationError, NotificationSink
from session_gate.policy.scope import TargetScope
from session_gate.sessions.registry import SessionRegistry

from conftest import ADMIN_ID, EndpointStub, FakeClock, RecordingSink


class TestScenarios:
    """Full session flows, from admission to completion."""

    @pytest.mark.asyncio
    async def test_admitted_dispatched_then_limit_reached(
        self, engine: SessionEngine, endpoint_stub: EndpointStub, sink: RecordingSink
    ) -> None:
        session = await engine.start("alice", "target.test", 443, 30, "constant")

        assert session.method == "CONSTANT"
        assert len(endpoint_stub.requests) == 2
        assert engine.list("alice") == (session,)
        assert len(sink.messages) == 1
        assert session.session_id in sink.messages[0]

        with pytest.raises(LimitExceededError):
            await engine.start("alice", "target.test", 443, 30, "constant")
        assert len(endpoint_stub.requests) == 2

    @pytest.mark.asyncio
    async def test_duration_over_max_is_rejected_without_dispatch(
        self, engine: SessionEngine, endpoint_stub: EndpointStub, sink: RecordingSink
    ) -> None:
        with pytest.raises(LimitExceededError, match="60 seconds"):
            await engine.start("alice", "target.test", 443, 90, "RAMP")

        assert endpoint_stub.requests == []
        assert engine.list(ADMIN_ID) == ()
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_partial_dispatch_failure_registers_nothing(
        self, engine: SessionEngine, endpoint_stub: EndpointStub, sink: RecordingSink
    ) -> None:
        endpoint_stub.status["runner-b.test"] = 500

        with pytest.raises(DispatchError) as excinfo:
            await engine.start("alice", "target.test", 443, 30, "RAMP")

        assert excinfo.value.result.succeeded == ("runner-a",)
        assert "runner-b" in str(excinfo.value)
        assert engine.list(ADMIN_ID) == ()
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_session_expires_with_one_completion_notification(
        self, engine: SessionEngine, clock: FakeClock, sink: RecordingSink
    ) -> None:
        session = await engine.start("alice", "target.test", 443, 5, "SOAK")

        clock.advance(5)
        await engine.drain()

        assert engine.list(ADMIN_ID) == ()
        completions = [m for m in sink.messages if "completed" in m]
        assert completions == [f"✅ Session {session.session_id} has completed."]

        clock.advance(60)
        await engine.drain()
        assert len([m for m in sink.messages if "completed" in m]) == 1

    @pytest.mark.asyncio
    async def test_expired_principal_is_rejected(
        self, engine: SessionEngine, endpoint_stub: EndpointStub
    ) -> None:
        with pytest.raises(ExpiredError):
            await engine.start("bob", "target.test", 443, 10, "RAMP")
        assert endpoint_stub.requests == []


class TestStartValidation:
    @pytest.mark.asyncio
    async def test_unknown_method_not_dispatched(
        self, engine: SessionEngine, endpoint_stub: EndpointStub
    ) -> None:
        with pytest.raises(NotFoundError, match="Valid methods"):
            await engine.start("alice", "target.test", 443, 10, "warp")
        assert endpoint_stub.requests == []

    @pytest.mark.asyncio
    async def test_out_of_scope_target_not_dispatched(
        self, engine: SessionEngine, endpoint_stub: EndpointStub
    ) -> None:
        with pytest.raises(ForbiddenError, match="not in the authorized target scope"):
            await engine.start("alice", "example.com", 443, 10, "RAMP")
        assert endpoint_stub.requests == []

    @pytest.mark.asyncio
    async def test_network_scope_entry(self, engine: SessionEngine) -> None:
        session = await engine.start("alice", "10.1.2.3", 80, 10, "RAMP")
        assert session.target == "10.1.2.3:80"


class TestCancelAndList:
    """A cancelled session never produces a completion notification."""

    @pytest.mark.asyncio
    async def test_cancel_then_no_completion(
        self, engine: SessionEngine, clock: FakeClock, sink: RecordingSink
    ) -> None:
        session = await engine.start("alice", "target.test", 443, 5, "RAMP")

        cancelled = engine.cancel(session.session_id, "alice")
        clock.advance(10)
        await engine.drain()

        assert cancelled.session_id == session.session_id
        assert not any("completed" in m for m in sink.messages)

    @pytest.mark.asyncio
    async def test_admin_sees_all_users_see_own(self, engine: SessionEngine) -> None:
        a = await engine.start("alice", "target.test", 443, 10, "RAMP")
        c = await engine.start("carol", "target.test", 443, 10, "RAMP")

        assert set(engine.list(ADMIN_ID)) == {a, c}
        assert engine.list("alice") == (a,)
        assert engine.list("carol") == (c,)

    @pytest.mark.asyncio
    async def test_status(self, engine: SessionEngine) -> None:
        await engine.start("carol", "target.test", 443, 10, "RAMP")
        status = engine.status("carol")
        assert status.running == 1
        assert status.endpoint_count == 2
        assert status.validity.days == 30


class TestNotificationFailure:
    """Sink errors never undo a started session."""

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_roll_back(
        self, engine: SessionEngine, clock: FakeClock
    ) -> None:
        class BrokenSink(NotificationSink):
            async def send(self, text: str) -> None:
                raise NotificationError("channel unavailable")

        engine.sink = BrokenSink()
        session = await engine.start("alice", "target.test", 443, 5, "RAMP")
        assert engine.list("alice") == (session,)

        clock.advance(5)
        await engine.drain()
        assert engine.list("alice") == ()


class TestDispatchRaces:
    @pytest.mark.asyncio
    async def test_principal_removed_during_dispatch_is_not_activated(
        self,
        engine: SessionEngine,
        directory: PrincipalDirectory,
        endpoints: list[Endpoint],
        sink: RecordingSink,
    ) -> None:
        def remove_then_accept(request: httpx.Request) -> httpx.Response:
            if directory.has_access("alice"):
                directory.remove("alice")
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(remove_then_accept))
        engine.dispatcher = Dispatcher(endpoints, client=client)

        with pytest.raises(UnauthorizedError):
            await engine.start("alice", "target.test", 443, 10, "RAMP")

        assert engine.list(ADMIN_ID) == ()
        assert sink.messages == []


class TestEventLoopTimers:
    """Expiry armed on the running event loop instead of a simulated clock."""

    @pytest.mark.asyncio
    async def test_completion_fires_from_loop_timer(
        self, directory: PrincipalDirectory, dispatcher: Dispatcher, sink: RecordingSink
    ) -> None:
        engine = SessionEngine(
            directory=directory,
            catalog=MethodCatalog(DEFAULT_METHODS),
            scope=TargetScope(["target.test"]),
            dispatcher=dispatcher,
            sink=sink,
            registry=SessionRegistry(directory),
        )
        session = await engine.start("alice", "target.test", 443, 1, "RAMP")

        await asyncio.sleep(1.1)
        await engine.drain()

        assert engine.list(ADMIN_ID) == ()
        completions = [m for m in sink.messages if "completed" in m]
        assert completions == [f"✅ Session {session.session_id} has completed."]
