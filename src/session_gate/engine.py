"""Session engine: the control flow from a run request to a tracked session.

Pattern: Check, Dispatch, Register
-----------------------------------
``start`` runs the steps in a fixed order:

  1. ``registry.admit``: authorisation, expiry, duration and concurrency.
  2. ``catalog.resolve``: the method must exist.
  3. ``scope.check``: the target must be inside the authorized scope.
  4. ``dispatcher.dispatch``: every endpoint must accept the run.
  5. ``registry.activate``: the session becomes visible and its timer is armed.
     The principal must still exist; a removal during dispatch refuses it.
  6. Broadcast the start notification.

Nothing is registered before step 5, so a failed dispatch leaves no trace and
sends no notification.  Notifications are best-effort and never undo a
session.  Completion notifications are produced by the registry's expiry
callback and run as loop tasks; ``drain`` waits for those still in flight.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from session_gate.auth.directory import PrincipalDirectory
from session_gate.auth.principal import Principal, Validity
from session_gate.catalog.methods import MethodCatalog
from session_gate.dispatch.fanout import Dispatcher
from session_gate.errors import DispatchError, UnauthorizedError
from session_gate.notify.sinks import LogSink, NotificationSink
from session_gate.policy.scope import TargetScope
from session_gate.sessions.registry import SessionRegistry
from session_gate.sessions.session import Session

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class AccountStatus:
    principal: Principal
    validity: Validity
    running: int
    endpoint_count: int


class SessionEngine:
    """Coordinates directory, catalog, scope, dispatcher, registry and sink."""

    def __init__(
        self,
        directory: PrincipalDirectory,
        catalog: MethodCatalog,
        scope: TargetScope,
        dispatcher: Dispatcher,
        sink: NotificationSink | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.directory = directory
        self.catalog = catalog
        self.scope = scope
        self.dispatcher = dispatcher
        self.sink = sink or LogSink()
        self.registry = registry or SessionRegistry(directory)
        self.registry.on_expire = self._on_expire
        self._pending: set[asyncio.Task] = set()

    async def start(self, identity: str, host: str, port: int, duration: int, method: str) -> Session:
        """Admit, dispatch and register a session.

        Raises the ``SessionGateError`` subclass for whichever step refused.
        """
        self.registry.admit(identity, duration)
        resolved = self.catalog.resolve(method)
        self.scope.check(host)

        pending = Session(
            session_id=self.registry.next_id(),
            owner=identity,
            host=host,
            port=port,
            duration=duration,
            method=resolved.name,
        )
        result = await self.dispatcher.dispatch(host, port, duration, resolved.name)
        if not result.ok:
            logger.warning("Session %s not started: dispatch failed", pending.session_id)
            raise DispatchError(result)

        # The principal may have been removed while the dispatch was in flight.
        try:
            self.directory.authorize(identity)
        except UnauthorizedError:
            logger.warning("Session %s not started: %s was removed during dispatch", pending.session_id, identity)
            raise

        session = self.registry.activate(pending)
        await self._notify(
            f"🚨 Session started by User ID: {session.owner}\n"
            f"🎯 Target: {session.target}\n"
            f"⏱️ Duration: {session.duration} seconds\n"
            f"🔧 Method: {session.method}\n"
            f"🔑 Session ID: {session.session_id}"
        )
        return session

    def cancel(self, session_id: str, requester: str) -> Session:
        return self.registry.cancel(session_id, requester)

    def list(self, requester: str) -> tuple[Session, ...]:
        """Every session for administrators, otherwise the requester's own."""
        if self.directory.is_admin(requester):
            return self.registry.list()
        return self.registry.list(owner=requester)

    def status(self, identity: str) -> AccountStatus:
        principal = self.directory.authorize(identity)
        return AccountStatus(
            principal=principal,
            validity=self.directory.remaining_validity(identity),
            running=self.registry.count_active(identity),
            endpoint_count=len(self.dispatcher.endpoints),
        )

    async def drain(self) -> None:
        """Wait for outstanding completion notifications."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # -- private helpers -----------------------------------------------------

    def _on_expire(self, session: Session) -> None:
        task = asyncio.get_running_loop().create_task(
            self._notify(f"✅ Session {session.session_id} has completed.")
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, text: str) -> None:
        try:
            await self.sink.send(text)
        except Exception:
            logger.exception("Notification delivery failed")
