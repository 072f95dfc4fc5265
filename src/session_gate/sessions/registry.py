"""Session registry: the only shared mutable state in the core.

Pattern: Lock-Guarded Registry with Id-Keyed Timers
----------------------------------------------------
The registry exclusively owns every active ``Session``.  All mutations
(``activate``, ``cancel``, timer-fired removal) and all snapshots run under one
coarse ``threading.Lock``; nothing inside the lock awaits or performs I/O.

Each activated session arms a one-shot expiry timer.  The timer holds only
the session *id*, never the record, and looks it up when it fires: if the
session was cancelled first, the lookup misses and the timer does nothing.
``cancel`` also cancels the pending timer, so a cancelled session never
produces a completion notification.

Admission is a check, not a reservation.  Dispatch happens between ``admit``
and ``activate`` without holding the lock, so two admissions racing for the
last slot can both succeed.  Sequential admissions never exceed the limit.

States: pending (id allocated, dispatch in flight; not in the registry) ->
active (in the registry, timer armed) -> removed (expired or cancelled).
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
import threading
import time
from typing import Any, Callable, Protocol

from session_gate.auth.directory import PrincipalDirectory
from session_gate.auth.principal import Principal
from session_gate.errors import (
    ExpiredError,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
)
from session_gate.sessions.session import Session

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[..., TimerHandle]


def _loop_call_later(delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback, *args)


class SessionRegistry:
    """Tracks active sessions and enforces per-principal concurrency."""

    def __init__(
        self,
        directory: PrincipalDirectory,
        on_expire: Callable[[Session], None] | None = None,
        scheduler: Scheduler = _loop_call_later,
        clock: Callable[[], float] = time.time,
        grace_seconds: float = 0.0,
    ) -> None:
        self._directory = directory
        self.on_expire = on_expire
        self._scheduler = scheduler
        self._clock = clock
        self._grace_seconds = grace_seconds
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._timers: dict[str, TimerHandle] = {}
        self._counter = itertools.count(1)

    # -- admission -------------------------------------------------------------

    def admit(self, identity: str, duration: int) -> Principal:
        """Check whether *identity* may start a session of *duration* seconds.

        Checks run in a fixed order: authorisation, expiry, duration limit,
        concurrency limit.  Nothing is reserved.  Returns the principal.
        """
        principal = self._directory.authorize(identity)
        if principal.expiry is not None and self._directory.is_expired(identity):
            raise ExpiredError(identity, principal.expiry)
        if duration > principal.max_duration:
            raise LimitExceededError(
                f"Requested duration {duration}s exceeds your limit of "
                f"{principal.max_duration} seconds.",
                limit=principal.max_duration,
            )
        running = self.count_active(identity)
        if running >= principal.concurrency_limit:
            raise LimitExceededError(
                f"You have reached your concurrent session limit "
                f"({running}/{principal.concurrency_limit}).",
                limit=principal.concurrency_limit,
            )
        return principal

    def next_id(self) -> str:
        """Allocate an identifier for a pending session."""
        return f"{int(self._clock() * 1000)}{next(self._counter):04d}"

    # -- lifecycle -------------------------------------------------------------

    def activate(self, session: Session) -> Session:
        """Register a dispatched *session* and arm its expiry timer."""
        active = dataclasses.replace(session, started_at=self._clock())
        with self._lock:
            if active.session_id in self._sessions:
                raise ValueError(f"Session {active.session_id} is already active")
            self._sessions[active.session_id] = active
            self._timers[active.session_id] = self._scheduler(
                active.duration + self._grace_seconds,
                self._expire,
                active.session_id,
            )
        logger.info(
            "Session %s active: owner=%s target=%s duration=%ss method=%s",
            active.session_id,
            active.owner,
            active.target,
            active.duration,
            active.method,
        )
        return active

    def cancel(self, session_id: str, requester: str) -> Session:
        """Stop tracking *session_id* on behalf of *requester*.

        Raises ``NotFoundError`` if no active session has that id, and
        ``ForbiddenError`` unless *requester* owns it or is an administrator.
        """
        is_admin = self._directory.is_admin(requester)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Session with ID {session_id} not found.")
            if not is_admin and session.owner != requester:
                raise ForbiddenError("You do not have permission to stop this session.")
            del self._sessions[session_id]
            timer = self._timers.pop(session_id, None)
            if timer is not None:
                timer.cancel()
        logger.info("Session %s cancelled by %s", session_id, requester)
        return session

    def _expire(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self._timers.pop(session_id, None)
        if session is None:
            return
        logger.info("Session %s completed after %ss", session_id, session.duration)
        if self.on_expire is not None:
            self.on_expire(session)

    # -- queries ---------------------------------------------------------------

    def list(self, owner: str | None = None) -> tuple[Session, ...]:
        """Snapshot of active sessions; all of them when *owner* is ``None``."""
        with self._lock:
            sessions = list(self._sessions.values())
        if owner is not None:
            sessions = [s for s in sessions if s.owner == owner]
        return tuple(sorted(sessions, key=lambda s: (s.started_at, s.session_id)))

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def count_active(self, identity: str) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.owner == identity)

    def now(self) -> float:
        return self._clock()
