"""The tracked record of one running session."""

from __future__ import annotations

import dataclasses
import math


@dataclasses.dataclass(frozen=True)
class Session:
    """Immutable record of a dispatched, time-bounded run.

    Attributes:
        session_id: Process-unique identifier.
        owner:      Identity of the principal that started the session.
        host:       Target host.
        port:       Target port.
        duration:   Requested duration in whole seconds.
        method:     Canonical name of the execution method.
        started_at: Epoch seconds at activation; ``0.0`` while pending.
    """

    session_id: str
    owner: str
    host: str
    port: int
    duration: int
    method: str
    started_at: float = 0.0

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    def elapsed(self, now: float) -> int:
        return max(0, math.floor(now - self.started_at))

    def remaining(self, now: float) -> int:
        return max(0, self.duration - self.elapsed(now))
