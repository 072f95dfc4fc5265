"""Expected, recoverable outcomes of the session core.

Every error below is raised by the core and caught at the command boundary,
where it is rendered into a reply.  The message of each exception is written
for the person who issued the command: it carries the limit, date, or valid
values needed to correct the request.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from session_gate.dispatch.fanout import DispatchResult


class SessionGateError(Exception):
    """Base class for outcomes the command layer must handle."""


class UnauthorizedError(SessionGateError):
    """Raised when no principal record exists for an identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(
            "You do not have access to this service. Please contact the administrator."
        )
        self.identity = identity


class ExpiredError(SessionGateError):
    """Raised when a principal's expiry date has passed."""

    def __init__(self, identity: str, expiry: datetime.date) -> None:
        super().__init__(
            f"Your access expired on {expiry.isoformat()}. Please contact the administrator."
        )
        self.identity = identity
        self.expiry = expiry


class LimitExceededError(SessionGateError):
    """Raised when a request exceeds a duration or concurrency quota."""

    def __init__(self, message: str, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class NotFoundError(SessionGateError):
    """Raised for unknown sessions, methods, or principals."""


class ForbiddenError(SessionGateError):
    """Raised when the requester lacks privilege for the action."""


class DispatchError(SessionGateError):
    """Raised when one or more execution endpoints failed a dispatch."""

    def __init__(self, result: DispatchResult) -> None:
        details = "; ".join(f"{f.endpoint}: {f.error}" for f in result.failed)
        super().__init__(f"Dispatch failed ({details or 'no endpoints configured'})")
        self.result = result


class CommandValidationError(SessionGateError):
    """Raised when command arguments are missing or malformed."""

    def __init__(self, message: str, usage: str | None = None) -> None:
        text = f"{message}\nUsage: {usage}" if usage else message
        super().__init__(text)
        self.usage = usage


class PersistenceError(Exception):
    """Raised when the principal store cannot be read or written."""
