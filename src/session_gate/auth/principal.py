"""Principal records: who may start sessions, and within which quotas.

Pattern: Whole-Record Replacement
----------------------------------
A ``Principal`` is immutable.  Administrative updates build a new record with
``dataclasses.replace`` and swap it into the directory in one assignment, so a
concurrent reader sees either the old record or the new one, never a mix.

The serialised form (``to_dict`` / ``from_dict``) is the one structural
contract shared with the persistence layer.  The expiry date is always written
as ``YYYY-MM-DD``.
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any

DATE_FORMAT = "%Y-%m-%d"


@dataclasses.dataclass(frozen=True)
class Principal:
    """Authorisation record for one identity.

    Attributes:
        identity:          Stable opaque identifier supplied by the transport.
        token:             Opaque credential string issued by the administrator.
        max_duration:      Upper bound, in seconds, on any single session.
        concurrency_limit: Maximum number of simultaneously active sessions.
        expiry:            Last calendar date of validity, or ``None`` for no expiry.
    """

    identity: str
    token: str
    max_duration: int
    concurrency_limit: int
    expiry: datetime.date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "max_duration": self.max_duration,
            "concurrency_limit": self.concurrency_limit,
            "expiry": self.expiry.strftime(DATE_FORMAT) if self.expiry else None,
        }

    @classmethod
    def from_dict(cls, identity: str, data: dict[str, Any]) -> Principal:
        raw_expiry = data.get("expiry")
        if isinstance(raw_expiry, datetime.date):
            # YAML loaders turn unquoted dates into date objects.
            expiry: datetime.date | None = raw_expiry
        elif raw_expiry:
            expiry = datetime.datetime.strptime(str(raw_expiry), DATE_FORMAT).date()
        else:
            expiry = None
        return cls(
            identity=str(identity),
            token=str(data["token"]),
            max_duration=int(data["max_duration"]),
            concurrency_limit=int(data["concurrency_limit"]),
            expiry=expiry,
        )


@dataclasses.dataclass(frozen=True)
class Validity:
    """Remaining validity of a principal, floored to whole days.

    ``days`` is ``None`` when the principal has no expiry date.  Zero or
    negative remainders are never exposed; they are reported as ``expired``.
    """

    days: int | None
    expired: bool = False

    @property
    def unbounded(self) -> bool:
        return self.days is None and not self.expired

    def __str__(self) -> str:
        if self.expired:
            return "Expired"
        if self.days is None:
            return "No expiry date set"
        return f"{self.days} days remaining"


UNBOUNDED = Validity(days=None)
EXPIRED = Validity(days=None, expired=True)
