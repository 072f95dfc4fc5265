"""Principal directory: authorisation lookups and administrative mutation.

The directory is a plain identity -> ``Principal`` mapping.  Reads need no
locking because every write replaces a whole record in a single assignment.
After each mutation the optional *save hook* is invoked with a snapshot of
the mapping; a failing save is logged and reported back to the caller as
``persisted=False`` while the in-memory change stands.
"""

from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable

from session_gate.auth.principal import EXPIRED, UNBOUNDED, Principal, Validity
from session_gate.errors import NotFoundError, PersistenceError, UnauthorizedError

logger = logging.getLogger(__name__)

SaveHook = Callable[[dict[str, Principal]], None]


def _today() -> datetime.date:
    return datetime.date.today()


class PrincipalDirectory:
    """Holds principal records and the set of administrative identities."""

    def __init__(
        self,
        principals: dict[str, Principal] | None = None,
        admin_ids: Iterable[str] = (),
        save_hook: SaveHook | None = None,
        today: Callable[[], datetime.date] = _today,
    ) -> None:
        self._principals: dict[str, Principal] = dict(principals or {})
        self._admin_ids = frozenset(str(a) for a in admin_ids)
        self._save_hook = save_hook
        self._today = today

    # -- lookups --------------------------------------------------------------

    def authorize(self, identity: str) -> Principal:
        """Return the principal for *identity*.

        Raises ``UnauthorizedError`` if no record exists.
        """
        principal = self._principals.get(identity)
        if principal is None:
            raise UnauthorizedError(identity)
        return principal

    def is_admin(self, identity: str) -> bool:
        return identity in self._admin_ids

    def has_access(self, identity: str) -> bool:
        return self.is_admin(identity) or identity in self._principals

    def is_expired(self, identity: str) -> bool:
        """True iff an expiry date is set and today is strictly after it."""
        principal = self.authorize(identity)
        return principal.expiry is not None and self._today() > principal.expiry

    def remaining_validity(self, identity: str) -> Validity:
        principal = self.authorize(identity)
        if principal.expiry is None:
            return UNBOUNDED
        days = (principal.expiry - self._today()).days
        if days <= 0:
            return EXPIRED
        return Validity(days=days)

    def principals(self) -> list[Principal]:
        """Snapshot of all records, ordered by identity."""
        return [self._principals[k] for k in sorted(self._principals)]

    def today(self) -> datetime.date:
        return self._today()

    # -- administrative mutation ---------------------------------------------

    def upsert(self, principal: Principal) -> bool:
        """Insert or replace *principal*.  Returns whether it was persisted."""
        self._principals[principal.identity] = principal
        logger.info(
            "Principal %s saved: max_duration=%ss, concurrency_limit=%s, expiry=%s",
            principal.identity,
            principal.max_duration,
            principal.concurrency_limit,
            principal.expiry,
        )
        return self._persist()

    def remove(self, identity: str) -> bool:
        """Delete *identity*.  Returns whether the removal was persisted.

        Raises ``NotFoundError`` if the identity has no record.
        """
        if self._principals.pop(identity, None) is None:
            raise NotFoundError(f"User {identity} not found.")
        logger.info("Principal %s removed", identity)
        return self._persist()

    # -- private helpers -----------------------------------------------------

    def _persist(self) -> bool:
        if self._save_hook is None:
            return True
        try:
            self._save_hook(dict(self._principals))
        except PersistenceError as exc:
            logger.error("Principal change applied in memory but not saved: %s", exc)
            return False
        return True
