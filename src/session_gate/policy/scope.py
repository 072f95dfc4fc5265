"""Target scope: which hosts sessions may be pointed at.

Pattern: Declarative Allow-List
--------------------------------
``settings.yaml`` lists the hosts and networks the operator owns and has
cleared for load testing.  Entries are either hostnames (matched exactly,
ignoring case and a trailing dot) or IP networks in CIDR notation; a bare IP
address is a one-host network.  A target outside every entry is refused
before any endpoint is contacted.  An empty list refuses everything.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable

from session_gate.errors import ForbiddenError

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


class TargetScope:
    """Allow-list of hostnames and IP networks."""

    def __init__(self, entries: Iterable[str]) -> None:
        self._hostnames: set[str] = set()
        self._networks: list[IPNetwork] = []
        for raw in entries:
            entry = str(raw).strip()
            if not entry:
                continue
            try:
                self._networks.append(ipaddress.ip_network(entry, strict=False))
            except ValueError:
                self._hostnames.add(_normalise(entry))

    def allows(self, host: str) -> bool:
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return _normalise(host) in self._hostnames
        return any(address in network for network in self._networks)

    def check(self, host: str) -> None:
        """Raise ``ForbiddenError`` unless *host* is in scope."""
        if not self.allows(host):
            logger.warning("Refused out-of-scope target %s", host)
            raise ForbiddenError(
                f"Target {host} is not in the authorized target scope. "
                "Ask the administrator to add it to allowed_targets."
            )

    def __len__(self) -> int:
        return len(self._hostnames) + len(self._networks)


def _normalise(hostname: str) -> str:
    return hostname.lower().rstrip(".")
