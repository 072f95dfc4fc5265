"""YAML-backed persistence for principal records.

The file layout is a single top-level ``principals`` mapping keyed by
identity::

    principals:
      "1001":
        token: abc
        max_duration: 60
        concurrency_limit: 1
        expiry: "2026-12-31"

Loading never fails startup: a missing or malformed file yields an empty set.
Saving writes a sibling temporary file and renames it over the original.
"""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Any

import yaml

from session_gate.auth.principal import Principal
from session_gate.errors import PersistenceError

logger = logging.getLogger(__name__)


class PrincipalStore:
    """Reads and writes the principal file."""

    def __init__(self, path: str | pathlib.Path) -> None:
        self._path = pathlib.Path(path)

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def load(self) -> dict[str, Principal]:
        if not self._path.exists():
            logger.warning("Principal file %s not found, starting with no users", self._path)
            return {}
        try:
            with open(self._path) as fh:
                data = yaml.safe_load(fh) or {}
            block: dict[str, Any] = data.get("principals") or {}
            principals = {
                str(identity): Principal.from_dict(str(identity), record)
                for identity, record in block.items()
            }
        except (OSError, yaml.YAMLError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not load principals from %s (%s), starting with no users", self._path, exc)
            return {}
        logger.info("Loaded %d principal(s) from %s", len(principals), self._path)
        return principals

    def save(self, principals: dict[str, Principal]) -> None:
        """Write *principals* to disk.

        Raises ``PersistenceError`` on I/O or serialisation failure.
        """
        payload = {
            "principals": {
                identity: principals[identity].to_dict() for identity in sorted(principals)
            }
        }
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as fh:
                yaml.safe_dump(payload, fh, sort_keys=False)
            os.replace(tmp_path, self._path)
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceError(f"Failed to save principals to {self._path}: {exc}") from exc
