"""Catalog of permitted execution methods (load profiles).

Pattern: Load-Once Lookup
--------------------------
A YAML file (``config/methods.yaml``) is the single declarative source for
*which kinds of run a session may request*.  It is read once at startup and
never mutated afterwards, so sessions can refer to a method by name without
holding a reference to it.

Lookup is case-insensitive on the exact name.  When the file is absent or
cannot be loaded the built-in defaults below are used.
"""

from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Any

import yaml

from session_gate.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ExecutionMethod:
    """A named kind of run an endpoint knows how to execute."""

    name: str
    description: str


DEFAULT_METHODS: tuple[ExecutionMethod, ...] = (
    ExecutionMethod("CONSTANT", "Steady request rate for the whole duration"),
    ExecutionMethod("RAMP", "Linear ramp from zero to the configured peak rate"),
    ExecutionMethod("SPIKE", "Short burst at peak rate followed by recovery"),
    ExecutionMethod("SOAK", "Low sustained rate for long-running stability checks"),
)


class MethodCatalogError(Exception):
    """Raised when the methods file is malformed."""


class MethodCatalog:
    """Immutable name -> ``ExecutionMethod`` lookup."""

    def __init__(self, methods: tuple[ExecutionMethod, ...] | list[ExecutionMethod]) -> None:
        self._methods = tuple(methods)
        self._by_name = {m.name.upper(): m for m in self._methods}
        if len(self._by_name) != len(self._methods):
            raise MethodCatalogError("Method names must be unique (case-insensitive)")

    @classmethod
    def from_file(cls, path: str | pathlib.Path | None) -> MethodCatalog:
        """Load the catalog from *path*, falling back to ``DEFAULT_METHODS``."""
        if path is None or not pathlib.Path(path).exists():
            logger.warning("Methods file %s not found, using built-in defaults", path)
            return cls(DEFAULT_METHODS)
        try:
            with open(path) as fh:
                data: Any = yaml.safe_load(fh)
            catalog = cls(cls._parse(data))
        except (OSError, yaml.YAMLError, MethodCatalogError) as exc:
            logger.warning("Could not load methods from %s (%s), using built-in defaults", path, exc)
            return cls(DEFAULT_METHODS)
        logger.info("Loaded %d method(s) from %s", len(catalog.methods()), path)
        return catalog

    @staticmethod
    def _parse(data: Any) -> list[ExecutionMethod]:
        if not isinstance(data, dict) or not isinstance(data.get("methods"), list):
            raise MethodCatalogError("Methods file must contain a top-level 'methods' list")
        try:
            return [
                ExecutionMethod(name=str(entry["name"]), description=str(entry.get("description", "")))
                for entry in data["methods"]
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise MethodCatalogError(f"Malformed method entry: {exc}") from exc

    def resolve(self, name: str) -> ExecutionMethod:
        """Return the method called *name*, ignoring case.

        Raises ``NotFoundError`` listing the valid names.
        """
        method = self._by_name.get(name.upper())
        if method is None:
            raise NotFoundError(
                f"Invalid method: {name}\nValid methods: {', '.join(self.names())}"
            )
        return method

    def names(self) -> list[str]:
        return [m.name for m in self._methods]

    def methods(self) -> tuple[ExecutionMethod, ...]:
        return self._methods
