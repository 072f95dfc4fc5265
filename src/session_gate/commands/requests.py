"""Argument models for commands that take structured input.

Command arguments arrive as raw whitespace-separated strings.  Each model
below names its positional fields in order; ``parse_args`` zips the raw
arguments onto those fields and lets pydantic coerce and validate them.
"""

from __future__ import annotations

from typing import Literal, TypeVar

import pydantic
from pydantic import BaseModel, Field

from session_gate.errors import CommandValidationError

M = TypeVar("M", bound=BaseModel)


class RunRequest(BaseModel):
    host: str = Field(min_length=1, max_length=253, pattern=r"^[A-Za-z0-9.:\-\[\]]+$")
    port: int = Field(ge=1, le=65535)
    duration: int = Field(gt=0)
    method: str = Field(min_length=1)


class AddUserRequest(BaseModel):
    identity: str = Field(min_length=1)
    token: str = Field(min_length=1)
    max_duration: int = Field(gt=0)
    concurrency_limit: int = Field(gt=0)
    expiry_days: int = Field(ge=0)


class UpdateUserRequest(BaseModel):
    identity: str = Field(min_length=1)
    attribute: Literal["token", "max_duration", "concurrency_limit", "expiry_days"]
    value: str = Field(min_length=1)


def parse_args(model: type[M], args: list[str], usage: str) -> M:
    """Validate positional *args* against *model*.

    Raises ``CommandValidationError`` with *usage* on a count mismatch or on
    any field failing validation.
    """
    fields = list(model.model_fields)
    if len(args) != len(fields):
        raise CommandValidationError(
            f"Expected {len(fields)} argument(s), got {len(args)}.", usage=usage
        )
    try:
        return model.model_validate(dict(zip(fields, args)))
    except pydantic.ValidationError as exc:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise CommandValidationError(f"Invalid arguments ({problems}).", usage=usage) from exc
