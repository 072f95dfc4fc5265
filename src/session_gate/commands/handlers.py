"""Command handlers: one textual reply per inbound command.

Pattern: Reply Renderer
------------------------
The transport hands over a command name, the issuing identity and the raw
argument list.  ``CommandHandler.handle`` routes to the matching handler and
always returns a single reply string.  Every ``SessionGateError`` raised by the
core becomes its message; anything unexpected is logged and answered with a
generic error so one bad command never takes the transport down.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Awaitable, Callable

from session_gate.auth.principal import Principal
from session_gate.commands.requests import (
    AddUserRequest,
    RunRequest,
    UpdateUserRequest,
    parse_args,
)
from session_gate.engine import SessionEngine
from session_gate.errors import (
    CommandValidationError,
    ForbiddenError,
    NotFoundError,
    SessionGateError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, list[str]], Awaitable[str]]

RUN_USAGE = "/run host port duration method"
STOP_USAGE = "/stop session_id"
ADDUSER_USAGE = "/adduser identity token max_duration concurrency_limit expiry_days"
DELUSER_USAGE = "/deluser identity"
UPDATEUSER_USAGE = "/updateuser identity token|max_duration|concurrency_limit|expiry_days value"

_USER_HELP = (
    "Available commands:\n"
    f"{RUN_USAGE} - Start a load-test session\n"
    "/methods - Show available methods\n"
    "/status - Check your account status\n"
    "/sessions - List your ongoing sessions\n"
    f"{STOP_USAGE} - Stop tracking a session"
)

_ADMIN_HELP = (
    "Available commands:\n"
    f"{RUN_USAGE} - Start a load-test session\n"
    "/methods - Show available methods\n"
    "/status - Check your account status\n"
    "/sessions - List all ongoing sessions\n"
    f"{STOP_USAGE} - Stop tracking a session\n\n"
    "Admin commands:\n"
    f"{ADDUSER_USAGE} - Add a user\n"
    f"{DELUSER_USAGE} - Delete a user\n"
    f"{UPDATEUSER_USAGE} - Update a user property\n"
    "/users - List all users"
)

_NO_ACCESS = "You do not have access to this service. Please contact the administrator."
_NOT_SAVED = "\n⚠️ Saving failed: the change is active now but will be lost on restart."


class CommandHandler:
    """Routes commands to handlers and renders their replies."""

    def __init__(self, engine: SessionEngine) -> None:
        self._engine = engine
        self._commands: dict[str, Handler] = {
            "start": self._start,
            "help": self._help,
            "run": self._run,
            "methods": self._methods,
            "status": self._status,
            "sessions": self._sessions,
            "stop": self._stop,
            "adduser": self._adduser,
            "deluser": self._deluser,
            "updateuser": self._updateuser,
            "users": self._users,
        }

    async def handle(self, command: str, identity: str, args: list[str]) -> str:
        name = command.lstrip("/").lower()
        handler = self._commands.get(name)
        if handler is None:
            return f"Unknown command: /{name}. Use /help to see available commands."
        logger.debug("Command /%s from %s args=%s", name, identity, args)
        try:
            return await handler(identity, args)
        except SessionGateError as exc:
            logger.info("Command /%s from %s refused: %s", name, identity, type(exc).__name__)
            return str(exc)
        except Exception:
            logger.exception("Command /%s from %s failed", name, identity)
            return "An error occurred. Please try again later."

    # -- general commands ------------------------------------------------------

    async def _start(self, identity: str, args: list[str]) -> str:
        return "Welcome to Session Gate. Use /help to see available commands."

    async def _help(self, identity: str, args: list[str]) -> str:
        directory = self._engine.directory
        if directory.is_admin(identity):
            return _ADMIN_HELP
        if directory.has_access(identity):
            return _USER_HELP
        return _NO_ACCESS

    async def _run(self, identity: str, args: list[str]) -> str:
        # Quota refusals take precedence over argument errors.
        self._engine.registry.admit(identity, duration=0)
        request = parse_args(RunRequest, args, RUN_USAGE)
        session = await self._engine.start(
            identity,
            host=request.host,
            port=request.port,
            duration=request.duration,
            method=request.method,
        )
        return (
            "✅ Session started successfully!\n"
            f"🎯 Target: {session.target}\n"
            f"⏱️ Duration: {session.duration} seconds\n"
            f"🔧 Method: {session.method}\n"
            f"🔑 Session ID: {session.session_id}"
        )

    async def _methods(self, identity: str, args: list[str]) -> str:
        self._require_access(identity)
        lines = ["🔧 Available Methods:", ""]
        lines += [f"• {m.name} - {m.description}" for m in self._engine.catalog.methods()]
        lines += ["", f"Usage: {RUN_USAGE}"]
        return "\n".join(lines)

    async def _status(self, identity: str, args: list[str]) -> str:
        status = self._engine.status(identity)
        principal = status.principal
        return (
            "📊 Account Status:\n"
            f"👤 User ID: {principal.identity}\n"
            f"⏱️ Max Duration: {principal.max_duration} seconds\n"
            f"🔢 Concurrent Limit: {principal.concurrency_limit}\n"
            f"🔄 Currently Running: {status.running}/{principal.concurrency_limit}\n"
            f"⏳ Subscription: {status.validity}\n"
            f"🔌 Active Endpoints: {status.endpoint_count}"
        )

    async def _sessions(self, identity: str, args: list[str]) -> str:
        self._require_access(identity)
        sessions = self._engine.list(identity)
        if not sessions:
            if self._engine.directory.is_admin(identity):
                return "No ongoing sessions."
            return "You have no ongoing sessions."

        now = self._engine.registry.now()
        blocks = []
        for s in sessions:
            elapsed = min(s.elapsed(now), s.duration)
            blocks.append(
                f"🔑 ID: {s.session_id}\n"
                f"👤 User: {s.owner}\n"
                f"🎯 Target: {s.target}\n"
                f"⏱️ Time: {elapsed}s / {s.duration}s ({s.remaining(now)}s remaining)\n"
                f"🔧 Method: {s.method}"
            )
        return "🔄 Ongoing Sessions:\n\n" + "\n\n".join(blocks)

    async def _stop(self, identity: str, args: list[str]) -> str:
        self._require_access(identity)
        if len(args) != 1:
            raise CommandValidationError("A session id is required.", usage=STOP_USAGE)
        session = self._engine.cancel(args[0], identity)
        # Local tracking only: endpoints are not told to stop.
        return f"✅ Session {session.session_id} has been stopped."

    # -- admin commands --------------------------------------------------------

    async def _adduser(self, identity: str, args: list[str]) -> str:
        self._require_admin(identity)
        request = parse_args(AddUserRequest, args, ADDUSER_USAGE)
        principal = Principal(
            identity=request.identity,
            token=request.token,
            max_duration=request.max_duration,
            concurrency_limit=request.concurrency_limit,
            expiry=self._expiry_in(request.expiry_days),
        )
        persisted = self._engine.directory.upsert(principal)
        reply = (
            "✅ User added successfully!\n"
            f"👤 User ID: {principal.identity}\n"
            f"🔑 Token: {principal.token}\n"
            f"⏱️ Max Duration: {principal.max_duration} seconds\n"
            f"🔢 Concurrent Limit: {principal.concurrency_limit}\n"
            f"📅 Expires on: {principal.expiry.isoformat() if principal.expiry else 'never'}"
        )
        return reply if persisted else reply + _NOT_SAVED

    async def _deluser(self, identity: str, args: list[str]) -> str:
        self._require_admin(identity)
        if len(args) != 1:
            raise CommandValidationError("A user id is required.", usage=DELUSER_USAGE)
        persisted = self._engine.directory.remove(args[0])
        reply = f"✅ User {args[0]} has been deleted."
        return reply if persisted else reply + _NOT_SAVED

    async def _updateuser(self, identity: str, args: list[str]) -> str:
        self._require_admin(identity)
        request = parse_args(UpdateUserRequest, args, UPDATEUSER_USAGE)
        try:
            current = self._engine.directory.authorize(request.identity)
        except UnauthorizedError:
            raise NotFoundError(f"User {request.identity} not found.") from None

        updated = self._apply_update(current, request.attribute, request.value)
        persisted = self._engine.directory.upsert(updated)
        reply = (
            f"✅ User {request.identity} updated successfully. "
            f"{request.attribute} set to {request.value}."
        )
        return reply if persisted else reply + _NOT_SAVED

    async def _users(self, identity: str, args: list[str]) -> str:
        self._require_admin(identity)
        directory = self._engine.directory
        principals = directory.principals()
        if not principals:
            return "No users found."
        blocks = [
            f"👤 User ID: {p.identity}\n"
            f"⏱️ Max Duration: {p.max_duration} seconds\n"
            f"🔢 Concurrent Limit: {p.concurrency_limit}\n"
            f"⏳ Subscription: {directory.remaining_validity(p.identity)}"
            for p in principals
        ]
        return "👥 User List:\n\n" + "\n\n".join(blocks)

    # -- private helpers -----------------------------------------------------

    def _require_access(self, identity: str) -> None:
        if not self._engine.directory.has_access(identity):
            raise UnauthorizedError(identity)

    def _require_admin(self, identity: str) -> None:
        if not self._engine.directory.is_admin(identity):
            raise ForbiddenError("You are not authorized to use this command.")

    def _expiry_in(self, days: int) -> datetime.date:
        return self._engine.directory.today() + datetime.timedelta(days=days)

    def _apply_update(self, principal: Principal, attribute: str, value: str) -> Principal:
        if attribute == "token":
            return dataclasses.replace(principal, token=value)
        try:
            number = int(value)
        except ValueError:
            raise CommandValidationError(
                f"{attribute} must be a whole number.", usage=UPDATEUSER_USAGE
            ) from None
        if attribute == "expiry_days":
            if number < 0:
                raise CommandValidationError("expiry_days must not be negative.", usage=UPDATEUSER_USAGE)
            return dataclasses.replace(principal, expiry=self._expiry_in(number))
        if number <= 0:
            raise CommandValidationError(f"{attribute} must be positive.", usage=UPDATEUSER_USAGE)
        return dataclasses.replace(principal, **{attribute: number})
