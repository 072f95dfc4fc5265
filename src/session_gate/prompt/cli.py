"""Interactive console transport.

Pattern: Prompt Renderer
-------------------------
The console is the human-facing boundary.  It handles three responsibilities:

  1. **Identity**: take ``--identity`` or ask for one, as a chat transport
     would supply the sender id.
  2. **Command loop**: read ``/command arg ...`` lines and hand them to the
     ``CommandHandler``; print each reply.
  3. **Notifications**: show broadcast messages as they arrive.

Input is read in a worker thread so the event loop keeps running expiry
timers while the prompt is waiting.  Rich is used for display.
"""

from __future__ import annotations

import asyncio
import logging
import shlex

from rich.console import Console
from rich.panel import Panel

from session_gate.commands.handlers import CommandHandler
from session_gate.engine import SessionEngine
from session_gate.notify.sinks import NotificationSink

logger = logging.getLogger(__name__)
console = Console()


class ConsoleSink(NotificationSink):
    """Prints notifications to the console."""

    async def send(self, text: str) -> None:
        console.print(Panel(text, title="notification", border_style="magenta"))


def _print_banner() -> None:
    console.print(
        Panel(
            "[bold]Session Gate[/bold]\n"
            "Quota-gated load-test sessions fanned out to runner endpoints",
            border_style="blue",
        )
    )


def parse_line(line: str) -> tuple[str, list[str]] | None:
    """Split ``/command arg ...`` into name and arguments; ``None`` if not a command."""
    line = line.strip()
    if not line.startswith("/"):
        return None
    try:
        parts = shlex.split(line)
    except ValueError:
        parts = line.split()
    return parts[0][1:], parts[1:]


async def _read(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def _command_loop(handler: CommandHandler, identity: str) -> None:
    console.print("Type [bold]/help[/bold] for commands, [bold]quit[/bold] to exit.\n")
    while True:
        try:
            line = (await _read(f"[{identity}] > ")).strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not line:
            continue
        if line.lower() in ("quit", "exit"):
            break

        parsed = parse_line(line)
        if parsed is None:
            console.print("[yellow]Commands start with '/'. Try /help.[/yellow]")
            continue

        command, args = parsed
        reply = await handler.handle(command, identity, args)
        console.print(f"\n{reply}\n")


async def run_console(engine: SessionEngine, identity: str | None = None) -> None:
    """Main entry point for the interactive console."""
    _print_banner()
    if not identity:
        identity = (await _read("  Identity: ")).strip()
    if not identity:
        console.print("[red]An identity is required.[/red]")
        return

    handler = CommandHandler(engine)
    try:
        await _command_loop(handler, identity)
    finally:
        await engine.drain()
    console.print("\n[dim]Console closed.[/dim]")
