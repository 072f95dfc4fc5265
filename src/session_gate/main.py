"""CLI entry point: ties together configuration, the session engine, and the console."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

from session_gate.auth.directory import PrincipalDirectory
from session_gate.catalog.methods import MethodCatalog
from session_gate.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from session_gate.dispatch.credentials import VaultCredentialResolver, resolve_endpoints
from session_gate.dispatch.fanout import Dispatcher
from session_gate.engine import SessionEngine
from session_gate.notify.sinks import FanOutSink, NotificationSink, WebhookSink
from session_gate.policy.scope import TargetScope
from session_gate.sessions.registry import SessionRegistry
from session_gate.store.principals import PrincipalStore

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, sink: NotificationSink | None = None) -> SessionEngine:
    """Assemble a ``SessionEngine`` from *settings*."""
    store = PrincipalStore(settings.principals_path)
    directory = PrincipalDirectory(
        principals=store.load(),
        admin_ids=settings.admin_ids,
        save_hook=store.save,
    )

    resolver = None
    if settings.vault_address:
        resolver = VaultCredentialResolver(
            vault_addr=settings.vault_address,
            kv_mount=settings.vault_kv_mount,
            token=os.environ.get("VAULT_TOKEN"),
        )
    endpoints = resolve_endpoints(list(settings.endpoints), resolver)

    scope = TargetScope(settings.allowed_targets)
    if not len(scope):
        logger.warning("allowed_targets is empty: every run will be refused")

    sinks: list[NotificationSink] = [sink] if sink is not None else []
    if settings.webhook_url:
        sinks.append(WebhookSink(settings.webhook_url, channel=settings.notification_channel))

    return SessionEngine(
        directory=directory,
        catalog=MethodCatalog.from_file(settings.methods_path),
        scope=scope,
        dispatcher=Dispatcher(endpoints, timeout=settings.dispatch_timeout_seconds),
        sink=FanOutSink(sinks) if sinks else None,
        registry=SessionRegistry(directory, grace_seconds=settings.completion_grace_seconds),
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Session Gate: quota-gated load-test sessions",
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to settings.yaml",
    )
    parser.add_argument(
        "--identity",
        default=None,
        help="Identity to issue commands as (prompted if omitted)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    settings = load_settings(args.config)

    from session_gate.prompt.cli import ConsoleSink, run_console

    engine = build_engine(settings, sink=ConsoleSink())
    logger.info(
        "Session Gate ready: %d endpoint(s), %d method(s)",
        len(engine.dispatcher.endpoints),
        len(engine.catalog.methods()),
    )
    asyncio.run(run_console(engine, identity=args.identity))


if __name__ == "__main__":
    main()
