"""Endpoint credential retrieval from Vault's KV v2 secrets engine.

Pattern: Credential Brokering
------------------------------
Endpoint credentials do not have to live in ``settings.yaml``.  An endpoint
entry may instead name a ``vault_path``; at startup the credential is read
from Vault's KV v2 engine and only the resolved ``Endpoint`` is kept in
memory.  Entries that carry a literal ``credential`` are used as-is.
"""

from __future__ import annotations

import logging
from typing import Any

import hvac

from session_gate.dispatch.fanout import Endpoint

logger = logging.getLogger(__name__)


class EndpointCredentialError(Exception):
    """Raised when an endpoint credential cannot be resolved."""


class VaultCredentialResolver:
    """Reads endpoint credentials from a KV v2 mount."""

    def __init__(self, vault_addr: str, kv_mount: str = "secret", token: str | None = None) -> None:
        self._vault_addr = vault_addr
        self._kv_mount = kv_mount
        self._token = token

    def read(self, path: str, key: str = "token") -> str:
        """Return the value stored under *key* at *path*.

        Raises ``EndpointCredentialError`` if Vault refuses or the key is absent.
        """
        client = hvac.Client(url=self._vault_addr, token=self._token)
        try:
            response = client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self._kv_mount,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.VaultError as exc:
            raise EndpointCredentialError(
                f"Vault read failed for {self._kv_mount}/{path}: {exc}"
            ) from exc

        secret: dict[str, Any] = response["data"]["data"]
        if key not in secret:
            raise EndpointCredentialError(f"Key '{key}' not present at {self._kv_mount}/{path}")
        logger.info("Resolved endpoint credential from %s/%s", self._kv_mount, path)
        return str(secret[key])


def resolve_endpoints(
    entries: list[dict[str, Any]],
    resolver: VaultCredentialResolver | None = None,
) -> list[Endpoint]:
    """Turn configuration entries into ``Endpoint`` objects with credentials."""
    endpoints: list[Endpoint] = []
    for index, entry in enumerate(entries):
        name = str(entry.get("name") or f"endpoint-{index + 1}")
        if "url" not in entry:
            raise EndpointCredentialError(f"Endpoint '{name}' has no url")
        if entry.get("credential") is not None:
            credential = str(entry["credential"])
        elif entry.get("vault_path"):
            if resolver is None:
                raise EndpointCredentialError(
                    f"Endpoint '{name}' uses vault_path but no Vault address is configured"
                )
            credential = resolver.read(entry["vault_path"], entry.get("vault_key", "token"))
        else:
            raise EndpointCredentialError(f"Endpoint '{name}' has neither credential nor vault_path")
        endpoints.append(Endpoint(name=name, url=str(entry["url"]), credential=credential))
    return endpoints
