"""Tests for endpoint credential resolution via Vault."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from session_gate.dispatch.credentials import (
    EndpointCredentialError,
    VaultCredentialResolver,
    resolve_endpoints,
)


class TestVaultCredentialResolver:
    @patch("session_gate.dispatch.credentials.hvac.Client")
    def test_reads_token_key(self, mock_client_cls: MagicMock) -> None:
        mock_client = mock_client_cls.return_value
        mock_client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"token": "runner-secret"}}
        }

        resolver = VaultCredentialResolver("http://127.0.0.1:8200", kv_mount="kv", token="s.t")
        assert resolver.read("load-runners/b") == "runner-secret"

        mock_client_cls.assert_called_once_with(url="http://127.0.0.1:8200", token="s.t")
        kwargs = mock_client.secrets.kv.v2.read_secret_version.call_args.kwargs
        assert kwargs["path"] == "load-runners/b"
        assert kwargs["mount_point"] == "kv"

    @patch("session_gate.dispatch.credentials.hvac.Client")
    def test_missing_key_raises(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"other": "x"}}
        }
        with pytest.raises(EndpointCredentialError, match="Key 'token'"):
            VaultCredentialResolver("http://vault").read("p")

    @patch("session_gate.dispatch.credentials.hvac.Client")
    def test_vault_error_raises_credential_error(self, mock_client_cls: MagicMock) -> None:
        import hvac.exceptions

        mock_client_cls.return_value.secrets.kv.v2.read_secret_version.side_effect = (
            hvac.exceptions.Forbidden("permission denied")
        )
        with pytest.raises(EndpointCredentialError, match="permission denied"):
            VaultCredentialResolver("http://vault").read("p")


class TestResolveEndpoints:
    def test_literal_credentials(self) -> None:
        endpoints = resolve_endpoints([
            {"name": "a", "url": "https://a.test", "credential": "ca"},
            {"url": "https://b.test", "credential": 42},
        ])
        assert [(e.name, e.url, e.credential) for e in endpoints] == [
            ("a", "https://a.test", "ca"),
            ("endpoint-2", "https://b.test", "42"),
        ]

    def test_vault_path_uses_resolver(self) -> None:
        resolver = MagicMock()
        resolver.read.return_value = "from-vault"
        endpoints = resolve_endpoints(
            [{"name": "b", "url": "https://b.test", "vault_path": "runners/b", "vault_key": "key"}],
            resolver,
        )
        resolver.read.assert_called_once_with("runners/b", "key")
        assert endpoints[0].credential == "from-vault"

    def test_vault_path_without_resolver_raises(self) -> None:
        with pytest.raises(EndpointCredentialError, match="no Vault address"):
            resolve_endpoints([{"name": "b", "url": "https://b.test", "vault_path": "x"}])

    def test_missing_credential_raises(self) -> None:
        with pytest.raises(EndpointCredentialError, match="neither"):
            resolve_endpoints([{"name": "b", "url": "https://b.test"}])

    def test_missing_url_raises(self) -> None:
        with pytest.raises(EndpointCredentialError, match="no url"):
            resolve_endpoints([{"name": "b", "credential": "c"}])
