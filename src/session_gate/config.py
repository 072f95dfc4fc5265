"""Settings loaded from ``config/settings.yaml``.

Relative paths inside the file are resolved against the directory that holds
the settings file.  A missing settings file is not fatal: the defaults below
are used and a warning is logged.
"""

from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = pathlib.Path(__file__).resolve().parents[2] / "config" / "settings.yaml"


class ConfigError(Exception):
    """Raised when the settings file is malformed."""


@dataclasses.dataclass(frozen=True)
class Settings:
    admin_ids: tuple[str, ...] = ()
    principals_path: pathlib.Path = pathlib.Path("principals.yaml")
    methods_path: pathlib.Path | None = None
    allowed_targets: tuple[str, ...] = ()
    endpoints: tuple[dict[str, Any], ...] = ()
    vault_address: str | None = None
    vault_kv_mount: str = "secret"
    webhook_url: str | None = None
    notification_channel: str = ""
    completion_grace_seconds: float = 0.0
    dispatch_timeout_seconds: float | None = 10.0


def load_settings(path: str | pathlib.Path = DEFAULT_CONFIG_PATH) -> Settings:
    config_path = pathlib.Path(path)
    base = config_path.parent
    if not config_path.exists():
        logger.warning("Settings file %s not found, using defaults", config_path)
        return Settings(principals_path=base / "principals.yaml")

    try:
        with open(config_path) as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{config_path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    vault_cfg: dict[str, Any] = data.get("vault") or {}
    notify_cfg: dict[str, Any] = data.get("notifications") or {}
    endpoints = data.get("endpoints") or []
    if not isinstance(endpoints, list) or not all(isinstance(e, dict) for e in endpoints):
        raise ConfigError("'endpoints' must be a list of mappings")

    methods_path = data.get("methods_path")
    return Settings(
        admin_ids=tuple(str(a) for a in data.get("admin_ids") or ()),
        principals_path=base / data.get("principals_path", "principals.yaml"),
        methods_path=base / methods_path if methods_path else None,
        allowed_targets=tuple(str(t) for t in data.get("allowed_targets") or ()),
        endpoints=tuple(endpoints),
        vault_address=vault_cfg.get("address"),
        vault_kv_mount=vault_cfg.get("kv_mount", "secret"),
        webhook_url=notify_cfg.get("webhook_url") or None,
        notification_channel=notify_cfg.get("channel", ""),
        completion_grace_seconds=float(data.get("completion_grace_seconds", 0)),
        dispatch_timeout_seconds=data.get("dispatch_timeout_seconds", 10.0),
    )
