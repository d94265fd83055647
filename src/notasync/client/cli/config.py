"""Configuration utilities for the notasync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from notasync.client.auth import OAuthCredentials
from notasync.core.config import SyncConfig

CONFIG_HOME_ENV = "NOTASYNC_HOME"

CREDENTIAL_KEYS = ("access_token", "refresh_token", "client_id", "client_secret")


def get_config_dir() -> Path:
    """Get the configuration directory for notasync.

    Returns:
        Path from $NOTASYNC_HOME, or ~/.notasync.
    """
    override = os.environ.get(CONFIG_HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".notasync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db_path() -> Path:
    """Get the path to the local state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_sync_config() -> SyncConfig:
    """Engine settings stored next to the credentials."""
    return SyncConfig.from_dict(load_config())


def is_logged_in() -> bool:
    return bool(load_config().get("access_token"))


def _store_refreshed_token(token: str) -> None:
    config = load_config()
    config["access_token"] = token
    save_config(config)


def load_credentials() -> OAuthCredentials | None:
    """Build credentials from the config file.

    Returns:
        Credentials persisting refreshed tokens, or None if logged out.
    """
    config = load_config()
    if not config.get("access_token"):
        return None
    return OAuthCredentials(
        access_token=config["access_token"],
        refresh_token=config.get("refresh_token"),
        client_id=config.get("client_id"),
        client_secret=config.get("client_secret"),
        timeout=float(config.get("timeout", 30.0)),
        on_refreshed=_store_refreshed_token,
    )
