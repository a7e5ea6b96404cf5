"""
Configuration management for copydeck stores.

The configuration is stored as a TOML file in the store directory.
It selects the record store backend and the catalog/restore policies.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "copydeck.toml"
CONFIG_VERSION = 1

DEFAULT_STORE_DIR = ".copydeck"

ITEM_ORDERS = ("asc", "desc")
RESTORE_STRATEGIES = ("insert_first", "delete_first")
BACKENDS = ("local", "remote")


@dataclass
class RemoteConfig:
    """Connection settings for a remote record store (Supabase REST)."""
    api_url: str
    api_key: str


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # "local" (SQLite) or "remote"; other names resolve via entry points
    backend: str = "local"
    remote: Optional[RemoteConfig] = None

    # Display order of items by created_at
    item_order: str = "desc"
    snapshot_list_limit: int = 5

    # How restore replaces a user's partition
    restore_strategy: str = "insert_first"

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def ascending(self) -> bool:
        return self.item_order == "asc"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    Priority:
    1. COPYDECK_STORE_PATH environment variable
    2. ~/.copydeck
    """
    env_path = os.environ.get("COPYDECK_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / DEFAULT_STORE_DIR


def _validate(config: StoreConfig) -> None:
    if config.item_order not in ITEM_ORDERS:
        raise ValueError(f"item_order must be one of {ITEM_ORDERS}, got {config.item_order!r}")
    if config.restore_strategy not in RESTORE_STRATEGIES:
        raise ValueError(
            f"restore strategy must be one of {RESTORE_STRATEGIES}, got {config.restore_strategy!r}"
        )
    if config.snapshot_list_limit < 1:
        raise ValueError("snapshot_list_limit must be at least 1")


def _remote_from_env(remote: Optional[RemoteConfig]) -> Optional[RemoteConfig]:
    """Environment variables override the [remote] section."""
    api_url = os.environ.get("COPYDECK_API_URL")
    api_key = os.environ.get("COPYDECK_API_KEY")
    if api_url and api_key:
        return RemoteConfig(api_url=api_url, api_key=api_key)
    return remote


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    remote = None
    remote_section = data.get("remote")
    if remote_section and remote_section.get("api_url") and remote_section.get("api_key"):
        remote = RemoteConfig(
            api_url=remote_section["api_url"],
            api_key=remote_section["api_key"],
        )

    catalog = data.get("catalog", {})
    restore = data.get("restore", {})
    config = StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", "local"),
        remote=_remote_from_env(remote),
        item_order=catalog.get("item_order", "desc"),
        snapshot_list_limit=int(catalog.get("snapshot_list_limit", 5)),
        restore_strategy=restore.get("strategy", "insert_first"),
    )
    _validate(config)
    return config


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist. The API key is written only
    when it did not come from the environment.
    """
    _validate(config)
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "catalog": {
            "item_order": config.item_order,
            "snapshot_list_limit": config.snapshot_list_limit,
        },
        "restore": {
            "strategy": config.restore_strategy,
        },
    }
    if config.remote and os.environ.get("COPYDECK_API_KEY") != config.remote.api_key:
        data["remote"] = {
            "api_url": config.remote.api_url,
            "api_key": config.remote.api_key,
        }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    config = StoreConfig(path=store_path, remote=_remote_from_env(None))
    if config.remote:
        config.backend = "remote"
    save_config(config)
    return config
