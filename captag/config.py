"""
Configuration management for captag stores.

The configuration is stored as a TOML file in the store directory.
It selects the collection store backend and tunes bulk operations.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "captag.toml"
CONFIG_VERSION = 1

BACKENDS = ("local", "remote")

DEFAULT_MAX_WORKERS = 10
DEFAULT_UPLOAD_CHUNK_SIZE = 50
DEFAULT_TIMEOUT = 30.0


def get_default_store_path() -> Path:
    """Store directory: CAPTAG_STORE_PATH, else ~/.captag."""
    env = os.environ.get("CAPTAG_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".captag"


@dataclass
class RemoteConfig:
    """Where a remote captioning server lives."""
    api_url: str
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    backend: str = "local"
    remote: Optional[RemoteConfig] = None

    # Bulk operation tuning
    max_workers: int = DEFAULT_MAX_WORKERS
    upload_chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


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

    backend = store.get("backend", "local")
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend: {backend!r}. Available: {list(BACKENDS)}")

    remote = None
    remote_section = data.get("remote")
    if remote_section:
        if not remote_section.get("api_url"):
            raise ValueError("[remote] section requires api_url")
        remote = RemoteConfig(
            api_url=remote_section["api_url"],
            timeout=float(remote_section.get("timeout", DEFAULT_TIMEOUT)),
        )

    bulk = data.get("bulk", {})
    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=backend,
        remote=remote,
        max_workers=int(bulk.get("max_workers", DEFAULT_MAX_WORKERS)),
        upload_chunk_size=int(bulk.get("upload_chunk_size", DEFAULT_UPLOAD_CHUNK_SIZE)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "bulk": {
            "max_workers": config.max_workers,
            "upload_chunk_size": config.upload_chunk_size,
        },
    }
    if config.remote is not None:
        data["remote"] = {
            "api_url": config.remote.api_url,
            "timeout": config.remote.timeout,
        }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def _apply_env_overrides(config: StoreConfig) -> StoreConfig:
    """CAPTAG_API_URL switches to the remote backend without editing the file."""
    api_url = os.environ.get("CAPTAG_API_URL")
    if api_url:
        timeout = config.remote.timeout if config.remote else DEFAULT_TIMEOUT
        config.remote = RemoteConfig(api_url=api_url, timeout=timeout)
        config.backend = "remote"
    return config


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    store_path = Path(store_path) if store_path is not None else get_default_store_path()
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
    return _apply_env_overrides(config)
