"""Configuration utilities for the blockshipper CLI.

The config file ``~/.blockshipper/config.json`` is a flat string map::

    {
      "data_dir": "/var/lib/tsdb",
      "source": "sidecar",
      "labels": "cluster=eu1,replica=a",
      "storage_type": "s3",
      "bucket": "blocks"
    }

Command-line options override values from the file. S3 credentials are
never stored in it; they are read from ``BLOCKSHIPPER_S3_ACCESS_KEY`` and
``BLOCKSHIPPER_S3_SECRET_KEY``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from blockshipper.core.config import ShipperConfig
from blockshipper.core.types import SourceType
from blockshipper.storage import ObjectStorage, create_storage

STORAGE_KEYS = ("local_path", "bucket", "endpoint_url", "region", "prefix")

# Storage settings taken from the environment only
CREDENTIAL_ENV = {
    "access_key": "BLOCKSHIPPER_S3_ACCESS_KEY",
    "secret_key": "BLOCKSHIPPER_S3_SECRET_KEY",
}

CONFIG_KEYS = (
    "data_dir",
    "source",
    "labels",
    "upload_retries",
    "sync_interval",
    "storage_type",
    *STORAGE_KEYS,
)


def get_config_dir() -> Path:
    """Get the configuration directory for blockshipper.

    Returns:
        Path to ~/.blockshipper.
    """
    return Path.home() / ".blockshipper"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def parse_labels(value: str | None) -> dict[str, str]:
    """Parse ``k=v,k2=v2`` into a dict.

    Raises:
        ValueError: If an item has no '='.
    """
    labels: dict[str, str] = {}
    if not value:
        return labels
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, val = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid label {item!r}, expected key=value")
        labels[key.strip()] = val.strip()
    return labels


def build_shipper_config(config: dict[str, str]) -> ShipperConfig:
    """Create a ShipperConfig from a config map.

    Raises:
        ValueError: If data_dir is missing or a value is invalid.
    """
    data_dir = config.get("data_dir")
    if not data_dir:
        raise ValueError("No data directory configured (use --dir or 'config set data_dir')")
    return ShipperConfig(
        data_dir=Path(data_dir),
        source=SourceType(config.get("source") or SourceType.SIDECAR.value),
        labels=parse_labels(config.get("labels")),
        upload_retries=int(config.get("upload_retries") or 0),
        sync_interval=float(config.get("sync_interval") or 30.0),
    )


def build_storage(config: dict[str, str]) -> ObjectStorage:
    """Create the remote object store from a config map."""
    storage_config: dict[str, str | None] = {"type": config.get("storage_type") or "local"}
    for key in STORAGE_KEYS:
        storage_config[key] = config.get(key)
    for key, env_var in CREDENTIAL_ENV.items():
        storage_config[key] = os.environ.get(env_var)
    return create_storage(storage_config)
