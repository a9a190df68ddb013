"""Shipper configuration.

This module defines the configuration dataclass shared by the shipper,
the scheduler and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from blockshipper.core.types import SourceType

STAGING_DIRNAME = "shipper"
UPLOAD_DIRNAME = "upload"
BOOKKEEPING_FILENAME = "shipper.json"


@dataclass
class ShipperConfig:
    """Configuration for one shipper instance.

    The staging directory lives inside data_dir so that hard links from
    block directories into it never cross a filesystem boundary.

    Attributes:
        data_dir: Directory holding one subdirectory per block.
        source: Source type attached to every shipped manifest.
        labels: Static external labels (used when no label supplier is given).
        upload_retries: Extra attempts per object upload on network errors.
        sync_interval: Seconds between passes in watch mode.
    """

    data_dir: Path
    source: SourceType = SourceType.SIDECAR
    labels: dict[str, str] = field(default_factory=dict)
    upload_retries: int = 0
    sync_interval: float = 30.0

    def __post_init__(self) -> None:
        """Normalize paths and enum values."""
        self.data_dir = Path(self.data_dir).expanduser()
        if not isinstance(self.source, SourceType):
            self.source = SourceType(self.source)
        if self.upload_retries < 0:
            raise ValueError("upload_retries must be >= 0")
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be positive")

    @property
    def staging_dir(self) -> Path:
        """Root of the per-block staging directories."""
        return self.data_dir / STAGING_DIRNAME / UPLOAD_DIRNAME
