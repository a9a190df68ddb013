"""Bookkeeping of blocks already shipped.

The shipper keeps ``<data dir>/shipper.json``::

    {
    	"version": 1,
    	"uploaded": ["01H...", "01H..."]
    }

The file is an optimization only. Every unrecorded block is checked against
the remote store before upload, so losing this file costs extra existence
checks and never a duplicate or a lost block.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from blockshipper.core.block import is_block_id
from blockshipper.core.config import BOOKKEEPING_FILENAME
from blockshipper.core.fileutil import write_file_atomic
from blockshipper.shipper.types import (
    MetaFileCorruptError,
    MetaFileNotFoundError,
    MetaFileVersionError,
)

logger = logging.getLogger(__name__)

META_VERSION = 1


@dataclass
class ShipperMeta:
    """Content of the bookkeeping file.

    Attributes:
        version: Format version, always META_VERSION.
        uploaded: Block IDs confirmed uploaded, in scan order.
    """

    version: int = META_VERSION
    uploaded: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        """Serialize with stable field order and tab indentation."""
        return json.dumps({"version": self.version, "uploaded": self.uploaded}, indent="\t") + "\n"


def read_meta_file(data_dir: Path) -> ShipperMeta:
    """Read the bookkeeping file from data_dir.

    Args:
        data_dir: Shipper data directory.

    Returns:
        Loaded ShipperMeta.

    Raises:
        MetaFileNotFoundError: If the file does not exist.
        MetaFileVersionError: If the version is not META_VERSION.
        MetaFileCorruptError: If the file cannot be decoded.
    """
    path = Path(data_dir) / BOOKKEEPING_FILENAME
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise MetaFileNotFoundError(f"No shipper meta file at {path}") from e
    except OSError as e:
        raise MetaFileCorruptError(f"Cannot read {path}: {e}") from e

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise MetaFileCorruptError(f"Cannot decode {path}: {e}") from e

    if not isinstance(data, dict):
        raise MetaFileCorruptError(f"{path} is not a JSON object")

    version = data.get("version")
    if type(version) is not int or version != META_VERSION:
        raise MetaFileVersionError(version)

    uploaded = data.get("uploaded")
    if uploaded is None:
        uploaded = []
    if not isinstance(uploaded, list) or not all(
        isinstance(u, str) and is_block_id(u) for u in uploaded
    ):
        raise MetaFileCorruptError(f"{path} has an invalid uploaded list")

    return ShipperMeta(version=version, uploaded=list(uploaded))


def write_meta_file(data_dir: Path, meta: ShipperMeta) -> None:
    """Atomically write meta as data_dir/shipper.json.

    Raises:
        OSError: If the file cannot be written.
    """
    write_file_atomic(Path(data_dir) / BOOKKEEPING_FILENAME, meta.to_json().encode())
    logger.debug(f"Bookkeeping updated: {len(meta.uploaded)} uploaded blocks")
