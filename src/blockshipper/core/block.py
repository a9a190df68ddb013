"""Block directory layout and manifest model.

This module provides:
- Layout constants (manifest, index and chunk directory names)
- is_block_id: Check whether a directory name looks like a block ID
- BlockMeta: Parsed block manifest (meta.json)
- read_block_meta / write_block_meta: Manifest I/O

A block lives in ``<root>/<block id>/`` and contains::

    meta.json        manifest
    index            index file
    chunks/000001    data segments
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from blockshipper.core.fileutil import write_file_atomic

META_FILENAME = "meta.json"
INDEX_FILENAME = "index"
CHUNKS_DIRNAME = "chunks"

# Raw ingestion blocks carry level 1; compaction output starts at 2.
RAW_COMPACTION_LEVEL = 1

META_VERSION = 1

# Crockford base32 ULID: 48-bit timestamp + 80 bits of randomness.
_ULID_RE = re.compile(r"^[0-7][0-9A-HJKMNP-TV-Z]{25}$")

SHIPPER_SECTION = "shipper"


class BlockMetaError(Exception):
    """Raised when a block manifest cannot be read or parsed."""


def is_block_id(name: str) -> bool:
    """Check whether a name is a valid block ID (ULID).

    Args:
        name: Directory name or identifier.

    Returns:
        True if name is a 26-character Crockford base32 ULID.
    """
    return bool(_ULID_RE.match(name))


@dataclass
class BlockMeta:
    """Parsed manifest of one block.

    Attributes:
        ulid: Block ID.
        min_time: Start of the data range (inclusive, milliseconds).
        max_time: End of the data range (exclusive, milliseconds).
        compaction_level: 1 for raw blocks, >1 for merged ones.
        dir: Directory the manifest was read from.
        labels: External labels attached at shipping time.
        source: How the block was produced, set at shipping time. Kept as a
            plain string so tags written by other producers survive a read.
        raw: Complete manifest document; unknown fields are written back.
    """

    ulid: str
    min_time: int
    max_time: int
    compaction_level: int = RAW_COMPACTION_LEVEL
    dir: Path | None = None
    labels: dict[str, str] = field(default_factory=dict)
    source: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], block_dir: Path | None = None) -> BlockMeta:
        """Create BlockMeta from a decoded manifest.

        Raises:
            BlockMetaError: If required fields are missing or malformed.
        """
        try:
            ulid = str(data["ulid"])
            min_time = int(data["minTime"])
            max_time = int(data["maxTime"])
            level = int(data.get("compaction", {}).get("level", RAW_COMPACTION_LEVEL))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BlockMetaError(f"Invalid manifest: {e}") from e

        if not is_block_id(ulid):
            raise BlockMetaError(f"Invalid block ID in manifest: {ulid!r}")

        version = data.get("version", META_VERSION)
        if version != META_VERSION:
            raise BlockMetaError(f"Unexpected manifest version {version}")

        # Written by whoever shipped the block last; replaced on upload.
        section = data.get(SHIPPER_SECTION)
        if not isinstance(section, dict):
            section = {}
        source = section.get("source")
        if not isinstance(source, str):
            source = None
        raw_labels = section.get("labels")
        labels: dict[str, str] = {}
        if isinstance(raw_labels, dict):
            labels = {str(k): str(v) for k, v in raw_labels.items()}

        return cls(
            ulid=ulid,
            min_time=min_time,
            max_time=max_time,
            compaction_level=level,
            dir=block_dir,
            labels=labels,
            source=source,
            raw=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to a manifest document."""
        data = dict(self.raw)
        data["ulid"] = self.ulid
        data["minTime"] = self.min_time
        data["maxTime"] = self.max_time
        compaction = dict(data.get("compaction") or {})
        compaction["level"] = self.compaction_level
        data["compaction"] = compaction
        data.setdefault("version", META_VERSION)

        section: dict[str, Any] = {"labels": dict(self.labels)}
        if self.source is not None:
            section["source"] = self.source
        data[SHIPPER_SECTION] = section
        return data


def read_block_meta(block_dir: Path) -> BlockMeta:
    """Read the manifest of the block in block_dir.

    Args:
        block_dir: Block directory.

    Returns:
        Parsed BlockMeta with dir set to block_dir.

    Raises:
        BlockMetaError: If the manifest is missing, unreadable or invalid.
    """
    path = block_dir / META_FILENAME
    try:
        data = json.loads(path.read_bytes())
    except OSError as e:
        raise BlockMetaError(f"Cannot read {path}: {e}") from e
    except ValueError as e:
        raise BlockMetaError(f"Cannot decode {path}: {e}") from e

    if not isinstance(data, dict):
        raise BlockMetaError(f"Manifest {path} is not an object")
    return BlockMeta.from_dict(data, block_dir)


def write_block_meta(block_dir: Path, meta: BlockMeta) -> None:
    """Atomically write meta as block_dir/meta.json."""
    payload = json.dumps(meta.to_dict(), indent="\t") + "\n"
    write_file_atomic(block_dir / META_FILENAME, payload.encode())
