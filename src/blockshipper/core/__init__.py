"""Core module - Block layout, manifest model, atomic writes and config."""

from blockshipper.core.block import (
    CHUNKS_DIRNAME,
    INDEX_FILENAME,
    META_FILENAME,
    RAW_COMPACTION_LEVEL,
    BlockMeta,
    BlockMetaError,
    is_block_id,
    read_block_meta,
    write_block_meta,
)
from blockshipper.core.config import ShipperConfig
from blockshipper.core.fileutil import fsync_dir, write_file_atomic
from blockshipper.core.types import SourceType

__all__ = [
    # Block
    "BlockMeta",
    "BlockMetaError",
    "CHUNKS_DIRNAME",
    "INDEX_FILENAME",
    "META_FILENAME",
    "RAW_COMPACTION_LEVEL",
    "is_block_id",
    "read_block_meta",
    "write_block_meta",
    # Config
    "ShipperConfig",
    # File utilities
    "fsync_dir",
    "write_file_atomic",
    # Types
    "SourceType",
]
