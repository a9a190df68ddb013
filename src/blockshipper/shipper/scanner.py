"""Local block discovery.

This module provides:
- iter_block_metas: Yield the manifest of every block found in a data directory

Blocks are created and deleted by other processes at any time, so every
per-entry failure is logged and skipped instead of aborting the scan.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator
from pathlib import Path

from blockshipper.core.block import BlockMeta, BlockMetaError, is_block_id, read_block_meta
from blockshipper.shipper.types import BlockScanError

logger = logging.getLogger(__name__)


def iter_block_metas(data_dir: Path) -> Iterator[BlockMeta]:
    """Iterate over the blocks in data_dir, in block ID order.

    The directory listing is taken once when iteration starts. Entries whose
    name is not a block ID, that are not directories, or whose manifest
    cannot be read are skipped.

    Args:
        data_dir: Directory holding one subdirectory per block.

    Yields:
        BlockMeta for each readable block.

    Raises:
        BlockScanError: If data_dir itself cannot be listed.
    """
    try:
        names = sorted(os.listdir(data_dir))
    except OSError as e:
        raise BlockScanError(f"Cannot read directory {data_dir}: {e}") from e

    for name in names:
        if not is_block_id(name):
            continue
        block_dir = Path(data_dir) / name

        try:
            st = block_dir.stat()
        except OSError as e:
            logger.warning(f"Cannot stat {block_dir}: {e}")
            continue
        if not stat.S_ISDIR(st.st_mode):
            continue

        try:
            meta = read_block_meta(block_dir)
        except BlockMetaError as e:
            logger.warning(f"Reading block meta failed, skipping {name}: {e}")
            continue

        yield meta

