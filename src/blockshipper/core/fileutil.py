"""Crash-safe file writes.

This module provides:
- write_file_atomic: Replace a file so that readers only ever see old or new content
- fsync_dir: Persist directory entries (renames, creations) to disk
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


def fsync_dir(dir_path: Path) -> None:
    """Flush a directory's entries to stable storage.

    Args:
        dir_path: Directory to sync.

    Raises:
        OSError: If the directory cannot be opened or synced.
    """
    fd = os.open(str(dir_path), os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_file_atomic(path: Path | str, data: bytes) -> None:
    """Write data to path atomically.

    The content goes to a sibling ``<name>.tmp`` file first, which is flushed
    and synced, then renamed onto the target. The parent directory is synced
    afterwards so the rename survives a crash.

    A stray temporary file may be left behind if a step fails; it is
    overwritten by the next attempt.

    Args:
        path: Target file path.
        data: Full file content.

    Raises:
        OSError: If any filesystem step fails.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + TMP_SUFFIX)

    with open(tmp_path, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())

    # Old content stays readable until the new file replaces it.
    os.replace(tmp_path, path)
    fsync_dir(path.parent)
    logger.debug(f"Wrote {path} ({len(data)} bytes)")
