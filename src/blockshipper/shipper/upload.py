"""Staging and upload of a single block.

This module provides:
- BlockUploader: Ships one block to the object store
- hardlink_block: Mirror a block directory into a staging directory

Files are hard-linked into ``<data dir>/shipper/upload/<block id>`` before
upload, so the upload reads a stable snapshot even if the block is compacted
away meanwhile. The manifest is uploaded last: a reader that sees
``<block id>/meta.json`` in the store can rely on every other file of the
block being there too.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from blockshipper.core.block import (
    CHUNKS_DIRNAME,
    INDEX_FILENAME,
    META_FILENAME,
    RAW_COMPACTION_LEVEL,
    BlockMeta,
    BlockMetaError,
    read_block_meta,
    write_block_meta,
)
from blockshipper.core.types import SourceType
from blockshipper.shipper.retry import retry_with_backoff
from blockshipper.shipper.types import (
    CancelCheck,
    LabelSupplier,
    RemoteStorageError,
    StagingError,
    UploadCancelledError,
    UploadError,
    UploadOutcome,
)

if TYPE_CHECKING:
    from blockshipper.storage import ObjectStorage

logger = logging.getLogger(__name__)


def _never_cancelled() -> bool:
    return False


def meta_key(block_id: str) -> str:
    """Object key of a block's manifest."""
    return f"{block_id}/{META_FILENAME}"


def hardlink_block(src: Path, dst: Path) -> None:
    """Hard-link the files of block src into the existing directory dst.

    Links every file of ``chunks/`` plus the manifest and the index.

    Raises:
        OSError: If a directory cannot be read or a link cannot be created
            (including EXDEV when src and dst are on different filesystems).
    """
    chunk_dir = dst / CHUNKS_DIRNAME
    chunk_dir.mkdir(parents=True, exist_ok=True)

    files = [
        Path(CHUNKS_DIRNAME) / name
        for name in sorted(os.listdir(src / CHUNKS_DIRNAME))
    ]
    files += [Path(META_FILENAME), Path(INDEX_FILENAME)]

    for rel in files:
        os.link(src / rel, dst / rel)


def upload_order(updir: Path) -> list[Path]:
    """List the files of a staged block in upload order.

    Chunks come first, then the index and any other files, and the manifest
    strictly last.

    Returns:
        Paths relative to updir.
    """
    files = sorted(
        p.relative_to(updir) for p in updir.rglob("*") if p.is_file()
    )
    chunks = [p for p in files if p.parts[0] == CHUNKS_DIRNAME]
    manifest = [p for p in files if p == Path(META_FILENAME)]
    rest = [p for p in files if p not in chunks and p not in manifest]
    return chunks + rest + manifest


class BlockUploader:
    """Uploads a single block through a hard-linked staging directory.

    Not safe for concurrent use on the same block ID: the staging directory
    is keyed by block ID and wiped at the start of each attempt.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        staging_dir: Path,
        source: SourceType,
        labels: LabelSupplier | None = None,
        upload_retries: int = 0,
    ) -> None:
        """Initialize the uploader.

        Args:
            storage: Remote object store.
            staging_dir: Parent of the per-block staging directories. Must
                be on the same filesystem as the blocks.
            source: Source type written into shipped manifests.
            labels: Called once per upload; None or a None result means no labels.
            upload_retries: Extra attempts per object on network errors.
        """
        self._storage = storage
        self._staging_dir = Path(staging_dir)
        self._source = source
        self._labels: LabelSupplier = labels or (lambda: None)
        self._upload_retries = upload_retries

    def upload(
        self,
        meta: BlockMeta,
        cancel_check: CancelCheck | None = None,
    ) -> UploadOutcome:
        """Ship one block unless it is compacted or already in the store.

        Args:
            meta: Manifest of the block, with dir set.
            cancel_check: Optional cancellation check, consulted between steps.

        Returns:
            UploadOutcome describing what happened.

        Raises:
            UploadError: If any step fails.
            UploadCancelledError: If cancellation was requested.
        """
        cancel_check = cancel_check or _never_cancelled

        # Only first-level blocks are shipped; compaction output is covered
        # by the blocks it was built from.
        if meta.compaction_level > RAW_COMPACTION_LEVEL:
            logger.debug(
                f"Skipping block {meta.ulid}: compaction level {meta.compaction_level}"
            )
            return UploadOutcome.SKIPPED_COMPACTED

        self._check_cancelled(cancel_check, meta.ulid)
        if self._remote_exists(meta.ulid):
            logger.debug(f"Block {meta.ulid} already in {self._storage.location}")
            return UploadOutcome.ALREADY_PRESENT

        if meta.dir is None:
            raise StagingError(f"Block {meta.ulid} has no directory")

        logger.info(f"Uploading new block {meta.ulid}")

        updir = self._staging_dir / meta.ulid
        try:
            self._prepare(meta, updir)
            self._check_cancelled(cancel_check, meta.ulid)
            self._upload_dir(meta.ulid, updir, cancel_check)
        finally:
            self._cleanup(updir)

        logger.info(f"Uploaded block {meta.ulid}")
        return UploadOutcome.UPLOADED

    def _remote_exists(self, block_id: str) -> bool:
        try:
            return bool(retry_with_backoff(
                lambda: self._storage.exists(meta_key(block_id)),
                max_retries=self._upload_retries,
            ))
        except UploadError:
            raise
        except Exception as e:
            raise RemoteStorageError(f"Check exists for {block_id}: {e}") from e

    def _prepare(self, meta: BlockMeta, updir: Path) -> None:
        """Build the staging directory with links and the augmented manifest."""
        assert meta.dir is not None
        try:
            if updir.exists():
                logger.info(f"Removing stale staging directory {updir}")
                shutil.rmtree(updir)
            updir.mkdir(parents=True)
        except OSError as e:
            raise StagingError(f"Prepare staging directory {updir}: {e}") from e

        try:
            hardlink_block(meta.dir, updir)
        except OSError as e:
            raise StagingError(f"Hard link block {meta.ulid}: {e}") from e

        try:
            staged = read_block_meta(updir)
        except BlockMetaError as e:
            raise StagingError(f"Read staged manifest of {meta.ulid}: {e}") from e

        staged.labels = dict(self._labels() or {})
        staged.source = self._source.value
        try:
            write_block_meta(updir, staged)
        except OSError as e:
            raise StagingError(f"Write staged manifest of {meta.ulid}: {e}") from e

    def _upload_dir(self, block_id: str, updir: Path, cancel_check: CancelCheck) -> None:
        for rel in upload_order(updir):
            self._check_cancelled(cancel_check, block_id)
            key = f"{block_id}/{rel.as_posix()}"
            src = updir / rel

            def do_upload(key: str = key, src: Path = src) -> None:
                self._storage.upload(key, src)

            try:
                retry_with_backoff(
                    do_upload,
                    max_retries=self._upload_retries,
                    cancel_check=cancel_check,
                )
            except (UploadError, UploadCancelledError):
                raise
            except Exception as e:
                raise RemoteStorageError(f"Upload {key}: {e}") from e
            logger.debug(f"Uploaded {key}")

    def _check_cancelled(self, cancel_check: Callable[[], bool], block_id: str) -> None:
        if cancel_check():
            raise UploadCancelledError(f"Upload of block {block_id} cancelled")

    def _cleanup(self, updir: Path) -> None:
        try:
            shutil.rmtree(updir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to clean staging directory {updir}: {e}")
