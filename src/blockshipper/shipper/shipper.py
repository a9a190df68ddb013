"""Sync coordinator for block shipping.

This module provides:
- Shipper: Detects new blocks in a data directory and uploads them once

Architecture:
    iter_block_metas → diff against shipper.json → BlockUploader → shipper.json

    Each pass rebuilds the bookkeeping list from scratch. A block ID is kept
    only if the block still exists locally and was either recorded before or
    confirmed during this pass; blocks deleted locally drop out of tracking.

Trust model:
    IDs already present in shipper.json are not re-checked against the
    remote store. A block deleted remotely after being recorded is therefore
    never re-uploaded, and timestamps() keeps reporting it as synced.
    Only unrecorded blocks go through the remote existence check.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from blockshipper.core.config import ShipperConfig
from blockshipper.core.types import SourceType
from blockshipper.shipper.bookkeeping import (
    META_VERSION,
    ShipperMeta,
    read_meta_file,
    write_meta_file,
)
from blockshipper.shipper.metrics import (
    DIR_SYNC_FAILURES,
    DIR_SYNCS,
    UPLOAD_FAILURES,
    UPLOADS,
    MetricsSink,
    NullMetrics,
)
from blockshipper.shipper.scanner import iter_block_metas
from blockshipper.shipper.types import (
    BlockScanError,
    CancelCheck,
    LabelSupplier,
    MetaFileError,
    MetaFileNotFoundError,
    SyncReport,
    UploadCancelledError,
    UploadOutcome,
)
from blockshipper.shipper.upload import BlockUploader

if TYPE_CHECKING:
    from blockshipper.storage import ObjectStorage

logger = logging.getLogger(__name__)


class Shipper:
    """Watches a data directory and uploads new blocks to an object store.

    Usage:
        shipper = Shipper(ShipperConfig(data_dir=path), storage)
        report = shipper.sync()          # one pass, never raises
        min_time, synced = shipper.timestamps()

    sync() must not run concurrently with itself. An overlapping call is
    refused with a warning rather than racing on the bookkeeping file.
    """

    def __init__(
        self,
        config: ShipperConfig,
        storage: ObjectStorage,
        labels: LabelSupplier | None = None,
        metrics: MetricsSink | None = None,
    ) -> None:
        """Initialize the shipper.

        Args:
            config: Shipper configuration.
            storage: Remote object store.
            labels: Label supplier called once per uploaded block. Defaults
                to the static labels from config.
            metrics: Counter sink; defaults to discarding counts.
        """
        self._config = config
        self._storage = storage
        self._metrics: MetricsSink = metrics or NullMetrics()
        if labels is None:
            static = dict(config.labels)

            def labels() -> dict[str, str] | None:
                return static or None

        self._uploader = BlockUploader(
            storage=storage,
            staging_dir=config.staging_dir,
            source=config.source,
            labels=labels,
            upload_retries=config.upload_retries,
        )
        self._sync_lock = threading.Lock()

    @property
    def data_dir(self) -> Path:
        """Directory scanned for blocks."""
        return self._config.data_dir

    @property
    def source(self) -> SourceType:
        """Source type attached to shipped blocks."""
        return self._config.source

    def sync(self, cancel_check: CancelCheck | None = None) -> SyncReport:
        """Run one synchronization pass.

        Every local block not yet recorded is checked against the store and
        uploaded if missing. Failures are contained per block and retried on
        the next pass; this method does not raise for them.

        Args:
            cancel_check: Optional cancellation check. When it returns True
                the pass stops and the bookkeeping file is left untouched.

        Returns:
            SyncReport summarizing the pass.
        """
        report = SyncReport()
        if not self._sync_lock.acquire(blocking=False):
            logger.warning("Sync already in progress, skipping this pass")
            return report
        try:
            self._metrics.increment(DIR_SYNCS)
            self._sync(report, cancel_check)
        finally:
            self._sync_lock.release()
        return report

    def _sync(self, report: SyncReport, cancel_check: CancelCheck | None) -> None:
        meta = self._load_meta()
        has_uploaded = set(meta.uploaded)
        uploaded: list[str] = []

        try:
            for block in iter_block_metas(self.data_dir):
                if cancel_check and cancel_check():
                    report.cancelled = True
                    break

                # Recorded blocks are trusted; see module docstring.
                if block.ulid in has_uploaded:
                    report.recorded.append(block.ulid)
                    uploaded.append(block.ulid)
                    continue

                self._metrics.increment(UPLOADS)
                try:
                    outcome = self._uploader.upload(block, cancel_check)
                except UploadCancelledError as e:
                    logger.warning(f"Shipping block {block.ulid} cancelled: {e}")
                    report.failed.append(block.ulid)
                    report.cancelled = True
                    break
                except Exception as e:
                    self._metrics.increment(UPLOAD_FAILURES)
                    logger.error(f"Shipping block {block.ulid} failed: {e}")
                    report.failed.append(block.ulid)
                    continue

                self._record_outcome(report, block.ulid, outcome)
                uploaded.append(block.ulid)
        except BlockScanError as e:
            self._metrics.increment(DIR_SYNC_FAILURES)
            logger.error(f"Iterating block metas failed: {e}")
            return

        if report.cancelled:
            logger.info("Sync cancelled, bookkeeping left unchanged")
            return

        try:
            write_meta_file(self.data_dir, ShipperMeta(version=META_VERSION, uploaded=uploaded))
        except OSError as e:
            self._metrics.increment(DIR_SYNC_FAILURES)
            logger.warning(f"Updating shipper meta file failed: {e}")
            return
        report.meta_written = True

    def _load_meta(self) -> ShipperMeta:
        """Load bookkeeping, falling back to an empty record on any error."""
        try:
            return read_meta_file(self.data_dir)
        except MetaFileNotFoundError:
            logger.debug("No shipper meta file yet, starting empty")
        except MetaFileError as e:
            # Remote existence checks keep uploads correct without it.
            logger.warning(f"Reading shipper meta file failed, starting empty: {e}")
        return ShipperMeta(version=META_VERSION)

    @staticmethod
    def _record_outcome(report: SyncReport, block_id: str, outcome: UploadOutcome) -> None:
        if outcome is UploadOutcome.UPLOADED:
            report.uploaded.append(block_id)
        elif outcome is UploadOutcome.ALREADY_PRESENT:
            report.already_present.append(block_id)
        else:
            report.skipped.append(block_id)

    def timestamps(self) -> tuple[int, int | None]:
        """Return the data watermarks of the data directory.

        See block_timestamps().
        """
        return block_timestamps(self.data_dir)


def block_timestamps(data_dir: Path) -> tuple[int, int | None]:
    """Return the data watermarks of a data directory.

    Returns:
        Tuple of (min_time, max_synced_time): the smallest block start
        time found locally (0 if there are no blocks), and the largest
        end time among recorded blocks (None if none is recorded).

    Raises:
        MetaFileError: If the bookkeeping file exists but is unreadable.
        BlockScanError: If the data directory cannot be listed.
    """
    try:
        meta = read_meta_file(data_dir)
    except MetaFileNotFoundError:
        meta = ShipperMeta(version=META_VERSION)
    has_uploaded = set(meta.uploaded)

    min_time: int | None = None
    max_synced_time: int | None = None
    for block in iter_block_metas(data_dir):
        if min_time is None or block.min_time < min_time:
            min_time = block.min_time
        if block.ulid in has_uploaded and (
            max_synced_time is None or block.max_time > max_synced_time
        ):
            max_synced_time = block.max_time

    # No block yet: no minimum can be assumed, report 0.
    return (min_time if min_time is not None else 0), max_synced_time
