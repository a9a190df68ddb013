"""Periodic sync passes.

This module provides:
- SyncScheduler: Runs Shipper.sync() on a fixed interval in the background

Passes never overlap: the job is registered with max_instances=1 and
coalesce=True, so a slow pass delays the next one instead of racing it.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from blockshipper.shipper import Shipper, SyncReport

logger = logging.getLogger(__name__)

JOB_ID = "shipper_sync"


class SyncScheduler:
    """Scheduler for periodic shipper passes."""

    def __init__(self, shipper: Shipper, interval: float = 30.0) -> None:
        """Initialize the scheduler.

        Args:
            shipper: Shipper whose sync() is called on every tick.
            interval: Seconds between the start of two passes.
        """
        self._shipper = shipper
        self._interval = interval
        self._scheduler: BackgroundScheduler | None = None
        self._stopping = threading.Event()

    @property
    def running(self) -> bool:
        """Whether the background scheduler is started."""
        return self._scheduler is not None

    def _sync_job(self) -> None:
        """Job function for one scheduled pass."""
        try:
            report = self._shipper.sync(cancel_check=self._stopping.is_set)
        except Exception:
            logger.exception("Error during scheduled sync")
            return
        if report.uploaded or report.failed:
            logger.info(
                "Sync pass: %d uploaded, %d failed",
                len(report.uploaded),
                len(report.failed),
            )
        else:
            logger.debug("Sync pass: nothing to ship")

    def start(self) -> None:
        """Start the scheduler. The first pass runs immediately."""
        if self._scheduler is not None:
            return  # Already running

        self._stopping.clear()
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._sync_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="Ship new blocks",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now(UTC),
        )
        self._scheduler.start()
        logger.info("Shipper scheduler started (every %.0fs)", self._interval)

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler, cancelling an in-flight pass.

        Args:
            wait: Wait for a running pass to finish its current block.
        """
        if self._scheduler is not None:
            self._stopping.set()
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("Shipper scheduler stopped")

    def run_now(self) -> SyncReport:
        """Run one pass immediately in the calling thread."""
        return self._shipper.sync(cancel_check=self._stopping.is_set)

