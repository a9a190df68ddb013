"""Shared types and exceptions for shipping operations.

This module provides:
- ShipperError and subclasses: Exception hierarchy
- UploadOutcome: Result of a single block upload attempt
- SyncReport: Summary of one sync pass
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class ShipperError(Exception):
    """Base exception for shipper errors."""


class MetaFileError(ShipperError):
    """Bookkeeping file could not be loaded."""


class MetaFileNotFoundError(MetaFileError):
    """Bookkeeping file does not exist."""


class MetaFileVersionError(MetaFileError):
    """Bookkeeping file has an unsupported version."""

    def __init__(self, version: object) -> None:
        self.version = version
        super().__init__(f"Unexpected shipper meta file version {version}")


class MetaFileCorruptError(MetaFileError):
    """Bookkeeping file is not valid JSON or has the wrong shape."""


class BlockScanError(ShipperError):
    """The data directory could not be listed."""


class UploadError(ShipperError):
    """Failed to ship a block."""


class StagingError(UploadError):
    """Failed to prepare the staging directory.

    Hard links cannot cross filesystems, so the data directory and the
    staging directory must live on the same one.
    """


class RemoteStorageError(UploadError):
    """The remote object store returned an error."""


class UploadCancelledError(ShipperError):
    """Raised when an upload is cancelled through its cancel check."""


class UploadOutcome(Enum):
    """How a block upload attempt ended successfully."""

    UPLOADED = "uploaded"
    ALREADY_PRESENT = "already_present"
    SKIPPED_COMPACTED = "skipped_compacted"


@dataclass
class SyncReport:
    """Result of one sync pass.

    Attributes:
        uploaded: Block IDs uploaded during this pass.
        already_present: Block IDs found in the remote store before upload.
        skipped: Block IDs skipped because of their compaction level.
        recorded: Block IDs that were already in the bookkeeping file.
        failed: Block IDs whose upload failed (retried next pass).
        cancelled: Whether the pass stopped because of cancellation.
        meta_written: Whether the bookkeeping file was persisted.
    """

    uploaded: list[str] = field(default_factory=list)
    already_present: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    recorded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False
    meta_written: bool = False

    @property
    def has_failures(self) -> bool:
        """Check if any block failed to ship."""
        return len(self.failed) > 0


# Type alias for cancellation check
CancelCheck = Callable[[], bool]

# Type alias for the external label supplier
LabelSupplier = Callable[[], "dict[str, str] | None"]
