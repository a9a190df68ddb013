"""Block shipping: detect local blocks and upload each one exactly once.

Architecture:
    iter_block_metas → Shipper → BlockUploader → ObjectStorage

Components:
- **Shipper**: One sync pass at a time, bookkeeping and per-block failure isolation
- **BlockUploader**: Staging via hard links, manifest augmentation, ordered upload
- **iter_block_metas**: Lazy scan of the data directory
- **read_meta_file / write_meta_file**: Bookkeeping file (shipper.json)
"""

from blockshipper.shipper.bookkeeping import (
    META_VERSION,
    ShipperMeta,
    read_meta_file,
    write_meta_file,
)
from blockshipper.shipper.metrics import CounterMetrics, MetricsSink, NullMetrics
from blockshipper.shipper.retry import NETWORK_EXCEPTIONS, retry_with_backoff
from blockshipper.shipper.scanner import iter_block_metas
from blockshipper.shipper.shipper import Shipper, block_timestamps
from blockshipper.shipper.types import (
    BlockScanError,
    CancelCheck,
    LabelSupplier,
    MetaFileCorruptError,
    MetaFileError,
    MetaFileNotFoundError,
    MetaFileVersionError,
    RemoteStorageError,
    ShipperError,
    StagingError,
    SyncReport,
    UploadCancelledError,
    UploadError,
    UploadOutcome,
)
from blockshipper.shipper.upload import BlockUploader, hardlink_block, meta_key, upload_order

__all__ = [
    # Coordinator
    "Shipper",
    "SyncReport",
    "block_timestamps",
    # Upload
    "BlockUploader",
    "UploadOutcome",
    "hardlink_block",
    "meta_key",
    "upload_order",
    # Scanner
    "iter_block_metas",
    # Bookkeeping
    "META_VERSION",
    "ShipperMeta",
    "read_meta_file",
    "write_meta_file",
    # Metrics
    "CounterMetrics",
    "MetricsSink",
    "NullMetrics",
    # Retry
    "NETWORK_EXCEPTIONS",
    "retry_with_backoff",
    # Types
    "CancelCheck",
    "LabelSupplier",
    # Exceptions
    "BlockScanError",
    "MetaFileCorruptError",
    "MetaFileError",
    "MetaFileNotFoundError",
    "MetaFileVersionError",
    "RemoteStorageError",
    "ShipperError",
    "StagingError",
    "UploadCancelledError",
    "UploadError",
]
