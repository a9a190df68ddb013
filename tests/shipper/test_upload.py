"""Tests for staging and uploading a single block."""

from __future__ import annotations

import errno
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import BlockFactory, RecordingStorage, block_id

from blockshipper.core.block import read_block_meta
from blockshipper.core.types import SourceType
from blockshipper.shipper.types import (
    RemoteStorageError,
    StagingError,
    UploadCancelledError,
    UploadOutcome,
)
from blockshipper.shipper.upload import BlockUploader, hardlink_block, meta_key, upload_order
from blockshipper.storage import LocalFSStorage, S3Storage


@pytest.fixture
def staging_dir(data_dir: Path) -> Path:
    """Staging root inside the data directory."""
    return data_dir / "shipper" / "upload"


@pytest.fixture
def uploader(storage: RecordingStorage, staging_dir: Path) -> BlockUploader:
    """Create an uploader with static labels."""
    return BlockUploader(
        storage=storage,
        staging_dir=staging_dir,
        source=SourceType.SIDECAR,
        labels=lambda: {"cluster": "eu1"},
    )


class TestHardlinkBlock:
    """Tests for hardlink_block."""

    def test_links_all_files(self, make_block: BlockFactory, tmp_path: Path) -> None:
        """Chunks, index and manifest should be hard links to the source."""
        src = make_block(block_id(1), chunks=3)
        dst = tmp_path / "staged"
        dst.mkdir()

        hardlink_block(src, dst)

        for rel in ["meta.json", "index", "chunks/000001", "chunks/000002", "chunks/000003"]:
            assert (dst / rel).samefile(src / rel)

    def test_missing_chunks_dir(self, data_dir: Path, tmp_path: Path) -> None:
        """A block without a chunks directory cannot be staged."""
        src = data_dir / block_id(1)
        src.mkdir()
        dst = tmp_path / "staged"
        dst.mkdir()

        with pytest.raises(OSError):
            hardlink_block(src, dst)

    def test_cross_device_link_fails(self, make_block: BlockFactory, tmp_path: Path) -> None:
        """Hard links across filesystems must fail, not fall back to copying."""
        src = make_block(block_id(1))
        dst = tmp_path / "staged"
        dst.mkdir()

        with patch(
            "blockshipper.shipper.upload.os.link",
            side_effect=OSError(errno.EXDEV, "Invalid cross-device link"),
        ):
            with pytest.raises(OSError) as exc_info:
                hardlink_block(src, dst)

        assert exc_info.value.errno == errno.EXDEV


class TestUploadOrder:
    """Tests for upload_order."""

    def test_manifest_last(self, make_block: BlockFactory) -> None:
        """Chunks first, then index, manifest strictly last."""
        block_dir = make_block(block_id(1), chunks=2)

        order = [p.as_posix() for p in upload_order(block_dir)]

        assert order == ["chunks/000001", "chunks/000002", "index", "meta.json"]


class TestBlockUploader:
    """Tests for BlockUploader.upload."""

    def test_uploads_new_block(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """A raw block missing remotely should be uploaded completely."""
        meta = read_block_meta(make_block(block_id(1)))

        outcome = uploader.upload(meta)

        assert outcome is UploadOutcome.UPLOADED
        assert storage.uploads == [
            f"{block_id(1)}/chunks/000001",
            f"{block_id(1)}/chunks/000002",
            f"{block_id(1)}/index",
            f"{block_id(1)}/meta.json",
        ]
        assert storage.read(f"{block_id(1)}/index") == f"index of {block_id(1)}".encode()

    def test_uploaded_manifest_is_augmented(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """Remote manifest should carry labels and source."""
        meta = read_block_meta(make_block(block_id(1)))

        uploader.upload(meta)

        remote = json.loads(storage.read(meta_key(block_id(1))))
        assert remote["shipper"] == {"labels": {"cluster": "eu1"}, "source": "sidecar"}
        assert remote["stats"] == {"numSamples": 10}

    def test_original_manifest_untouched(
        self,
        uploader: BlockUploader,
        make_block: BlockFactory,
    ) -> None:
        """The local block's meta.json must never be rewritten."""
        block_dir = make_block(block_id(1))
        before = (block_dir / "meta.json").read_bytes()

        uploader.upload(read_block_meta(block_dir))

        assert (block_dir / "meta.json").read_bytes() == before

    def test_foreign_source_replaced(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """A block tagged by another producer is shipped with this shipper's tag."""
        block_dir = make_block(block_id(1))
        manifest = json.loads((block_dir / "meta.json").read_text())
        manifest["shipper"] = {"labels": {"old": "1"}, "source": "ruler"}
        (block_dir / "meta.json").write_text(json.dumps(manifest))

        outcome = uploader.upload(read_block_meta(block_dir))

        assert outcome is UploadOutcome.UPLOADED
        remote = json.loads(storage.read(meta_key(block_id(1))))
        assert remote["shipper"] == {"labels": {"cluster": "eu1"}, "source": "sidecar"}

    def test_no_labels_supplier(
        self,
        storage: RecordingStorage,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """Without a label supplier the manifest gets an empty label map."""
        uploader = BlockUploader(storage, staging_dir, SourceType.RECEIVE)

        uploader.upload(read_block_meta(make_block(block_id(1))))

        remote = json.loads(storage.read(meta_key(block_id(1))))
        assert remote["shipper"] == {"labels": {}, "source": "receive"}

    def test_labels_supplier_called_per_upload(
        self,
        storage: RecordingStorage,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """Labels are fetched fresh for every block."""
        supplier = MagicMock(side_effect=[{"replica": "a"}, None])
        uploader = BlockUploader(storage, staging_dir, SourceType.SIDECAR, labels=supplier)

        uploader.upload(read_block_meta(make_block(block_id(1))))
        uploader.upload(read_block_meta(make_block(block_id(2))))

        assert supplier.call_count == 2
        assert json.loads(storage.read(meta_key(block_id(1))))["shipper"]["labels"] == {"replica": "a"}
        assert json.loads(storage.read(meta_key(block_id(2))))["shipper"]["labels"] == {}

    def test_skips_compacted_block(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """Blocks above level 1 are never uploaded nor checked remotely."""
        meta = read_block_meta(make_block(block_id(1), level=2))

        outcome = uploader.upload(meta)

        assert outcome is UploadOutcome.SKIPPED_COMPACTED
        assert storage.exists_calls == []
        assert storage.uploads == []

    def test_skips_block_already_in_store(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
        staging_dir: Path,
    ) -> None:
        """If the remote manifest exists nothing is uploaded or staged."""
        block_dir = make_block(block_id(1))
        LocalFSStorage.upload(storage, meta_key(block_id(1)), block_dir / "meta.json")

        outcome = uploader.upload(read_block_meta(block_dir))

        assert outcome is UploadOutcome.ALREADY_PRESENT
        assert storage.uploads == []
        assert not (staging_dir / block_id(1)).exists()

    def test_cleans_up_staging_dir(
        self,
        uploader: BlockUploader,
        make_block: BlockFactory,
        staging_dir: Path,
    ) -> None:
        """Staging directory should be removed after a successful upload."""
        uploader.upload(read_block_meta(make_block(block_id(1))))

        assert not (staging_dir / block_id(1)).exists()

    def test_removes_stale_staging_dir(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
        staging_dir: Path,
    ) -> None:
        """Leftovers from a crashed attempt are wiped before staging."""
        block_dir = make_block(block_id(1))
        stale = staging_dir / block_id(1)
        (stale / "chunks").mkdir(parents=True)
        (stale / "chunks" / "000001").write_bytes(b"half-linked")
        (stale / "junk").write_bytes(b"leftover")

        outcome = uploader.upload(read_block_meta(block_dir))

        assert outcome is UploadOutcome.UPLOADED
        assert f"{block_id(1)}/junk" not in storage.uploads
        assert not stale.exists()

    def test_staging_failure_raises_and_cleans_up(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
        staging_dir: Path,
    ) -> None:
        """A link failure aborts the attempt before any upload."""
        meta = read_block_meta(make_block(block_id(1)))

        with patch(
            "blockshipper.shipper.upload.os.link",
            side_effect=OSError(errno.EXDEV, "Invalid cross-device link"),
        ):
            with pytest.raises(StagingError, match="Hard link"):
                uploader.upload(meta)

        assert storage.uploads == []
        assert not (staging_dir / block_id(1)).exists()

    def test_remote_exists_error(
        self,
        storage: RecordingStorage,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """Errors from the existence check are wrapped as RemoteStorageError."""
        uploader = BlockUploader(storage, staging_dir, SourceType.SIDECAR)
        meta = read_block_meta(make_block(block_id(1)))

        with patch.object(storage, "exists", side_effect=ConnectionError("unreachable")):
            with pytest.raises(RemoteStorageError, match="Check exists"):
                uploader.upload(meta)

    def test_failed_data_upload_never_writes_manifest(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """If a chunk fails, the manifest must not reach the store."""
        meta = read_block_meta(make_block(block_id(1)))
        real_upload = storage.upload

        def flaky(key: str, path: Path) -> None:
            if key.endswith("/index"):
                raise RuntimeError("disk quota exceeded")
            real_upload(key, path)

        with patch.object(storage, "upload", side_effect=flaky):
            with pytest.raises(RemoteStorageError, match="disk quota"):
                uploader.upload(meta)

        assert not storage.exists(meta_key(block_id(1)))

    def test_retries_network_errors(
        self,
        storage: RecordingStorage,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """Network errors on a single object are retried when configured."""
        uploader = BlockUploader(storage, staging_dir, SourceType.SIDECAR, upload_retries=2)
        meta = read_block_meta(make_block(block_id(1), chunks=1))
        real_upload = storage.upload
        failures = {"count": 0}

        def flaky(key: str, path: Path) -> None:
            if key.endswith("/index") and failures["count"] < 2:
                failures["count"] += 1
                raise ConnectionError("reset by peer")
            real_upload(key, path)

        with patch("blockshipper.shipper.retry.time.sleep"):
            with patch.object(storage, "upload", side_effect=flaky):
                outcome = uploader.upload(meta)

        assert outcome is UploadOutcome.UPLOADED
        assert storage.exists(meta_key(block_id(1)))

    def test_cancel_before_start(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
    ) -> None:
        """A cancelled check prevents any remote call."""
        meta = read_block_meta(make_block(block_id(1)))

        with pytest.raises(UploadCancelledError):
            uploader.upload(meta, cancel_check=lambda: True)

        assert storage.exists_calls == []

    def test_cancel_mid_upload_leaves_no_manifest(
        self,
        uploader: BlockUploader,
        storage: RecordingStorage,
        make_block: BlockFactory,
        staging_dir: Path,
    ) -> None:
        """Cancelling after some chunks keeps the block invisible remotely."""
        meta = read_block_meta(make_block(block_id(1), chunks=3))

        def cancel_after_first_chunk() -> bool:
            return len(storage.uploads) >= 1

        with pytest.raises(UploadCancelledError):
            uploader.upload(meta, cancel_check=cancel_after_first_chunk)

        assert storage.uploads == [f"{block_id(1)}/chunks/000001"]
        assert not storage.exists(meta_key(block_id(1)))
        assert not (staging_dir / block_id(1)).exists()


class TestS3Retries:
    """Network errors from the S3 client are retried like any other store's."""

    def test_endpoint_errors_retried(
        self,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """upload_retries applies to botocore connection failures."""
        from botocore.exceptions import ClientError, EndpointConnectionError

        storage = S3Storage(bucket="blocks", region="us-east-1")
        storage._client = MagicMock()
        storage._client.head_object.side_effect = ClientError(
            {"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject"
        )
        storage._client.upload_file.side_effect = [
            EndpointConnectionError(endpoint_url="https://s3.example.invalid"),
            None,
            None,
            None,
            None,
        ]
        uploader = BlockUploader(storage, staging_dir, SourceType.SIDECAR, upload_retries=1)

        with patch("blockshipper.shipper.retry.time.sleep"):
            outcome = uploader.upload(read_block_meta(make_block(block_id(1), chunks=2)))

        assert outcome is UploadOutcome.UPLOADED
        keys = [c.args[2] for c in storage._client.upload_file.call_args_list]
        assert keys == [
            f"{block_id(1)}/chunks/000001",
            f"{block_id(1)}/chunks/000001",
            f"{block_id(1)}/chunks/000002",
            f"{block_id(1)}/index",
            f"{block_id(1)}/meta.json",
        ]

    def test_endpoint_errors_without_retries_fail_block(
        self,
        staging_dir: Path,
        make_block: BlockFactory,
    ) -> None:
        """With no retries configured the network error fails the block."""
        from botocore.exceptions import ClientError, EndpointConnectionError

        storage = S3Storage(bucket="blocks", region="us-east-1")
        storage._client = MagicMock()
        storage._client.head_object.side_effect = ClientError(
            {"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject"
        )
        storage._client.upload_file.side_effect = EndpointConnectionError(
            endpoint_url="https://s3.example.invalid"
        )
        uploader = BlockUploader(storage, staging_dir, SourceType.SIDECAR)

        with pytest.raises(RemoteStorageError, match="Could not connect"):
            uploader.upload(read_block_meta(make_block(block_id(1))))

        assert storage._client.upload_file.call_count == 1
