"""Object storage abstraction for shipped blocks.

This module provides:
- Abstract interface for the remote object store
- LocalFSStorage for development/testing
- S3Storage for production (OVH, AWS, MinIO)

Keys are slash-separated, e.g. ``<block id>/chunks/000001``.

Network failures are raised as the built-in ConnectionError so that
retry_with_backoff handles every store the same way.
"""

from __future__ import annotations

import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from blockshipper.shipper.types import RemoteStorageError

if TYPE_CHECKING:
    from typing import Any

TMP_SUFFIX = ".tmp"


class ObjectStorage(ABC):
    """Abstract interface for the remote object store."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where objects are stored."""

    @abstractmethod
    def upload(self, key: str, path: Path) -> None:
        """Upload a local file under key.

        The object must only become visible once its content is complete.

        Args:
            key: Object key.
            path: Local file to read the content from.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if an object exists in storage.

        Returns:
            True if the object exists, False otherwise.
        """


class LocalFSStorage(ObjectStorage):
    """Local filesystem storage for development and testing.

    Objects are stored at ``<base_path>/<key>``.
    """

    def __init__(self, base_path: Path | str) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for object storage.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _object_path(self, key: str) -> Path:
        """Get the file path for a key, refusing keys that escape the base."""
        parts = PurePosixPath(key).parts
        if not parts or ".." in parts or PurePosixPath(key).is_absolute():
            raise ValueError(f"Invalid object key: {key!r}")
        return self._base_path.joinpath(*parts)

    def upload(self, key: str, path: Path) -> None:
        """Copy a local file into storage.

        The copy goes to a sibling temporary file that is renamed onto the
        key once complete, so a failed copy never leaves a partial object.
        """
        target = self._object_path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(target.name + TMP_SUFFIX)
        try:
            shutil.copyfile(path, tmp_path)
            os.replace(tmp_path, target)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        return self._object_path(key).is_file()


class S3Storage(ObjectStorage):
    """S3-compatible storage for production (OVH, AWS, MinIO, etc.)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        prefix: str = "",
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
            prefix: Optional key prefix inside the bucket.
        """
        import boto3

        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._prefix = prefix.strip("/")
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}"
        return f"S3: s3://{self._bucket}"

    def _key(self, key: str) -> str:
        """Get the S3 key for an object key."""
        if self._prefix:
            return f"{self._prefix}/{key}"
        return key

    def upload(self, key: str, path: Path) -> None:
        """Upload a local file.

        S3 only exposes an object once the upload has completed.
        """
        from botocore.exceptions import ConnectionError as BotoConnectionError
        from botocore.exceptions import HTTPClientError

        try:
            self._client.upload_file(str(path), self._bucket, self._key(key))
        except (BotoConnectionError, HTTPClientError) as e:
            raise ConnectionError(f"Upload {key} to {self.location}: {e}") from e

    def exists(self, key: str) -> bool:
        """Check if an object exists.

        Only a not-found answer means False; any other error is raised so
        that a flaky store never looks like a missing block.
        """
        from botocore.exceptions import ClientError, HTTPClientError
        from botocore.exceptions import ConnectionError as BotoConnectionError

        try:
            self._client.head_object(
                Bucket=self._bucket,
                Key=self._key(key),
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise RemoteStorageError(f"Cannot check {key}: {e}") from e
        except (BotoConnectionError, HTTPClientError) as e:
            raise ConnectionError(f"Check {key} in {self.location}: {e}") from e


def create_storage(config: dict[str, str | None]) -> ObjectStorage:
    """Factory function to create storage from configuration.

    Args:
        config: Storage configuration dict with keys:
            - type: "local" or "s3"
            - For local: local_path
            - For S3: bucket, endpoint_url, access_key, secret_key, region, prefix

    Returns:
        Configured ObjectStorage instance.

    Raises:
        ValueError: If storage type is unknown.
    """
    storage_type = config.get("type") or "local"

    if storage_type == "local":
        local_path = config.get("local_path") or "./bucket"
        return LocalFSStorage(local_path)

    if storage_type == "s3":
        bucket = config.get("bucket")
        if not bucket:
            raise ValueError("S3 storage requires 'bucket' configuration")
        return S3Storage(
            bucket=bucket,
            endpoint_url=config.get("endpoint_url"),
            access_key=config.get("access_key"),
            secret_key=config.get("secret_key"),
            region=config.get("region") or "us-east-1",
            prefix=config.get("prefix") or "",
        )

    raise ValueError(f"Unknown storage type: {storage_type}")
