"""Shared pytest fixtures for blockshipper tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from blockshipper.storage import LocalFSStorage


def block_id(n: int) -> str:
    """Build a deterministic, valid block ID (ULID) from a number."""
    return "01HZX0A" + str(n).rjust(19, "0")


BlockFactory = Callable[..., Path]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create an empty data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def make_block(data_dir: Path) -> BlockFactory:
    """Return a factory writing a block directory into data_dir."""

    def factory(
        ulid: str,
        min_time: int = 0,
        max_time: int = 100,
        level: int = 1,
        chunks: int = 2,
        root: Path | None = None,
    ) -> Path:
        block_dir = (root or data_dir) / ulid
        (block_dir / "chunks").mkdir(parents=True)
        for i in range(chunks):
            (block_dir / "chunks" / f"{i + 1:06d}").write_bytes(f"chunk {i} of {ulid}".encode())
        (block_dir / "index").write_bytes(f"index of {ulid}".encode())
        meta = {
            "ulid": ulid,
            "minTime": min_time,
            "maxTime": max_time,
            "stats": {"numSamples": 10},
            "compaction": {"level": level, "sources": [ulid]},
            "version": 1,
        }
        (block_dir / "meta.json").write_text(json.dumps(meta))
        return block_dir

    return factory


class RecordingStorage(LocalFSStorage):
    """LocalFSStorage that records every exists/upload call."""

    def __init__(self, base_path: Path) -> None:
        super().__init__(base_path)
        self.exists_calls: list[str] = []
        self.uploads: list[str] = []

    def exists(self, key: str) -> bool:
        self.exists_calls.append(key)
        return super().exists(key)

    def upload(self, key: str, path: Path) -> None:
        # Manifest must never be visible before the block's data.
        if key.endswith("/meta.json"):
            block = key.split("/", 1)[0]
            assert super().exists(f"{block}/index"), f"manifest of {block} uploaded before index"
        self.uploads.append(key)
        super().upload(key, path)

    def read(self, key: str) -> bytes:
        """Return the stored content of key."""
        return self._object_path(key).read_bytes()


@pytest.fixture
def storage(tmp_path: Path) -> RecordingStorage:
    """Create a recording local bucket."""
    return RecordingStorage(tmp_path / "bucket")
