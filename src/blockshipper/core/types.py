"""Shared types for blockshipper.

This module defines enums used by the manifest model and the shipper.
"""

from __future__ import annotations

from enum import Enum


class SourceType(str, Enum):
    """How a shipped block was produced.

    Written into the staged manifest so that readers of the remote store
    can tell which component put a block there. Manifests read from disk
    may carry other tags; those are kept as plain strings.
    """

    SIDECAR = "sidecar"
    RECEIVE = "receive"
    COMPACTOR = "compactor"
    COMPACTOR_REPAIR = "compactor.repair"
    RULER = "ruler"
    BUCKET_REPAIR = "bucket.repair"
    TEST = "test"
