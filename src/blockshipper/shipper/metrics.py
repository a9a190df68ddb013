"""Shipper counters.

Each Shipper owns its metrics sink; nothing here is process-global.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Protocol

DIR_SYNCS = "dir_syncs"
DIR_SYNC_FAILURES = "dir_sync_failures"
UPLOADS = "uploads"
UPLOAD_FAILURES = "upload_failures"

COUNTER_NAMES = (DIR_SYNCS, DIR_SYNC_FAILURES, UPLOADS, UPLOAD_FAILURES)


class MetricsSink(Protocol):
    """Anything that can count named events."""

    def increment(self, name: str) -> None:
        """Add one to the counter called name."""
        ...


class NullMetrics:
    """Sink that discards everything."""

    def increment(self, name: str) -> None:
        pass


class CounterMetrics:
    """Thread-safe in-memory counters."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def get(self, name: str) -> int:
        """Current value of a counter (0 if never incremented)."""
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> dict[str, int]:
        """Copy of all known counters, including the standard ones at 0."""
        with self._lock:
            return {name: self._counts[name] for name in sorted(set(COUNTER_NAMES) | set(self._counts))}
