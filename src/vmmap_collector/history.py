"""Retained snapshot history.

The sampling thread appends while CLI or bridge code may read from another
thread, so every access goes through one lock.
"""

import threading
from collections import deque
from dataclasses import dataclass

from vmmap_collector.regions import Snapshot, snapshots_to_json


@dataclass(frozen=True)
class HistoryContents:
    """Immutable view of the history at one moment."""

    snapshots: tuple[Snapshot, ...]

    def to_json(self) -> str:
        """Serialize as a JSON array, oldest first."""
        return snapshots_to_json(self.snapshots)


class SnapshotHistory:
    """Thread-safe list of delivered snapshots.

    With max_snapshots=0 every snapshot is kept. Otherwise only the newest
    max_snapshots are kept and older ones are dropped.
    """

    def __init__(self, max_snapshots: int = 0) -> None:
        if max_snapshots < 0:
            raise ValueError(f"max_snapshots must be >= 0, got {max_snapshots}")
        self._lock = threading.Lock()
        self._snapshots: deque[Snapshot] = deque(maxlen=max_snapshots or None)
        self._total_pushed = 0

    def __len__(self) -> int:
        """Return number of snapshots retained."""
        with self._lock:
            return len(self._snapshots)

    @property
    def capacity(self) -> int:
        """Maximum snapshots retained, 0 when unbounded."""
        return self._snapshots.maxlen or 0

    @property
    def total_pushed(self) -> int:
        """Snapshots ever pushed, including any dropped by the ring."""
        with self._lock:
            return self._total_pushed

    @property
    def snapshots(self) -> list[Snapshot]:
        """Read-only access to snapshots (returns a copy)."""
        with self._lock:
            return list(self._snapshots)

    @property
    def latest(self) -> Snapshot | None:
        """Most recent snapshot, or None when empty."""
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def push(self, snapshot: Snapshot) -> None:
        """Add a snapshot to the history."""
        with self._lock:
            self._snapshots.append(snapshot)
            self._total_pushed += 1

    def clear(self) -> None:
        """Drop every retained snapshot."""
        with self._lock:
            self._snapshots.clear()

    def freeze(self) -> HistoryContents:
        """Return immutable copy of history contents."""
        with self._lock:
            return HistoryContents(snapshots=tuple(self._snapshots))

    def to_json(self) -> str:
        """Serialize the retained snapshots as a JSON array."""
        return self.freeze().to_json()
