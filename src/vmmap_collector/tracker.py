"""Cross-snapshot region identity.

A tracked region is keyed by (category, start, end). A region whose start or
end address moves between snapshots becomes a new tracked region rather than
an update of the old one; the timeline shows growth as one range ending and
another beginning.

The fold relies on the collector delivering snapshots in capture order with
none dropped or repeated, so snapshot indices are consecutive.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from vmmap_collector.regions import RegionKey, Snapshot

log = structlog.get_logger()


@dataclass
class TrackedRegion:
    """A region's observed lifetime across a snapshot sequence."""

    category: str
    start_address: int
    end_address: int
    virtual_size: int  # From the first sighting
    first_seen_index: int
    last_seen_index: int
    observations: int = 1  # Snapshots this region appeared in

    @property
    def key(self) -> RegionKey:
        """Identity: (category, start, end)."""
        return (self.category, self.start_address, self.end_address)

    @property
    def lifetime(self) -> int:
        """Number of snapshots spanned from first to last sighting."""
        return self.last_seen_index - self.first_seen_index + 1


class RegionTracker:
    """Folds snapshots, in delivery order, into tracked regions."""

    def __init__(self) -> None:
        self.tracked: dict[RegionKey, TrackedRegion] = {}
        self._snapshot_count = 0

    def __len__(self) -> int:
        return len(self.tracked)

    @property
    def snapshot_count(self) -> int:
        """Number of snapshots folded so far."""
        return self._snapshot_count

    def update(self, snapshot: Snapshot) -> int:
        """Record every region in the next snapshot.

        Returns:
            The index assigned to this snapshot.
        """
        index = self._snapshot_count
        self._snapshot_count += 1
        new_count = 0

        for region in snapshot.regions:
            existing = self.tracked.get(region.key)
            if existing is None:
                self.tracked[region.key] = TrackedRegion(
                    category=region.category,
                    start_address=region.start_address,
                    end_address=region.end_address,
                    virtual_size=region.virtual_size,
                    first_seen_index=index,
                    last_seen_index=index,
                )
                new_count += 1
            elif existing.last_seen_index != index:
                # Same key twice in one snapshot counts once
                existing.last_seen_index = index
                existing.observations += 1

        log.debug(
            "regions_tracked",
            snapshot_index=index,
            regions=len(snapshot.regions),
            new=new_count,
            total=len(self.tracked),
        )
        return index

    def regions(self) -> list[TrackedRegion]:
        """Tracked regions ordered by start address, then end address."""
        return sorted(self.tracked.values(), key=lambda t: (t.start_address, t.end_address))

    def active(self) -> list[TrackedRegion]:
        """Tracked regions present in the most recent snapshot."""
        latest = self._snapshot_count - 1
        return [t for t in self.regions() if t.last_seen_index == latest]


def track_regions(snapshots: Iterable[Snapshot]) -> list[TrackedRegion]:
    """Fold an ordered snapshot sequence into tracked regions."""
    tracker = RegionTracker()
    for snapshot in snapshots:
        tracker.update(snapshot)
    return tracker.regions()
