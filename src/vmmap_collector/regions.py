"""Region and snapshot data model.

A Region is one contiguous address range reported by vmmap at one instant.
A Snapshot is every Region from a single vmmap invocation, stamped with the
capture time. Both are frozen, so a Snapshot can be handed to a consumer
on another thread without copying.
"""

import json
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Permissions:
    """The rwx protection bits of a region."""

    read: bool = False
    write: bool = False
    execute: bool = False

    @classmethod
    def parse(cls, text: str) -> "Permissions":
        """Parse a three character triple such as ``r-x``.

        Position matters: only ``r`` in the first slot, ``w`` in the second
        and ``x`` in the third grant access. Anything else is denied.
        """
        if len(text) != 3:
            raise ValueError(f"Permission triple must be 3 characters, got {text!r}")
        return cls(
            read=text[0] == "r",
            write=text[1] == "w",
            execute=text[2] == "x",
        )

    def __str__(self) -> str:
        return (
            ("r" if self.read else "-")
            + ("w" if self.write else "-")
            + ("x" if self.execute else "-")
        )


NO_PERMISSIONS = Permissions()


class SharingMode(Enum):
    """How a region's physical pages are shared (vmmap ``SM=`` column)."""

    COW = "COW"  # Copy-on-write
    PRV = "PRV"  # Private to this process
    SHM = "SHM"  # Shared memory
    NUL = "NUL"  # Unmapped / reserved
    ALI = "ALI"  # Aliased
    SHARED_ALIASED = "S/A"  # Shared and aliased

    @property
    def marker(self) -> str:
        """The literal marker as printed by vmmap."""
        return f"SM={self.value}"

    @property
    def label(self) -> str:
        """Human readable name."""
        return _SHARING_LABELS[self]


_SHARING_LABELS = {
    SharingMode.COW: "copy-on-write",
    SharingMode.PRV: "private",
    SharingMode.SHM: "shared",
    SharingMode.NUL: "unmapped",
    SharingMode.ALI: "aliased",
    SharingMode.SHARED_ALIASED: "shared-aliased",
}

# Search order for markers; first match wins
SHARING_MODE_ORDER: tuple[SharingMode, ...] = (
    SharingMode.COW,
    SharingMode.PRV,
    SharingMode.SHM,
    SharingMode.NUL,
    SharingMode.ALI,
    SharingMode.SHARED_ALIASED,
)

RegionKey = tuple[str, int, int]


@dataclass(frozen=True)
class Region:
    """One contiguous virtual address range at one sampling instant."""

    category: str  # e.g. "__TEXT", "MALLOC_TINY", "Stack", "mapped file"
    start_address: int
    end_address: int
    virtual_size: int  # Bytes
    resident_size: int  # Bytes
    dirty_size: int  # Bytes
    swap_size: int  # Bytes
    current_permissions: Permissions
    max_permissions: Permissions
    sharing_mode: SharingMode = SharingMode.PRV
    detail: str | None = None  # File path, zone name, thread label

    @property
    def size(self) -> int:
        """Length of the address range in bytes."""
        return self.end_address - self.start_address

    @property
    def key(self) -> RegionKey:
        """Identity used to follow a region across snapshots."""
        return (self.category, self.start_address, self.end_address)

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "category": self.category,
            "start": self.start_address,
            "end": self.end_address,
            "vsize": self.virtual_size,
            "rsize": self.resident_size,
            "dirty": self.dirty_size,
            "swap": self.swap_size,
            "current_perm": str(self.current_permissions),
            "max_perm": str(self.max_permissions),
            "sharing_mode": self.sharing_mode.value,
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Region":
        """Deserialize from a dictionary."""
        return cls(
            category=data["category"],
            start_address=data["start"],
            end_address=data["end"],
            virtual_size=data["vsize"],
            resident_size=data["rsize"],
            dirty_size=data["dirty"],
            swap_size=data["swap"],
            current_permissions=Permissions.parse(data["current_perm"]),
            max_permissions=Permissions.parse(data["max_perm"]),
            sharing_mode=SharingMode(data["sharing_mode"]),
            detail=data.get("detail"),
        )


@dataclass(frozen=True)
class Snapshot:
    """All regions observed from one vmmap invocation."""

    timestamp_ms: int
    regions: tuple[Region, ...]

    def __len__(self) -> int:
        return len(self.regions)

    @property
    def total_virtual(self) -> int:
        """Sum of virtual sizes across all regions."""
        return sum(r.virtual_size for r in self.regions)

    @property
    def total_resident(self) -> int:
        """Sum of resident sizes across all regions."""
        return sum(r.resident_size for r in self.regions)

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "timestamp_ms": self.timestamp_ms,
            "regions": [r.to_dict() for r in self.regions],
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Snapshot":
        """Deserialize from a dictionary."""
        return cls(
            timestamp_ms=data["timestamp_ms"],
            regions=tuple(Region.from_dict(r) for r in data["regions"]),
        )

    @classmethod
    def from_json(cls, data: str) -> "Snapshot":
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(data))


def snapshots_to_json(snapshots: list[Snapshot] | tuple[Snapshot, ...]) -> str:
    """Serialize snapshots, in order, as a JSON array."""
    return json.dumps([s.to_dict() for s in snapshots])
