"""Shared test fixtures for vmmap-collector."""

import stat
import threading
import time
from pathlib import Path

import pytest

from vmmap_collector.regions import Permissions, Region, SharingMode, Snapshot

SAMPLE_VMMAP = """\
Process:         app [1234]
Path:            /bin/app
Load Address:    0x100484000
Identifier:      app
Code Type:       ARM64
Parent Process:  zsh [999]

Date/Time:       2026-01-15 10:30:45.123 -0800
OS Version:      macOS 15.2 (24C101)
Report Version:  7
Analysis Tool:   /usr/bin/vmmap

Physical footprint:         12.3M
Physical footprint (peak):  14.1M
----

Virtual Memory Map of process 1234 (app)
Output report format:  2.4  -- 64-bit process
VM page size:  16384 bytes

==== Non-writable regions for process 1234
REGION TYPE                    START - END         [ VSIZE  RSDNT  DIRTY   SWAP] PRT/MAX SHRMOD PURGE    REGION DETAIL
__TEXT                      100484000-100f3c000    [ 10.7M  7904K     0K     0K] r-x/r-x SM=COW          /bin/app
__LINKEDIT                  101000000-101200000    [ 2048K   512K     0K     0K] r--/r-- SM=COW          /bin/app
MALLOC guard page           100000-101000          [    4K     0K     0K     0K] ---/rwx SM=NUL

==== Writable regions for process 1234
REGION TYPE                    START - END         [ VSIZE  RSDNT  DIRTY   SWAP] PRT/MAX SHRMOD PURGE    REGION DETAIL
__DATA                      100f3c000-100f40000    [   16K    16K    16K     0K] rw-/rw- SM=COW          /bin/app
MALLOC_TINY                 14a000000-14a100000    [ 1024K   824K   824K     0K] rw-/rwx SM=PRV          DefaultMallocZone_0x100f48000
Stack                       16f000000-16f800000    [ 8192K    64K    64K     0K] rw-/rwx SM=PRV          thread 0
VM_ALLOCATE (reserved)      300000000-300100000    [ 1024K     0K     0K     0K] rw-/rwx SM=NUL

==== Legend
SM=sharing mode:
        COW=copy_on_write PRV=private NUL=empty ALI=aliased
        SHM=shared ZER=zero_filled S/A=shared_alias

==== Summary for process 1234
ReadOnly portion of Libraries: Total=552.9M resident=120.3M(22%) swapped_out_or_unallocated=432.6M(78%)

REGION TYPE                        SIZE    SIZE     SIZE     SIZE
===========                     ======= ======== ======== ========
__TEXT                            10.7M    7904K       0K       0K
TOTAL                             23.9M    9384K     904K       0K
"""

SAMPLE_REGION_COUNT = 7


@pytest.fixture
def sample_vmmap() -> str:
    """Realistic vmmap report with seven region lines."""
    return SAMPLE_VMMAP


def make_region(
    category: str = "MALLOC_TINY",
    start: int = 0x14A000000,
    end: int = 0x14A100000,
    virtual_size: int | None = None,
    resident_size: int = 0,
    perms: str = "rw-",
    max_perms: str = "rwx",
    sharing_mode: SharingMode = SharingMode.PRV,
    detail: str | None = None,
) -> Region:
    """Create a Region with sensible defaults for testing."""
    return Region(
        category=category,
        start_address=start,
        end_address=end,
        virtual_size=virtual_size if virtual_size is not None else end - start,
        resident_size=resident_size,
        dirty_size=0,
        swap_size=0,
        current_permissions=Permissions.parse(perms),
        max_permissions=Permissions.parse(max_perms),
        sharing_mode=sharing_mode,
        detail=detail,
    )


def make_snapshot(timestamp_ms: int = 1_760_000_000_000, regions=None) -> Snapshot:
    """Create a Snapshot, one default region if none given."""
    if regions is None:
        regions = [make_region()]
    return Snapshot(timestamp_ms=timestamp_ms, regions=tuple(regions))


class FakeCapturer:
    """Capturer that replays scripted results.

    Each entry is returned as text, or raised if it is an exception. Once the
    script runs out the last entry repeats.
    """

    def __init__(self, *results: str | BaseException) -> None:
        self._results = list(results) or [SAMPLE_VMMAP]
        self._lock = threading.Lock()
        self.calls = 0
        self.pids: list[int] = []

    def capture(self, pid: int) -> str:
        with self._lock:
            index = min(self.calls, len(self._results) - 1)
            self.calls += 1
            self.pids.append(pid)
        result = self._results[index]
        if isinstance(result, BaseException):
            raise result
        return result


def wait_until(condition, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Wait until condition() returns True, or timeout."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise TimeoutError(f"Condition not met within {timeout}s")
        time.sleep(interval)


@pytest.fixture
def fake_vmmap(tmp_path: Path):
    """Factory for a shell script standing in for the vmmap binary."""

    def _make(body: str, name: str = "vmmap") -> Path:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
