"""Parser for vmmap text output.

vmmap prints one line per region in the form::

    __TEXT      100484000-100f3c000    [ 10.7M  7904K     0K     0K] r-x/r-x SM=COW  /bin/app

The leading category may contain spaces ("MALLOC guard page", "mapped file"),
so columns cannot be split on whitespace. The hex address range is the anchor:
everything before it is the category, everything after it is data.
"""

import re

import structlog

from vmmap_collector.regions import (
    NO_PERMISSIONS,
    SHARING_MODE_ORDER,
    Permissions,
    Region,
    SharingMode,
)

log = structlog.get_logger()

MAX_ADDRESS = 0xFFFF_FFFF_FFFF_FFFF

_UNITS = {
    "K": 1024,
    "M": 1024 * 1024,
    "G": 1024 * 1024 * 1024,
}

# Prefixes of lines that are never regions (section markers, headers, dividers)
_SKIP_PREFIXES = ("==", "REGION TYPE", "---")

_ADDRESS_RANGE = re.compile(r"([0-9A-Fa-f]+)-([0-9A-Fa-f]+)")
_PERMISSIONS = re.compile(r"([rwx-]{3})/([rwx-]{3})")
# Integer, or decimal with one fractional digit (vmmap's own precision)
_MAGNITUDE = re.compile(r"([0-9]+)(?:\.([0-9]))?")


class RegionParseError(ValueError):
    """A candidate line could not be decoded into a Region."""


def is_region_line(line: str) -> bool:
    """Cheap check for whether a line may hold a region.

    Rejects blank lines, section markers, column headers and dividers before
    looking for the address range anchor.
    """
    trimmed = line.strip()
    if not trimmed:
        return False
    if trimmed.startswith(_SKIP_PREFIXES):
        return False
    return "-" in trimmed and _ADDRESS_RANGE.search(trimmed) is not None


def parse_size(token: str) -> int:
    """Convert a vmmap magnitude token to bytes.

    ``"512K"`` is 524288, ``"10.7M"`` is 10.7 MiB truncated to whole bytes,
    and a bare number is raw bytes. Units are case-sensitive.

    Raises:
        RegionParseError: If the token has no usable numeric content.
    """
    multiplier = 1
    number = token
    if token and token[-1] in _UNITS:
        multiplier = _UNITS[token[-1]]
        number = token[:-1]

    match = _MAGNITUDE.fullmatch(number)
    if match is None:
        raise RegionParseError(f"Invalid size token: {token!r}")

    if match.group(2) is None:
        return int(match.group(1)) * multiplier
    return int(float(number) * multiplier)


def _parse_sizes(content: str) -> tuple[int, int, int, int]:
    """Parse the four bracketed sizes: virtual, resident, dirty, swap."""
    tokens = content.split()
    if len(tokens) != 4:
        raise RegionParseError(f"Expected 4 size fields, got {len(tokens)}: {content!r}")
    virtual, resident, dirty, swap = (parse_size(t) for t in tokens)
    return virtual, resident, dirty, swap


def _parse_permissions(rest: str) -> tuple[Permissions, Permissions]:
    """Find a ``cur/max`` permission pair. Missing pair means no access."""
    match = _PERMISSIONS.search(rest)
    if match is None:
        return NO_PERMISSIONS, NO_PERMISSIONS
    return Permissions.parse(match.group(1)), Permissions.parse(match.group(2))


def _parse_sharing_mode(rest: str) -> tuple[SharingMode, str | None, int]:
    """Return the sharing mode, the detail text following its marker, and
    the marker's offset in ``rest`` (``len(rest)`` when there is none)."""
    for mode in SHARING_MODE_ORDER:
        pos = rest.find(mode.marker)
        if pos == -1:
            continue
        detail = rest[pos + len(mode.marker) :].strip()
        return mode, detail or None, pos
    return SharingMode.PRV, None, len(rest)


def parse_region_line(line: str) -> Region:
    """Decode a single vmmap region line.

    Raises:
        RegionParseError: If the anchor, addresses or size bracket are malformed.
    """
    match = _ADDRESS_RANGE.search(line)
    if match is None:
        raise RegionParseError("No address range")

    category = line[: match.start()].strip()

    # The end address must be terminated by whitespace or the size bracket
    rest = line[match.end() :]
    if not rest or rest[0] not in " \t[":
        raise RegionParseError(f"Malformed address range: {match.group(0)!r}")

    start_address = int(match.group(1), 16)
    end_address = int(match.group(2), 16)
    if end_address > MAX_ADDRESS:
        raise RegionParseError(f"Address out of range: {match.group(2)!r}")
    if start_address >= end_address:
        raise RegionParseError(f"Empty or inverted range: {match.group(0)!r}")

    open_pos = rest.find("[")
    close_pos = rest.find("]")
    if open_pos == -1 or close_pos == -1 or close_pos < open_pos:
        raise RegionParseError("Missing size bracket")

    virtual, resident, dirty, swap = _parse_sizes(rest[open_pos + 1 : close_pos])

    tail = rest[close_pos + 1 :]
    sharing_mode, detail, marker_pos = _parse_sharing_mode(tail)
    # Permissions precede the marker; the detail may be a path containing "rw-/r--"
    current, maximum = _parse_permissions(tail[:marker_pos])

    return Region(
        category=category,
        start_address=start_address,
        end_address=end_address,
        virtual_size=virtual,
        resident_size=resident,
        dirty_size=dirty,
        swap_size=swap,
        current_permissions=current,
        max_permissions=maximum,
        sharing_mode=sharing_mode,
        detail=detail,
    )


def parse_vmmap(text: str) -> list[Region]:
    """Parse vmmap output into regions, in the order they appear.

    Headers, summaries and any line that fails to decode are skipped; a bad
    line never aborts the rest of the capture.

    Args:
        text: Raw vmmap stdout text

    Returns:
        List of Region in source order (not sorted by address)
    """
    regions: list[Region] = []

    for line in text.splitlines():
        if not is_region_line(line):
            continue
        try:
            regions.append(parse_region_line(line))
        except RegionParseError as e:
            log.debug("region_line_skipped", reason=str(e), line=line.strip()[:120])

    return regions
