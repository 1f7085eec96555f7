"""Formatting utilities for consistent CLI output."""

from datetime import datetime

from vmmap_collector.regions import Region


def format_bytes(size: int) -> str:
    """Format a byte count with binary units, vmmap style.

    Returns:
        - Under 1K: raw bytes, e.g. "824"
        - Otherwise one decimal place, e.g. "16.0K", "10.7M", "1.5G"
    """
    if size < 1024:
        return str(size)
    value = size / 1024
    for unit in ("K", "M", "G"):
        if value < 1024:
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}T"


def format_address(address: int) -> str:
    """Format an address as lowercase hex with 0x prefix."""
    return f"0x{address:x}"


def format_timestamp(timestamp_ms: int) -> str:
    """Format a millisecond epoch timestamp as local HH:MM:SS.mmm."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000)
    return dt.strftime("%H:%M:%S.") + f"{timestamp_ms % 1000:03d}"


def format_region_row(region: Region, category_width: int = 24) -> str:
    """Format one region as a table row for list views."""
    category = region.category
    if len(category) > category_width:
        category = category[: category_width - 2] + ".."
    perms = f"{region.current_permissions}/{region.max_permissions}"
    return (
        f"{category:<{category_width}}  "
        f"{region.start_address:>16x}-{region.end_address:<16x}  "
        f"{format_bytes(region.virtual_size):>7}  "
        f"{format_bytes(region.resident_size):>7}  "
        f"{format_bytes(region.dirty_size):>7}  "
        f"{format_bytes(region.swap_size):>7}  "
        f"{perms}  "
        f"{region.sharing_mode.value:<3}  "
        f"{region.detail or ''}"
    ).rstrip()
