"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (collector_started, snapshot_received, etc.)
5. Structlog configuration (configure, get_structlog)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

from vmmap_collector.formatting import format_bytes, format_timestamp

if TYPE_CHECKING:
    from vmmap_collector.config import Config

# Stderr keeps stdout clean for --json output
_console = Console(highlight=False, stderr=True)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output.

    Use via autocomplete: Icon.<TAB> to see all available icons.
    """

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    CAPTURE = "📸"
    SAVE = "💾"
    SIGNAL = "⚡"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def collector_started(pid: int, name: str, interval_ms: int) -> None:
    """Log sampling started."""
    info(
        f"Sampling [cyan]{name}[/] [dim]({pid})[/] every [cyan]{interval_ms}[/]ms",
        Icon.OK,
    )


def collector_stopping() -> None:
    """Log shutdown initiated."""
    info("Stopping collector...", Icon.WAIT)


def collector_stopped(snapshot_count: int) -> None:
    """Log shutdown complete."""
    suffix = "s" if snapshot_count != 1 else ""
    info(f"Collector stopped [dim]({snapshot_count} snapshot{suffix})[/]", Icon.OK)


def snapshot_received(timestamp_ms: int, region_count: int, virtual: int, resident: int) -> None:
    """Log one delivered snapshot."""
    info(
        f"[dim]{format_timestamp(timestamp_ms)}[/] [cyan]{region_count}[/] regions, "
        f"{format_bytes(virtual)} virtual, {format_bytes(resident)} resident",
        Icon.CAPTURE,
    )


def capture_failed(error_msg: str) -> None:
    """Log a failed capture cycle."""
    error(f"Capture failed: {error_msg}", Icon.FAIL)


def process_not_found(pid: int) -> None:
    """Log target PID does not exist."""
    error(f"No process with PID [bold]{pid}[/]", Icon.FAIL)


def process_name_unavailable(pid: int) -> None:
    """Log that the target's name could not be read."""
    warn(f"Cannot read process name for PID [bold]{pid}[/]")


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def history_saved(path: str, snapshot_count: int) -> None:
    """Log history written to disk."""
    info(f"Saved [cyan]{snapshot_count}[/] snapshots to [cyan]{path}[/]", Icon.SAVE)


def collection_summary(snapshot_count: int, tracked_count: int, failure_count: int) -> None:
    """Log end-of-run summary."""
    info(
        f"[cyan]{snapshot_count}[/] snapshots, [cyan]{tracked_count}[/] distinct regions"
        + (f", [yellow]{failure_count}[/] failed captures" if failure_count else "")
    )


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config) -> None:
    """Configure structlog to write JSON lines to a rotating log file.

    Uses local time to match snapshot timestamps.

    Args:
        config: Application config with paths and rotation settings
    """
    level = getattr(logging, config.system.log_level)

    # Ensure state directory exists for log file
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(level)

    # Clear any existing handlers
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("collector"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Console output is handled by Rich (see log functions above)
    # structlog only writes to JSON file for machine parsing


def get_structlog() -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Returns a logger for structured JSON file output. Use this for
    machine-parseable events that should go to the log file.

    For human-readable console output, use the log/info/warn/error
    functions or domain helpers instead.
    """
    return structlog.get_logger()
