"""Configuration system for vmmap-collector."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class CollectorConfig:
    """Sampling configuration."""

    interval_ms: int = 1000  # Milliseconds between vmmap captures
    vmmap_path: str = "vmmap"  # Resolved through PATH unless absolute
    max_output_bytes: int = 10 * 1024 * 1024  # Ceiling on one vmmap report (10MB)
    history_size: int = 0  # Snapshots retained for pull access (0 = keep all)


@dataclass
class SystemConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    collector: CollectorConfig = field(default_factory=CollectorConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "vmmap-collector"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs and other expendable persistent state."""
        return Path.home() / ".local" / "state" / "vmmap-collector"

    @property
    def log_path(self) -> Path:
        """Collector log path."""
        return self.state_dir / "collector.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("collector", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() agree when no file exists.

        Raises:
            ValueError: If the file is not valid TOML or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            collector=_load_collector_config(data.get("collector", {})),
            system=_load_system_config(data.get("system", {})),
        )


def _load_collector_config(data: dict) -> CollectorConfig:
    """Load collector config from TOML data, using dataclass defaults for missing fields."""
    defaults = CollectorConfig()

    interval_ms = data.get("interval_ms", defaults.interval_ms)
    max_output_bytes = data.get("max_output_bytes", defaults.max_output_bytes)
    history_size = data.get("history_size", defaults.history_size)

    if interval_ms < 1:
        raise ValueError(f"interval_ms must be >= 1, got {interval_ms}")
    if max_output_bytes < 1:
        raise ValueError(f"max_output_bytes must be >= 1, got {max_output_bytes}")
    if history_size < 0:
        raise ValueError(f"history_size must be >= 0, got {history_size}")

    return CollectorConfig(
        interval_ms=int(interval_ms),
        vmmap_path=str(data.get("vmmap_path", defaults.vmmap_path)),
        max_output_bytes=int(max_output_bytes),
        history_size=int(history_size),
    )


def _load_system_config(data: dict) -> SystemConfig:
    """Load system config from TOML data."""
    d = SystemConfig()

    log_level = str(data.get("log_level", d.log_level)).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log_level: {log_level!r}. Must be one of {VALID_LOG_LEVELS}")

    return SystemConfig(
        log_level=log_level,
        log_max_bytes=int(data.get("log_max_bytes", d.log_max_bytes)),
        log_backup_count=int(data.get("log_backup_count", d.log_backup_count)),
    )
