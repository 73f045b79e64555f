"""Configuration system for psi-monitor."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

# Kernel limits for trigger registration (see Documentation/accounting/psi.rst)
MIN_TRIGGER_MS = 50
MAX_TRIGGER_MS = 1000
MIN_WINDOW_MS = 500
MAX_WINDOW_MS = 10_000

TIMESTAMP_FORMATS = ("local", "epoch")


@dataclass
class PressureConfig:
    """Location of the kernel pressure interface."""

    dir: str = "/proc/pressure"


@dataclass
class DomainConfig:
    """Distress threshold for one resource domain.

    trigger_ms: stall time within the window that counts as distress
    window_ms: rolling window over which stall time accumulates
    """

    trigger_ms: int
    window_ms: int

    def validate(self, name: str) -> None:
        """Raise ValueError if the threshold is outside kernel limits."""
        if not MIN_TRIGGER_MS <= self.trigger_ms <= MAX_TRIGGER_MS:
            raise ValueError(
                f"{name}.trigger_ms must be in [{MIN_TRIGGER_MS}, {MAX_TRIGGER_MS}], "
                f"got {self.trigger_ms}"
            )
        if not MIN_WINDOW_MS <= self.window_ms <= MAX_WINDOW_MS:
            raise ValueError(
                f"{name}.window_ms must be in [{MIN_WINDOW_MS}, {MAX_WINDOW_MS}], "
                f"got {self.window_ms}"
            )
        if self.trigger_ms >= self.window_ms:
            raise ValueError(
                f"{name}.trigger_ms ({self.trigger_ms}) must be less than "
                f"window_ms ({self.window_ms})"
            )


def _cpu_defaults() -> DomainConfig:
    return DomainConfig(trigger_ms=50, window_ms=500)


def _io_defaults() -> DomainConfig:
    return DomainConfig(trigger_ms=100, window_ms=1000)


def _memory_defaults() -> DomainConfig:
    return DomainConfig(trigger_ms=75, window_ms=750)


@dataclass
class SystemConfig:
    """Runtime behavior of the monitor."""

    content_buffer_size: int = 128  # Max bytes of pressure file content per read
    timestamp_format: str = "local"  # "local" (YYYY-MM-DD HH:MM:SS) or "epoch"
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

    pressure: PressureConfig = field(default_factory=PressureConfig)
    cpu: DomainConfig = field(default_factory=_cpu_defaults)
    io: DomainConfig = field(default_factory=_io_defaults)
    memory: DomainConfig = field(default_factory=_memory_defaults)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "psi-monitor"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "psi-monitor"

    @property
    def log_path(self) -> Path:
        """Monitor log path (JSON Lines)."""
        return self.state_dir / "monitor.log"

    @property
    def pressure_dir(self) -> Path:
        """Directory holding the cpu, io and memory pressure files."""
        return Path(self.pressure.dir)

    def domain(self, name: str) -> DomainConfig:
        """Return the threshold config for a domain name ("cpu", "io", "memory")."""
        if name not in ("cpu", "io", "memory"):
            raise ValueError(f"Unknown domain: {name!r}")
        return getattr(self, name)

    def validate(self) -> None:
        """Raise ValueError if any section holds an unusable value."""
        for name in ("cpu", "io", "memory"):
            self.domain(name).validate(name)
        if self.system.content_buffer_size < 1:
            raise ValueError(
                f"content_buffer_size must be >= 1, got {self.system.content_buffer_size}"
            )
        if self.system.timestamp_format not in TIMESTAMP_FORMATS:
            raise ValueError(
                f"Invalid timestamp_format: {self.system.timestamp_format!r}. "
                f"Must be one of {TIMESTAMP_FORMATS}"
            )

    def to_toml(self) -> str:
        """Render the config as a TOML document."""
        doc = tomlkit.document()
        for name in ("pressure", "cpu", "io", "memory", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.

        Raises:
            ValueError: If the file can't be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except OSError as e:
            raise ValueError(f"Failed to read config file {path}: {e.strerror or e}") from e
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        pressure_data = _section(data, "pressure")
        system_data = _section(data, "system")
        sys_defaults = defaults.system

        config = cls(
            pressure=PressureConfig(
                dir=str(pressure_data.get("dir", defaults.pressure.dir)),
            ),
            cpu=_load_domain_config(_section(data, "cpu"), defaults.cpu, "cpu"),
            io=_load_domain_config(_section(data, "io"), defaults.io, "io"),
            memory=_load_domain_config(_section(data, "memory"), defaults.memory, "memory"),
            system=SystemConfig(
                content_buffer_size=_int_value(
                    system_data, "content_buffer_size", sys_defaults.content_buffer_size, "system"
                ),
                timestamp_format=str(
                    system_data.get("timestamp_format", sys_defaults.timestamp_format)
                ),
                log_max_bytes=_int_value(
                    system_data, "log_max_bytes", sys_defaults.log_max_bytes, "system"
                ),
                log_backup_count=_int_value(
                    system_data, "log_backup_count", sys_defaults.log_backup_count, "system"
                ),
            ),
        )
        config.validate()
        return config


def _section(data: Mapping, name: str) -> Mapping:
    """Return a top-level table, or an empty one if absent."""
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _int_value(data: Mapping, key: str, default: int, section: str) -> int:
    """Read an integer field, rejecting values that aren't whole numbers."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    return int(value)


def _load_domain_config(data: Mapping, defaults: DomainConfig, name: str) -> DomainConfig:
    """Load one domain section from TOML data, using defaults for missing fields."""
    return DomainConfig(
        trigger_ms=_int_value(data, "trigger_ms", defaults.trigger_ms, name),
        window_ms=_int_value(data, "window_ms", defaults.window_ms, name),
    )
