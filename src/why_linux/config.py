"""Configuration system for why-linux."""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class ThresholdsConfig:
    """Per-resource thresholds a tick must exceed to count as a hit.

    cpu/mem/disk are percentages and use strict greater-than.
    io_read/io_write are bytes per second and use greater-or-equal.
    """

    cpu: float = 20.0  # Top process CPU %
    mem: float = 80.0  # System-wide used memory %
    disk: float = 90.0  # Fullest mount used %
    io_read: int = 5_000_000  # Bytes/sec read by a single process
    io_write: int = 5_000_000  # Bytes/sec written by a single process


@dataclass
class WindowConfig:
    """Observation window for one resource: N ticks, of which min_hits must qualify."""

    samples: int = 5
    min_hits: int = 2


@dataclass
class WindowsConfig:
    """Observation windows for each detector."""

    cpu: WindowConfig = field(default_factory=lambda: WindowConfig(samples=5, min_hits=3))
    mem: WindowConfig = field(default_factory=lambda: WindowConfig(samples=5, min_hits=2))
    disk: WindowConfig = field(default_factory=lambda: WindowConfig(samples=5, min_hits=2))
    io: WindowConfig = field(default_factory=lambda: WindowConfig(samples=5, min_hits=2))


@dataclass
class RunConfig:
    """Run-wide sampling configuration."""

    interval: float = 1.0  # Seconds between ticks
    duration: float = 5.0  # Seconds the timeline runs for
    unified: bool = False  # Derive every window from duration/interval
    exclude_self: bool = True  # Never attribute load to the diagnostic itself
    io_top_k: int = 64  # Processes re-sampled per tick by the I/O detector

    @property
    def timeline_ticks(self) -> int:
        """Number of timeline ticks (duration / interval, at least 1)."""
        if self.interval <= 0:
            # Zero interval only happens in tests; count duration in whole ticks
            return max(1, int(self.duration))
        # Epsilon keeps 1.0 / 0.1 from flooring to 9
        return max(1, math.floor(self.duration / self.interval + 1e-9))


@dataclass
class ReportConfig:
    """Report document configuration."""

    top_n: int = 5  # Rows in each offenders table


@dataclass
class SystemConfig:
    """Log file settings."""

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

    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    windows: WindowsConfig = field(default_factory=WindowsConfig)
    run: RunConfig = field(default_factory=RunConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "why-linux"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "why-linux"

    @property
    def log_path(self) -> Path:
        """JSON Lines log path."""
        return self.state_dir / "why-linux.log"

    def effective_windows(self) -> WindowsConfig:
        """Return the windows the detectors actually run with.

        In unified mode every window is N = duration // interval ticks with
        min_hits = max(1, N // 2). Otherwise the configured windows are used.
        Both values are clamped to at least 1.
        """
        if self.run.unified:
            n = self.run.timeline_ticks
            hits = max(1, n // 2)
            return WindowsConfig(
                cpu=WindowConfig(samples=n, min_hits=hits),
                mem=WindowConfig(samples=n, min_hits=hits),
                disk=WindowConfig(samples=n, min_hits=hits),
                io=WindowConfig(samples=n, min_hits=hits),
            )

        def clamp(w: WindowConfig) -> WindowConfig:
            return WindowConfig(samples=max(1, w.samples), min_hits=max(1, w.min_hits))

        return WindowsConfig(
            cpu=clamp(self.windows.cpu),
            mem=clamp(self.windows.mem),
            disk=clamp(self.windows.disk),
            io=clamp(self.windows.io),
        )

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("thresholds", "windows", "run", "report", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.
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

        system_data = data.get("system", {})
        sys_defaults = defaults.system

        return cls(
            thresholds=_load_thresholds_config(data.get("thresholds", {})),
            windows=_load_windows_config(data.get("windows", {})),
            run=_load_run_config(data.get("run", {})),
            report=_load_report_config(data.get("report", {})),
            system=SystemConfig(
                log_max_bytes=system_data.get("log_max_bytes", sys_defaults.log_max_bytes),
                log_backup_count=system_data.get(
                    "log_backup_count", sys_defaults.log_backup_count
                ),
            ),
        )


def _load_thresholds_config(data: dict) -> ThresholdsConfig:
    """Load thresholds from TOML data, using dataclass defaults for missing fields."""
    d = ThresholdsConfig()
    thresholds = ThresholdsConfig(
        cpu=float(data.get("cpu", d.cpu)),
        mem=float(data.get("mem", d.mem)),
        disk=float(data.get("disk", d.disk)),
        io_read=int(data.get("io_read", d.io_read)),
        io_write=int(data.get("io_write", d.io_write)),
    )
    for f in fields(thresholds):
        value = getattr(thresholds, f.name)
        if value < 0:
            raise ValueError(f"thresholds.{f.name} must be >= 0, got {value}")
    return thresholds


def _load_window(data: dict, name: str, default: WindowConfig) -> WindowConfig:
    section = data.get(name, {})
    samples = section.get("samples", default.samples)
    min_hits = section.get("min_hits", default.min_hits)
    if samples < 1:
        raise ValueError(f"windows.{name}.samples must be >= 1, got {samples}")
    if min_hits < 1:
        raise ValueError(f"windows.{name}.min_hits must be >= 1, got {min_hits}")
    return WindowConfig(samples=samples, min_hits=min_hits)


def _load_windows_config(data: dict) -> WindowsConfig:
    """Load per-resource windows from TOML data."""
    d = WindowsConfig()
    return WindowsConfig(
        cpu=_load_window(data, "cpu", d.cpu),
        mem=_load_window(data, "mem", d.mem),
        disk=_load_window(data, "disk", d.disk),
        io=_load_window(data, "io", d.io),
    )


def _load_run_config(data: dict) -> RunConfig:
    """Load run config from TOML data."""
    d = RunConfig()
    interval = float(data.get("interval", d.interval))
    duration = float(data.get("duration", d.duration))
    io_top_k = data.get("io_top_k", d.io_top_k)

    if interval <= 0:
        raise ValueError(f"run.interval must be > 0, got {interval}")
    if duration <= 0:
        raise ValueError(f"run.duration must be > 0, got {duration}")
    if io_top_k < 1:
        raise ValueError(f"run.io_top_k must be >= 1, got {io_top_k}")

    return RunConfig(
        interval=interval,
        duration=duration,
        unified=bool(data.get("unified", d.unified)),
        exclude_self=bool(data.get("exclude_self", d.exclude_self)),
        io_top_k=io_top_k,
    )


def _load_report_config(data: dict) -> ReportConfig:
    """Load report config from TOML data."""
    d = ReportConfig()
    top_n = data.get("top_n", d.top_n)
    if top_n < 1:
        raise ValueError(f"report.top_n must be >= 1, got {top_n}")
    return ReportConfig(top_n=top_n)
