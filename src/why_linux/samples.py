"""Resource samples produced by a snapshot provider.

These are THE canonical shapes for per-tick observations. Detectors,
aggregators, the timeline and the report document all pass these around
unchanged; they are never mutated once produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ResourceKind(str, Enum):
    """Resource a sample or detector refers to."""

    CPU = "cpu"
    MEM = "mem"
    DISK = "disk"
    IO = "io"


@dataclass(frozen=True)
class CpuSample:
    """Top CPU consumer at one tick."""

    name: str
    pid: int
    cpu_percent: float

    kind = ResourceKind.CPU

    @property
    def value(self) -> float:
        return self.cpu_percent

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {"name": self.name, "pid": self.pid, "cpu_percent": self.cpu_percent}


@dataclass(frozen=True)
class MemSample:
    """Top memory consumer at one tick, with the system-wide used percent.

    mem_percent is the process's own share of physical memory and is what the
    offenders table aggregates. system_used_percent is what the sustained
    memory detector compares against its threshold.
    """

    name: str
    pid: int
    mem_percent: float
    system_used_percent: float

    kind = ResourceKind.MEM

    @property
    def value(self) -> float:
        return self.mem_percent

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "name": self.name,
            "pid": self.pid,
            "mem_percent": self.mem_percent,
            "system_used_percent": self.system_used_percent,
        }


@dataclass(frozen=True)
class DiskSample:
    """Fullest mounted filesystem at one tick."""

    filesystem: str
    mount_point: str
    used_percent: float

    kind = ResourceKind.DISK

    @property
    def value(self) -> float:
        return self.used_percent

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "filesystem": self.filesystem,
            "mount_point": self.mount_point,
            "used_percent": self.used_percent,
        }


@dataclass(frozen=True)
class IoSample:
    """Per-process I/O rate over one tick."""

    pid: int
    name: str
    read_bytes_per_sec: int
    write_bytes_per_sec: int

    kind = ResourceKind.IO

    @property
    def value(self) -> int:
        return self.read_bytes_per_sec + self.write_bytes_per_sec

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "pid": self.pid,
            "name": self.name,
            "read_bytes_per_sec": self.read_bytes_per_sec,
            "write_bytes_per_sec": self.write_bytes_per_sec,
        }


ResourceSample = Union[CpuSample, MemSample, DiskSample, IoSample]


@dataclass(frozen=True)
class TimelineSample:
    """One timeline tick: the top consumer of each resource at that instant."""

    timestamp: float
    cpu: CpuSample | None = None
    mem: MemSample | None = None
    disk: DiskSample | None = None

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "timestamp": self.timestamp,
            "cpu": self.cpu.to_dict() if self.cpu else None,
            "mem": self.mem.to_dict() if self.mem else None,
            "disk": self.disk.to_dict() if self.disk else None,
        }
