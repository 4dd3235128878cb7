"""Per-tick timeline of top consumers and the run-wide summary derived from it."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from why_linux.samples import TimelineSample


@dataclass(frozen=True)
class Stat:
    """Average and maximum of a series (0.0 for an empty series)."""

    avg: float = 0.0
    max: float = 0.0

    @classmethod
    def of(cls, values: Iterable[float]) -> Stat:
        values = list(values)
        if not values:
            return cls()
        return cls(avg=sum(values) / len(values), max=max(values))

    def to_dict(self) -> dict:
        return {"avg": self.avg, "max": self.max}


@dataclass(frozen=True)
class RunSummary:
    """Run-wide avg/max per resource, plus system-wide memory."""

    cpu: Stat
    mem: Stat
    mem_system: Stat
    disk: Stat

    def to_dict(self) -> dict:
        """Serialize to the report's summary section."""
        return {
            "cpu": self.cpu.to_dict(),
            "mem": {
                **self.mem.to_dict(),
                "system_avg": self.mem_system.avg,
                "system_max": self.mem_system.max,
            },
            "disk": self.disk.to_dict(),
        }


class TimelineRecorder:
    """Append-only, timestamp-ordered sequence of timeline ticks."""

    def __init__(self) -> None:
        self._samples: list[TimelineSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> list[TimelineSample]:
        """Read-only access to samples (returns a copy)."""
        return list(self._samples)

    def append(self, sample: TimelineSample) -> None:
        if self._samples and sample.timestamp < self._samples[-1].timestamp:
            raise ValueError(
                f"Timeline sample at {sample.timestamp} is older than "
                f"the last one at {self._samples[-1].timestamp}"
            )
        self._samples.append(sample)

    def summary(self) -> RunSummary:
        """Averages are taken over ticks where the resource produced a sample."""
        cpu = [s.cpu.cpu_percent for s in self._samples if s.cpu]
        mem = [s.mem for s in self._samples if s.mem]
        disk = [s.disk.used_percent for s in self._samples if s.disk]
        return RunSummary(
            cpu=Stat.of(cpu),
            mem=Stat.of(m.mem_percent for m in mem),
            mem_system=Stat.of(m.system_used_percent for m in mem),
            disk=Stat.of(disk),
        )
