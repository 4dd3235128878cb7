"""Cumulative per-process offender tables.

The sustained detectors answer "did the host stay over threshold long
enough". The aggregator answers a different question: across the whole run,
which processes used the most of a resource in total.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class OffenderStats:
    """Running aggregate for one pid. name is last-observed."""

    pid: int
    name: str
    sum: float = 0.0
    max: float = 0.0
    sample_count: int = 0

    @property
    def avg(self) -> float:
        return self.sum / self.sample_count if self.sample_count else 0.0


@dataclass(frozen=True)
class OffenderRow:
    """One row of an offenders table."""

    name: str
    pid: int
    sum: float
    avg: float
    max: float

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "name": self.name,
            "pid": self.pid,
            "sum": self.sum,
            "avg": self.avg,
            "max": self.max,
        }


class OffenderAggregator:
    """Accumulates sum/max/count per pid for one resource.

    Owned and mutated by a single task; not thread-safe.
    """

    def __init__(self) -> None:
        self._stats: dict[int, OffenderStats] = {}

    def __len__(self) -> int:
        return len(self._stats)

    def record(self, pid: int, name: str, value: float) -> None:
        stats = self._stats.get(pid)
        if stats is None:
            stats = self._stats[pid] = OffenderStats(pid=pid, name=name, max=value)
        stats.name = name  # Processes can be renamed between ticks
        stats.sum += value
        stats.max = max(stats.max, value)
        stats.sample_count += 1

    def get(self, pid: int) -> OffenderStats | None:
        return self._stats.get(pid)

    def top(self, n: int) -> list[OffenderRow]:
        """Top n pids by cumulative sum, descending; equal sums by ascending pid."""
        ranked = sorted(self._stats.values(), key=lambda s: (-s.sum, s.pid))
        return [
            OffenderRow(name=s.name, pid=s.pid, sum=s.sum, avg=s.avg, max=s.max)
            for s in ranked[: max(0, n)]
        ]
