"""Per-process I/O detection over a bounded candidate set.

Reading every process's I/O counters on every tick is expensive on hosts with
thousands of processes. Instead, one full scan at the start of the window
ranks processes by cumulative read+write bytes and freezes the top K as the
candidate set. Only those pids are re-read for the rest of the window.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from why_linux.detector import Detection, WindowSpec, run_blocking
from why_linux.provider import SnapshotProvider
from why_linux.samples import IoSample, ResourceKind

log = structlog.get_logger()

DEFAULT_TOP_K = 64


def saturating_delta(start: int, end: int) -> int:
    """Counter delta that never goes negative (counter reset or pid reuse)."""
    return max(0, end - start)


class CandidateSelector:
    """Picks the pids worth re-sampling for one I/O window."""

    def __init__(
        self,
        provider: SnapshotProvider,
        top_k: int = DEFAULT_TOP_K,
        exclude_pid: int | None = None,
    ) -> None:
        self.provider = provider
        self.top_k = max(1, top_k)
        self.exclude_pid = exclude_pid

    def select(self) -> frozenset[int]:
        """Rank all pids by cumulative read+write bytes and keep the top K.

        Falls back to every pid when no process exposes counters, so a host
        where the ranking scan fails is still fully covered.
        """
        all_pids = self.provider.all_pids()
        totals: list[tuple[int, int]] = []
        for pid in all_pids:
            if pid == self.exclude_pid:
                continue
            counters = self.provider.io_counters(pid)
            if counters is None:
                continue
            read_bytes, write_bytes = counters
            totals.append((pid, read_bytes + write_bytes))

        # Highest total first; equal totals by pid so the cut is reproducible
        totals.sort(key=lambda t: (-t[1], t[0]))
        candidates = frozenset(pid for pid, _ in totals[: self.top_k])

        if not candidates:
            candidates = frozenset(pid for pid in all_pids if pid != self.exclude_pid)
            log.debug("io_candidates_fallback", count=len(candidates))
        else:
            log.debug("io_candidates_selected", count=len(candidates), scanned=len(totals))
        return candidates


@dataclass(frozen=True)
class IoObservation:
    """Most recent non-zero tick for one pid (rates in bytes/sec)."""

    read_rate: int
    write_rate: int
    name: str

    @property
    def total(self) -> int:
        return self.read_rate + self.write_rate


class IoWindow:
    """Per-pid hit bookkeeping for one I/O window.

    A tick with any non-zero delta updates the pid's last observation; a tick
    where the read rate or the write rate meets its threshold is also a hit.
    """

    def __init__(self, read_threshold: int, write_threshold: int) -> None:
        self.read_threshold = read_threshold
        self.write_threshold = write_threshold
        self.hits: dict[int, int] = {}
        self.last_seen: dict[int, IoObservation] = {}

    def observe(self, pid: int, read_rate: int, write_rate: int, name: str) -> None:
        if read_rate <= 0 and write_rate <= 0:
            return
        self.last_seen[pid] = IoObservation(read_rate=read_rate, write_rate=write_rate, name=name)
        if read_rate >= self.read_threshold or write_rate >= self.write_threshold:
            self.hits[pid] = self.hits.get(pid, 0) + 1

    def best(self, min_hits: int) -> IoSample | None:
        """The sustained hitter with the largest read+write; ties go to the lowest pid."""
        eligible = [
            pid
            for pid, count in self.hits.items()
            if count >= min_hits and pid in self.last_seen
        ]
        if not eligible:
            return None
        pid = max(eligible, key=lambda p: (self.last_seen[p].total, -p))
        obs = self.last_seen[pid]
        return IoSample(
            pid=pid,
            name=obs.name,
            read_bytes_per_sec=obs.read_rate,
            write_bytes_per_sec=obs.write_rate,
        )

    @property
    def max_hits(self) -> int:
        return max(self.hits.values(), default=0)


class IoDetector:
    """Sustained per-process I/O detector.

    Each tick reads the candidates' counters, waits one interval, reads them
    again and turns the saturating deltas into per-second rates.
    """

    kind = ResourceKind.IO

    def __init__(
        self,
        provider: SnapshotProvider,
        read_threshold: int,
        write_threshold: int,
        window: WindowSpec,
        interval: float,
        top_k: int = DEFAULT_TOP_K,
        exclude_pid: int | None = None,
    ) -> None:
        self.provider = provider
        self.read_threshold = read_threshold
        self.write_threshold = write_threshold
        self.window = window
        self.interval = interval
        self.selector = CandidateSelector(provider, top_k=top_k, exclude_pid=exclude_pid)

    def _read_counters(self, candidates: frozenset[int]) -> dict[int, tuple[int, int]]:
        counters: dict[int, tuple[int, int]] = {}
        for pid in candidates:
            value = self.provider.io_counters(pid)
            if value is not None:
                counters[pid] = value
        return counters

    def _to_rate(self, delta: int) -> int:
        if self.interval <= 0:
            return delta
        return int(delta / self.interval)

    def _close_tick(
        self,
        candidates: frozenset[int],
        start: dict[int, tuple[int, int]],
        io_window: IoWindow,
    ) -> None:
        for pid in sorted(candidates):
            if pid not in start:
                continue
            end = self.provider.io_counters(pid)
            if end is None:
                continue  # Exited mid-tick
            read_delta = saturating_delta(start[pid][0], end[0])
            write_delta = saturating_delta(start[pid][1], end[1])
            if read_delta == 0 and write_delta == 0:
                continue
            name = self.provider.process_name(pid) or "?"
            io_window.observe(pid, self._to_rate(read_delta), self._to_rate(write_delta), name)

    async def run(self) -> Detection:
        candidates = await run_blocking(self.selector.select)
        io_window = IoWindow(self.read_threshold, self.write_threshold)

        for _ in range(self.window.samples):
            start = await run_blocking(self._read_counters, candidates)
            await asyncio.sleep(self.interval)
            await run_blocking(self._close_tick, candidates, start, io_window)

        sample = io_window.best(self.window.min_hits)
        log.debug(
            "detector_window_closed",
            kind=self.kind.value,
            candidates=len(candidates),
            hitters=len(io_window.hits),
            detected=sample is not None,
        )
        return Detection(
            kind=self.kind,
            sample=sample,
            hits=io_window.hits.get(sample.pid, 0) if sample else io_window.max_hits,
            ticks=self.window.samples,
        )
