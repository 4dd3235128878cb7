"""Snapshot providers: where raw process and filesystem metrics come from.

The engine only depends on the SnapshotProvider protocol. PsutilSnapshotProvider
is the production implementation; tests script their own.

Every provider method treats a failed acquisition (process exited, permission
denied, counter unsupported on this platform) as "no sample" and returns None or
an empty collection instead of raising.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Protocol

import psutil
import structlog

from why_linux.samples import CpuSample, DiskSample, MemSample, ResourceKind, ResourceSample

log = structlog.get_logger()

# Browser helper processes whose load belongs to their parent application.
# Names are as the kernel reports them (comm is truncated to 15 chars).
HELPER_NAMES = frozenset(
    {
        "Web",
        "GPU",
        "Web Content",
        "GPU Process",
        "Isolated Web Co",
        "RDD Process",
        "Socket Process",
        "Utility Process",
        "WebExtensions",
    }
)

# psutil errors that mean "this process can't be sampled right now"
_PROC_ERRORS = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess, OSError)


class SnapshotProvider(Protocol):
    """What the detectors, selector and timeline need from the host."""

    def top_sample(
        self, kind: ResourceKind, exclude_pid: int | None = None
    ) -> ResourceSample | None:
        """Return the single highest consumer for cpu, mem or disk."""
        ...

    def io_counters(self, pid: int) -> tuple[int, int] | None:
        """Return cumulative (read_bytes, write_bytes) for a pid."""
        ...

    def all_pids(self) -> set[int]:
        """Return every pid currently enumerable."""
        ...

    def process_name(self, pid: int) -> str | None:
        """Return the short process name for a pid."""
        ...

    def fork(self) -> SnapshotProvider:
        """Return a provider for another worker, sharing no per-call state."""
        ...


@dataclass
class _PrevCpu:
    """Previous CPU observation of a pid for delta calculation."""

    cpu_time: float  # user + system seconds
    timestamp: float  # time.monotonic() when sampled


class PsutilSnapshotProvider:
    """Collects host metrics via psutil.

    CPU% is the share of one core used since the previous observation of the
    same pid; a pid seen for the first time gets its lifetime average, the
    same figure `ps` reports. The delta is only meaningful per caller, so each
    worker takes its own instance from fork().
    """

    def __init__(self) -> None:
        self._prev_cpu: dict[int, _PrevCpu] = {}
        self._lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # SnapshotProvider
    # ─────────────────────────────────────────────────────────────────────────

    def top_sample(
        self, kind: ResourceKind, exclude_pid: int | None = None
    ) -> ResourceSample | None:
        if kind is ResourceKind.CPU:
            return self.top_cpu(exclude_pid)
        if kind is ResourceKind.MEM:
            return self.top_mem(exclude_pid)
        if kind is ResourceKind.DISK:
            return self.top_mount()
        raise ValueError(f"No top sample for {kind.value!r}; use io_counters()")

    def io_counters(self, pid: int) -> tuple[int, int] | None:
        try:
            counters = psutil.Process(pid).io_counters()
        except (*_PROC_ERRORS, AttributeError):
            # AttributeError: io_counters() does not exist on macOS
            return None
        return counters.read_bytes, counters.write_bytes

    def all_pids(self) -> set[int]:
        try:
            return set(psutil.pids())
        except OSError as e:
            log.debug("pid_listing_failed", error=str(e))
            return set()

    def process_name(self, pid: int) -> str | None:
        try:
            return psutil.Process(pid).name()
        except _PROC_ERRORS:
            return None

    def fork(self) -> PsutilSnapshotProvider:
        return PsutilSnapshotProvider()

    # ─────────────────────────────────────────────────────────────────────────
    # CPU
    # ─────────────────────────────────────────────────────────────────────────

    def _cpu_percent(self, proc: psutil.Process, now: float) -> float | None:
        """CPU% of one core since the previous observation of this pid."""
        try:
            times = proc.cpu_times()
            create_time = proc.create_time()
        except _PROC_ERRORS:
            return None

        cpu_time = times.user + times.system
        prev = self._prev_cpu.get(proc.pid)
        self._prev_cpu[proc.pid] = _PrevCpu(cpu_time=cpu_time, timestamp=now)

        if prev is not None and now > prev.timestamp:
            delta = cpu_time - prev.cpu_time
            return max(0.0, delta / (now - prev.timestamp) * 100.0)

        # First sight: lifetime average
        lifetime = time.time() - create_time
        if lifetime <= 0:
            return 0.0
        return max(0.0, cpu_time / lifetime * 100.0)

    def top_cpu(self, exclude_pid: int | None = None) -> CpuSample | None:
        """Return the process using the most CPU, attributing helpers to their parent."""
        best: CpuSample | None = None
        seen: set[int] = set()

        with self._lock:
            now = time.monotonic()
            # process_iter() hands out cached Process objects shared across
            # threads; read attributes directly rather than through proc.info.
            for proc in psutil.process_iter():
                if proc.pid == exclude_pid or proc.pid == 0:
                    continue
                cpu = self._cpu_percent(proc, now)
                if cpu is None:
                    continue
                seen.add(proc.pid)
                if best is None or cpu > best.cpu_percent:
                    try:
                        name = proc.name()
                    except _PROC_ERRORS:
                        continue
                    best = CpuSample(name=name or "?", pid=proc.pid, cpu_percent=cpu)

            # Prune pids that have gone away
            for pid in set(self._prev_cpu) - seen:
                del self._prev_cpu[pid]

            if best is not None and best.name in HELPER_NAMES:
                parent = self._parent_cpu(best.pid, now)
                if parent is not None:
                    best = parent

        return best

    def _parent_cpu(self, pid: int, now: float) -> CpuSample | None:
        """Resample CPU for the parent of a helper process (one level up)."""
        try:
            parent = psutil.Process(pid).parent()
            if parent is None:
                return None
            name = parent.name()
        except _PROC_ERRORS:
            return None
        cpu = self._cpu_percent(parent, now)
        if cpu is None:
            return None
        return CpuSample(name=name, pid=parent.pid, cpu_percent=cpu)

    # ─────────────────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────────────────

    def system_mem_used_percent(self) -> float | None:
        """System-wide used memory: (total - available) / total."""
        try:
            vm = psutil.virtual_memory()
        except OSError as e:
            log.debug("meminfo_failed", error=str(e))
            return None
        if vm.total <= 0:
            return None
        return (vm.total - vm.available) / vm.total * 100.0

    def top_mem(self, exclude_pid: int | None = None) -> MemSample | None:
        """Return the process using the most memory, with system-wide usage attached.

        Returns None when system-wide usage can't be read, so the tick is skipped
        instead of judging memory pressure by one process's share.
        """
        system_used = self.system_mem_used_percent()
        if system_used is None:
            return None

        best: tuple[int, str, float] | None = None
        for proc in psutil.process_iter():
            if proc.pid == exclude_pid:
                continue
            try:
                info = proc.as_dict(attrs=["name", "memory_percent"])
            except _PROC_ERRORS:
                continue
            mem = info["memory_percent"]
            if mem is None:
                continue  # AccessDenied is reported as None by as_dict
            if best is None or mem > best[2]:
                best = (proc.pid, info["name"] or "?", mem)

        if best is None:
            return None

        pid, name, mem = best
        if name in HELPER_NAMES:
            try:
                parent = psutil.Process(pid).parent()
                if parent is not None:
                    pid, name, mem = parent.pid, parent.name(), parent.memory_percent()
            except _PROC_ERRORS:
                pass  # Keep the helper itself

        return MemSample(name=name, pid=pid, mem_percent=mem, system_used_percent=system_used)

    # ─────────────────────────────────────────────────────────────────────────
    # Disk
    # ─────────────────────────────────────────────────────────────────────────

    def top_mount(self) -> DiskSample | None:
        """Return the fullest mounted filesystem. Ties keep the first mount seen."""
        best: DiskSample | None = None
        try:
            partitions = psutil.disk_partitions(all=False)
        except OSError as e:
            log.debug("partition_listing_failed", error=str(e))
            return None

        for part in partitions:
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                continue  # Unreadable or vanished mount
            if best is None or usage.percent > best.used_percent:
                best = DiskSample(
                    filesystem=part.device,
                    mount_point=part.mountpoint,
                    used_percent=usage.percent,
                )
        return best
