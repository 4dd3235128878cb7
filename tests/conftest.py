"""Shared test fixtures for why-linux."""

import threading
from collections import defaultdict
from pathlib import Path

import pytest

from why_linux.config import Config
from why_linux.detector import DetectionOutcome
from why_linux.offenders import OffenderRow
from why_linux.report import DiagnosticReport, RunMeta
from why_linux.samples import CpuSample, DiskSample, MemSample, ResourceKind, TimelineSample
from why_linux.timeline import TimelineRecorder


def make_cpu(value: float, pid: int = 100, name: str = "busy") -> CpuSample:
    """Create a CpuSample for testing."""
    return CpuSample(name=name, pid=pid, cpu_percent=value)


def make_mem(
    system: float, pid: int = 200, name: str = "hog", mem_percent: float = 10.0
) -> MemSample:
    """Create a MemSample for testing; system is the system-wide used percent."""
    return MemSample(name=name, pid=pid, mem_percent=mem_percent, system_used_percent=system)


def make_disk(used: float, mount: str = "/", fs: str = "/dev/sda1") -> DiskSample:
    """Create a DiskSample for testing."""
    return DiskSample(filesystem=fs, mount_point=mount, used_percent=used)


def io_script(
    read_deltas: list[int], write_deltas: list[int] | None = None
) -> list[tuple[int, int]]:
    """Cumulative counter readings for an I/O detector window.

    The detector reads a pid once while selecting candidates, then twice per
    tick (start and end). The returned list lines up with that call order so
    that tick i sees exactly read_deltas[i] / write_deltas[i].
    """
    write_deltas = write_deltas or [0] * len(read_deltas)
    r = w = 0
    script = [(r, w)]
    for dr, dw in zip(read_deltas, write_deltas):
        script.append((r, w))
        r, w = r + dr, w + dw
        script.append((r, w))
    return script


def make_report(**overrides) -> DiagnosticReport:
    """Create a DiagnosticReport with a detected CPU offender and an errored I/O worker."""
    timeline = TimelineRecorder()
    timeline.append(TimelineSample(timestamp=1.0, cpu=make_cpu(50), mem=make_mem(70)))
    fields = dict(
        outcomes={
            ResourceKind.CPU: DetectionOutcome(ResourceKind.CPU, "detected", make_cpu(50), 3, 5),
            ResourceKind.MEM: DetectionOutcome(ResourceKind.MEM, "absent", hits=1, ticks=5),
            ResourceKind.DISK: DetectionOutcome(ResourceKind.DISK, "absent", ticks=5),
            ResourceKind.IO: DetectionOutcome(
                ResourceKind.IO, "errored", error="PermissionError: denied"
            ),
        },
        summary=timeline.summary(),
        cpu_offenders=[OffenderRow(name="busy", pid=100, sum=50.0, avg=50.0, max=50.0)],
        mem_offenders=[],
        timeline=timeline.samples,
        meta=RunMeta(generated_at=1700000000.0, hostname="box", duration=5.0, interval=1.0),
        explanations={ResourceKind.CPU: "busy is busy"},
    )
    fields.update(overrides)
    return DiagnosticReport(**fields)


class FakeProvider:
    """Scripted SnapshotProvider.

    Each resource script is consumed one entry per call and the last entry
    repeats once the script runs out. I/O counter scripts work the same way
    per pid. Calls can come from executor threads, so counters are locked.
    fork() hands back the same instance so every worker reads one script.
    """

    def __init__(
        self,
        cpu: list | None = None,
        mem: list | None = None,
        disk: list | None = None,
        io: dict[int, list] | None = None,
        names: dict[int, str] | None = None,
        pids: set[int] | None = None,
        fail: dict[str, Exception] | None = None,
    ) -> None:
        self.scripts = {
            ResourceKind.CPU: cpu or [None],
            ResourceKind.MEM: mem or [None],
            ResourceKind.DISK: disk or [None],
        }
        self.io = io or {}
        self.names = names or {}
        self.pids = set(pids) if pids is not None else set(self.io)
        self.fail = fail or {}
        self.calls: dict = defaultdict(int)
        self.exclude_pids: list = []
        self.name_lookups: list[int] = []
        self.forks = 0
        self._lock = threading.Lock()

    def _next(self, key, script: list):
        with self._lock:
            index = self.calls[key]
            self.calls[key] += 1
        return script[min(index, len(script) - 1)]

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail:
            raise self.fail[op]

    def top_sample(self, kind: ResourceKind, exclude_pid: int | None = None):
        self._maybe_fail(kind.value)
        if kind is ResourceKind.IO:
            raise ValueError("I/O has no single-snapshot sample")
        with self._lock:
            self.exclude_pids.append((kind, exclude_pid))
        return self._next(kind, self.scripts[kind])

    def io_counters(self, pid: int) -> tuple[int, int] | None:
        self._maybe_fail("io_counters")
        script = self.io.get(pid)
        if script is None:
            return None
        return self._next(("io", pid), script)

    def all_pids(self) -> set[int]:
        self._maybe_fail("all_pids")
        return set(self.pids)

    def process_name(self, pid: int) -> str | None:
        with self._lock:
            self.name_lookups.append(pid)
        return self.names.get(pid, f"proc{pid}")

    def fork(self) -> "FakeProvider":
        with self._lock:
            self.forks += 1
        return self


@pytest.fixture
def fast_config() -> Config:
    """Config with zero interval so runs finish instantly."""
    config = Config()
    config.run.interval = 0.0
    config.run.duration = 5.0
    for window in (config.windows.cpu, config.windows.mem, config.windows.disk, config.windows.io):
        window.samples = 5
        window.min_hits = 2
    return config


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir so config and log paths stay out of the real home."""
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path
