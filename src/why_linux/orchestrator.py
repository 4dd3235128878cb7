"""Runs one diagnostic: four detectors plus the timeline loop, then assembles the report."""

from __future__ import annotations

import asyncio
import os
import socket
import time
from dataclasses import dataclass, field

import structlog

from why_linux.candidates import IoDetector
from why_linux.config import Config
from why_linux.detector import (
    Detection,
    DetectionOutcome,
    WindowSpec,
    build_detectors,
    run_blocking,
)
from why_linux.offenders import OffenderAggregator
from why_linux.provider import SnapshotProvider
from why_linux.report import DiagnosticReport, RunMeta
from why_linux.samples import CpuSample, DiskSample, MemSample, ResourceKind, TimelineSample
from why_linux.timeline import TimelineRecorder

log = structlog.get_logger()


@dataclass
class RunState:
    """State owned by the timeline loop. Nothing else touches it, so no locking."""

    timeline: TimelineRecorder = field(default_factory=TimelineRecorder)
    cpu_offenders: OffenderAggregator = field(default_factory=OffenderAggregator)
    mem_offenders: OffenderAggregator = field(default_factory=OffenderAggregator)


class Orchestrator:
    """Coordinates one diagnostic run.

    The four detectors run as independent tasks and the timeline loop runs
    alongside them. The timeline does not synchronise its sampling instants
    with the detectors, so the top CPU process in the timeline and the
    sustained CPU offender can come from snapshots taken moments apart.

    Every worker samples through its own fork of the provider; the timeline
    loop keeps the original. Timeline timestamps are wall-clock time at the
    start of the run advanced by the monotonic clock, so a wall-clock step
    during the run can't reorder them.
    """

    def __init__(self, config: Config, provider: SnapshotProvider) -> None:
        self.config = config
        self.provider = provider
        self.state = RunState()

        run = config.run
        self.interval = run.interval
        self.ticks = run.timeline_ticks
        self.exclude_pid = os.getpid() if run.exclude_self else None
        self._clock_origin = (time.time(), time.monotonic())

        windows = config.effective_windows()
        self.windows = {
            ResourceKind.CPU: WindowSpec.from_config(windows.cpu),
            ResourceKind.MEM: WindowSpec.from_config(windows.mem),
            ResourceKind.DISK: WindowSpec.from_config(windows.disk),
            ResourceKind.IO: WindowSpec.from_config(windows.io),
        }

    def _build_workers(self) -> dict[ResourceKind, object]:
        thresholds = self.config.thresholds
        workers: dict[ResourceKind, object] = dict(
            build_detectors(
                self.provider,
                thresholds,
                self.windows,
                self.interval,
                exclude_pid=self.exclude_pid,
            )
        )
        workers[ResourceKind.IO] = IoDetector(
            self.provider.fork(),
            read_threshold=thresholds.io_read,
            write_threshold=thresholds.io_write,
            window=self.windows[ResourceKind.IO],
            interval=self.interval,
            top_k=self.config.run.io_top_k,
            exclude_pid=self.exclude_pid,
        )
        return workers

    def _now(self) -> float:
        """Wall-clock time that never goes backwards within the run."""
        wall, mono = self._clock_origin
        return wall + (time.monotonic() - mono)

    def _snapshot(self) -> TimelineSample:
        """Take one tick's top cpu/mem/disk samples (blocking; runs in executor)."""
        cpu = self.provider.top_sample(ResourceKind.CPU, self.exclude_pid)
        mem = self.provider.top_sample(ResourceKind.MEM, self.exclude_pid)
        disk = self.provider.top_sample(ResourceKind.DISK)
        return TimelineSample(
            timestamp=self._now(),
            cpu=cpu if isinstance(cpu, CpuSample) else None,
            mem=mem if isinstance(mem, MemSample) else None,
            disk=disk if isinstance(disk, DiskSample) else None,
        )

    async def _timeline_loop(self) -> None:
        """Capture one snapshot per tick and feed the offender aggregators."""
        state = self.state
        for tick in range(self.ticks):
            if tick > 0:
                await asyncio.sleep(self.interval)

            sample = await run_blocking(self._snapshot)
            state.timeline.append(sample)
            if sample.cpu is not None:
                state.cpu_offenders.record(sample.cpu.pid, sample.cpu.name, sample.cpu.cpu_percent)
            if sample.mem is not None:
                state.mem_offenders.record(sample.mem.pid, sample.mem.name, sample.mem.mem_percent)

            log.debug(
                "timeline_tick",
                tick=tick,
                cpu=sample.cpu.cpu_percent if sample.cpu else None,
                mem=sample.mem.mem_percent if sample.mem else None,
                disk=sample.disk.used_percent if sample.disk else None,
            )

    def _collect(self, kind: ResourceKind, result: object) -> DetectionOutcome:
        """Turn a joined worker result (or its exception) into an outcome."""
        if isinstance(result, Detection):
            outcome = DetectionOutcome.from_detection(result)
            log.info(
                "detector_finished",
                kind=kind.value,
                status=outcome.status,
                hits=outcome.hits,
                ticks=outcome.ticks,
            )
            return outcome

        exc = result if isinstance(result, BaseException) else TypeError(repr(result))
        log.warning(
            "detector_failed",
            kind=kind.value,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return DetectionOutcome.from_error(kind, exc)

    async def run(self) -> DiagnosticReport:
        """Run every detector and the timeline to completion.

        A detector that raises is recorded as "errored"; the run itself never
        fails because one worker did.
        """
        self._clock_origin = (time.time(), time.monotonic())
        started = self._clock_origin[0]
        log.info(
            "run_started",
            ticks=self.ticks,
            interval=self.interval,
            windows={k.value: (w.samples, w.min_hits) for k, w in self.windows.items()},
            exclude_pid=self.exclude_pid,
        )

        workers = self._build_workers()
        tasks = {
            kind: asyncio.create_task(worker.run(), name=f"detector-{kind.value}")
            for kind, worker in workers.items()
        }

        try:
            await self._timeline_loop()
        finally:
            results = await asyncio.gather(*tasks.values(), return_exceptions=True)

        outcomes = {
            kind: self._collect(kind, result) for kind, result in zip(tasks, results)
        }

        state = self.state
        top_n = self.config.report.top_n
        report = DiagnosticReport(
            outcomes=outcomes,
            summary=state.timeline.summary(),
            cpu_offenders=state.cpu_offenders.top(top_n),
            mem_offenders=state.mem_offenders.top(top_n),
            timeline=state.timeline.samples,
            meta=RunMeta(
                generated_at=started,
                hostname=socket.gethostname(),
                duration=self.config.run.duration,
                interval=self.interval,
            ),
        )
        log.info(
            "run_finished",
            elapsed=round(self._now() - started, 2),
            detected=[k.value for k, o in outcomes.items() if o.status == "detected"],
            errored=[k.value for k, o in outcomes.items() if o.status == "errored"],
            timeline_ticks=len(state.timeline),
        )
        return report


async def run_diagnostic(config: Config, provider: SnapshotProvider) -> DiagnosticReport:
    """Convenience wrapper: build an orchestrator and run it once."""
    return await Orchestrator(config, provider).run()
