"""Sustained-condition detection.

A detector watches one resource for N ticks spaced by the sampling interval.
Each tick either qualifies (a "hit") or not. After N ticks the resource is
reported only if at least min_hits ticks qualified, and the reported sample is
always the one from the last qualifying tick.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Generic, Literal, TypeVar

import structlog

from why_linux.config import ThresholdsConfig, WindowConfig
from why_linux.provider import SnapshotProvider
from why_linux.samples import CpuSample, DiskSample, MemSample, ResourceKind, ResourceSample

log = structlog.get_logger()

S = TypeVar("S", CpuSample, MemSample, DiskSample)

OutcomeStatus = Literal["detected", "absent", "errored"]


async def run_blocking(fn: Callable, *args):
    """Run a blocking provider call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args))


@dataclass(frozen=True)
class WindowSpec:
    """N ticks, of which min_hits must qualify. Both clamped to at least 1.

    min_hits > samples is allowed; such a detector simply never fires.
    """

    samples: int
    min_hits: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", max(1, int(self.samples)))
        object.__setattr__(self, "min_hits", max(1, int(self.min_hits)))

    @classmethod
    def from_config(cls, window: WindowConfig) -> WindowSpec:
        return cls(samples=window.samples, min_hits=window.min_hits)


@dataclass(frozen=True)
class Detection:
    """What a finished window observed."""

    kind: ResourceKind
    sample: ResourceSample | None  # Last qualifying sample, only if hits >= min_hits
    hits: int
    ticks: int

    @property
    def detected(self) -> bool:
        return self.sample is not None


@dataclass(frozen=True)
class DetectionOutcome:
    """Final result of one detector worker.

    Distinguishes a worker that ran and saw nothing ("absent") from one that
    crashed ("errored"). Display code treats both as "no offender".
    """

    kind: ResourceKind
    status: OutcomeStatus
    sample: ResourceSample | None = None
    hits: int = 0
    ticks: int = 0
    error: str | None = None

    @classmethod
    def from_detection(cls, detection: Detection) -> DetectionOutcome:
        return cls(
            kind=detection.kind,
            status="detected" if detection.detected else "absent",
            sample=detection.sample,
            hits=detection.hits,
            ticks=detection.ticks,
        )

    @classmethod
    def from_error(cls, kind: ResourceKind, exc: BaseException) -> DetectionOutcome:
        return cls(kind=kind, status="errored", error=f"{type(exc).__name__}: {exc}")

    def to_dict(self) -> dict:
        """Serialize worker status (the sample itself is reported separately)."""
        return {
            "status": self.status,
            "hits": self.hits,
            "ticks": self.ticks,
            "error": self.error,
        }


class SustainedDetector(Generic[S]):
    """Windowed hit counter over a single sample stream.

    Args:
        kind: Resource being watched
        sampler: Blocking callable returning this tick's sample, or None
        predicate: Whether a sample counts as a hit
        window: Tick count and minimum hits
        interval: Seconds between ticks
    """

    def __init__(
        self,
        kind: ResourceKind,
        sampler: Callable[[], S | None],
        predicate: Callable[[S], bool],
        window: WindowSpec,
        interval: float,
    ) -> None:
        self.kind = kind
        self.sampler = sampler
        self.predicate = predicate
        self.window = window
        self.interval = interval

    async def run(self) -> Detection:
        hits = 0
        last_hit: S | None = None

        for tick in range(self.window.samples):
            if tick > 0:
                await asyncio.sleep(self.interval)

            sample = await run_blocking(self.sampler)
            if sample is None:
                # Acquisition failed this tick; not a hit, not an error
                continue
            if self.predicate(sample):
                hits += 1
                last_hit = sample

        detected = last_hit if hits >= self.window.min_hits else None
        log.debug(
            "detector_window_closed",
            kind=self.kind.value,
            hits=hits,
            ticks=self.window.samples,
            min_hits=self.window.min_hits,
            detected=detected is not None,
        )
        return Detection(kind=self.kind, sample=detected, hits=hits, ticks=self.window.samples)


# ─────────────────────────────────────────────────────────────────────────────
# Per-resource detectors
# ─────────────────────────────────────────────────────────────────────────────


def cpu_detector(
    provider: SnapshotProvider,
    threshold: float,
    window: WindowSpec,
    interval: float,
    exclude_pid: int | None = None,
) -> SustainedDetector[CpuSample]:
    """Top process CPU% strictly above threshold."""
    return SustainedDetector(
        ResourceKind.CPU,
        sampler=partial(provider.top_sample, ResourceKind.CPU, exclude_pid),
        predicate=lambda s: s.cpu_percent > threshold,
        window=window,
        interval=interval,
    )


def mem_detector(
    provider: SnapshotProvider,
    threshold: float,
    window: WindowSpec,
    interval: float,
    exclude_pid: int | None = None,
) -> SustainedDetector[MemSample]:
    """System-wide used memory strictly above threshold.

    The top process only rides along as attribution; its own percentage is
    not what is compared.
    """
    return SustainedDetector(
        ResourceKind.MEM,
        sampler=partial(provider.top_sample, ResourceKind.MEM, exclude_pid),
        predicate=lambda s: s.system_used_percent > threshold,
        window=window,
        interval=interval,
    )


def disk_detector(
    provider: SnapshotProvider,
    threshold: float,
    window: WindowSpec,
    interval: float,
) -> SustainedDetector[DiskSample]:
    """Fullest mount used% strictly above threshold."""
    return SustainedDetector(
        ResourceKind.DISK,
        sampler=partial(provider.top_sample, ResourceKind.DISK),
        predicate=lambda s: s.used_percent > threshold,
        window=window,
        interval=interval,
    )


def build_detectors(
    provider: SnapshotProvider,
    thresholds: ThresholdsConfig,
    windows: dict[ResourceKind, WindowSpec],
    interval: float,
    exclude_pid: int | None = None,
) -> dict[ResourceKind, SustainedDetector]:
    """Build the cpu, mem and disk detectors for one run.

    Each detector samples through its own fork of the provider.
    """
    return {
        ResourceKind.CPU: cpu_detector(
            provider.fork(), thresholds.cpu, windows[ResourceKind.CPU], interval, exclude_pid
        ),
        ResourceKind.MEM: mem_detector(
            provider.fork(), thresholds.mem, windows[ResourceKind.MEM], interval, exclude_pid
        ),
        ResourceKind.DISK: disk_detector(
            provider.fork(), thresholds.disk, windows[ResourceKind.DISK], interval
        ),
    }
