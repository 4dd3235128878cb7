"""The structured document a diagnostic run produces.

This is the only thing handed to renderers. Its to_dict() is the JSON schema:

    {
      "cpu": CpuSample | null, "mem": ..., "disk": ..., "io": ...,
      "summary": {"cpu": {avg, max}, "mem": {avg, max, system_avg, system_max},
                  "disk": {avg, max}},
      "offenders": {"cpu": [OffenderRow], "mem": [OffenderRow]},
      "timeline": [TimelineSample],
      "workers": {"cpu": {status, hits, ticks, error}, ...},
      "meta": {generated_at, hostname, duration, interval}
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from why_linux.detector import DetectionOutcome
from why_linux.offenders import OffenderRow
from why_linux.samples import ResourceKind, ResourceSample, TimelineSample
from why_linux.timeline import RunSummary


class ReportWriteError(Exception):
    """A report artifact could not be written."""

    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"Cannot write report to {path}: {cause}")
        self.path = path
        self.cause = cause


@dataclass(frozen=True)
class RunMeta:
    """When and how the run was sampled."""

    generated_at: float
    hostname: str
    duration: float
    interval: float

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at,
            "hostname": self.hostname,
            "duration": self.duration,
            "interval": self.interval,
        }


@dataclass(frozen=True)
class DiagnosticReport:
    """Everything one run found."""

    outcomes: dict[ResourceKind, DetectionOutcome]
    summary: RunSummary
    cpu_offenders: list[OffenderRow]
    mem_offenders: list[OffenderRow]
    timeline: list[TimelineSample]
    meta: RunMeta
    explanations: dict[ResourceKind, str] = field(default_factory=dict)

    def detected(self, kind: ResourceKind) -> ResourceSample | None:
        """The sustained offender for a resource, or None (absent or errored)."""
        outcome = self.outcomes.get(kind)
        return outcome.sample if outcome else None

    @property
    def errored(self) -> list[ResourceKind]:
        return [k for k, o in self.outcomes.items() if o.status == "errored"]

    def to_dict(self) -> dict:
        """Serialize to the report document schema."""
        doc: dict = {}
        for kind in ResourceKind:
            sample = self.detected(kind)
            doc[kind.value] = sample.to_dict() if sample else None
        doc["summary"] = self.summary.to_dict()
        doc["offenders"] = {
            "cpu": [row.to_dict() for row in self.cpu_offenders],
            "mem": [row.to_dict() for row in self.mem_offenders],
        }
        doc["timeline"] = [t.to_dict() for t in self.timeline]
        doc["workers"] = {kind.value: o.to_dict() for kind, o in self.outcomes.items()}
        doc["explanations"] = {kind.value: text for kind, text in self.explanations.items()}
        doc["meta"] = self.meta.to_dict()
        return doc

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)
