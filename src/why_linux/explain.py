"""Plain-language explanations for common offenders."""

from dataclasses import replace
from types import MappingProxyType

from why_linux.report import DiagnosticReport
from why_linux.samples import ResourceKind, ResourceSample

DEFAULT_EXPLANATION = (
    "Sustained high CPU usage usually means a process is busy or stuck.\n"
    "If this happens while idle, it may indicate a bug."
)

_CHROMIUM = (
    "Chromium-based browsers may use high CPU due to:\n"
    "• many open tabs\n"
    "• background extensions\n"
    "• GPU acceleration issues"
)

EXPLANATIONS = MappingProxyType(
    {
        "firefox": (
            "Firefox CPU usage is often caused by:\n"
            "• heavy or broken tabs\n"
            "• video playback or WebGL\n"
            "• misbehaving extensions\n"
            "• background service workers"
        ),
        "chromium": _CHROMIUM,
        "chrome": _CHROMIUM,
        "kworker": (
            "kworker is a kernel thread.\n"
            "Sustained CPU usage here often indicates:\n"
            "• driver bugs\n"
            "• power management problems\n"
            "• hardware issues"
        ),
        "mem": (
            "Memory pressure slows everything down once the kernel starts\n"
            "reclaiming page cache and swapping. Close or restart the largest\n"
            "process, or check it for a leak."
        ),
        "disk": (
            "A nearly full filesystem can cause:\n"
            "• failed writes and corrupted application state\n"
            "• slow allocation on copy-on-write filesystems\n"
            "• journals and package managers refusing to run"
        ),
        "io": (
            "Heavy disk I/O makes the whole system feel sluggish because\n"
            "other processes wait on the same device. Common causes:\n"
            "• indexers, backups or package updates\n"
            "• swapping under memory pressure\n"
            "• a process logging or writing in a tight loop"
        ),
    }
)


def explain(name: str) -> str:
    """Return the explanation for a process or resource name.

    Kernel worker threads are named like "kworker/3:1H", so they match on the
    prefix before the slash.
    """
    key = name.strip()
    if key in EXPLANATIONS:
        return EXPLANATIONS[key]
    base = key.split("/", 1)[0]
    return EXPLANATIONS.get(base, DEFAULT_EXPLANATION)


def explain_detection(kind: ResourceKind, sample: ResourceSample) -> str:
    """Explanation for a sustained offender: by process name for CPU, by resource otherwise."""
    if kind is ResourceKind.CPU:
        return explain(sample.name)
    return EXPLANATIONS[kind.value]


def annotate(report: DiagnosticReport) -> DiagnosticReport:
    """Return a copy of the report with an explanation for every detected resource."""
    explanations = {}
    for kind in ResourceKind:
        sample = report.detected(kind)
        if sample is not None:
            explanations[kind] = explain_detection(kind, sample)
    return replace(report, explanations=explanations)
