"""Renderers for a DiagnosticReport: Rich console, JSON text and a standalone HTML page."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from why_linux.formatting import (
    format_percent,
    format_process,
    format_rate,
    format_timestamp,
)
from why_linux.offenders import OffenderRow
from why_linux.report import DiagnosticReport, ReportWriteError
from why_linux.samples import CpuSample, DiskSample, IoSample, MemSample, ResourceKind

_TITLES = {
    ResourceKind.CPU: "CPU",
    ResourceKind.MEM: "Memory",
    ResourceKind.DISK: "Disk",
    ResourceKind.IO: "I/O",
}


def describe_sample(sample: CpuSample | MemSample | DiskSample | IoSample) -> str:
    """One-line description of a sustained offender."""
    if isinstance(sample, CpuSample):
        return f"{format_process(sample.name, sample.pid)} at {format_percent(sample.cpu_percent)}"
    if isinstance(sample, MemSample):
        return (
            f"system memory {format_percent(sample.system_used_percent)} used, "
            f"largest is {format_process(sample.name, sample.pid)} "
            f"({format_percent(sample.mem_percent)})"
        )
    if isinstance(sample, DiskSample):
        return (
            f"{sample.mount_point} ({sample.filesystem}) "
            f"{format_percent(sample.used_percent)} full"
        )
    return (
        f"{format_process(sample.name, sample.pid)} "
        f"reading {format_rate(sample.read_bytes_per_sec)}, "
        f"writing {format_rate(sample.write_bytes_per_sec)}"
    )


def _offender_table(title: str, rows: list[OffenderRow]) -> Table:
    table = Table(title=title, title_justify="left", expand=False)
    table.add_column("Name")
    table.add_column("PID", justify="right")
    table.add_column("Sum", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Max", justify="right")
    for row in rows:
        table.add_row(
            row.name,
            str(row.pid),
            f"{row.sum:.1f}",
            format_percent(row.avg),
            format_percent(row.max),
        )
    return table


def render_console(report: DiagnosticReport, console: Console) -> None:
    """Print the human-readable summary."""
    console.print(Text("Why is my Linux slow?", style="bold"))
    console.print()

    for kind in ResourceKind:
        outcome = report.outcomes.get(kind)
        title = _TITLES[kind]
        if outcome is None or outcome.status == "absent":
            console.print(f"[green]✓[/] [bold]{title}[/]: looks normal")
        elif outcome.status == "errored":
            error_msg = escape(outcome.error or "unknown error")
            console.print(f"[yellow]?[/] [bold]{title}[/]: not checked ({error_msg})")
        else:
            console.print(
                f"[bold red]▲[/] [bold]{title}[/]: {escape(describe_sample(outcome.sample))} "
                f"[dim]({outcome.hits}/{outcome.ticks} ticks)[/]"
            )
            explanation = report.explanations.get(kind)
            if explanation:
                for line in explanation.splitlines():
                    console.print(f"    [dim]{escape(line)}[/]")

    summary = report.summary
    console.print()
    stats = Table(title="Summary", title_justify="left")
    stats.add_column("Resource")
    stats.add_column("Avg", justify="right")
    stats.add_column("Max", justify="right")
    for label, stat in (
        ("CPU (top process)", summary.cpu),
        ("Memory (top process)", summary.mem),
        ("Memory (system)", summary.mem_system),
        ("Disk (fullest mount)", summary.disk),
    ):
        stats.add_row(label, format_percent(stat.avg), format_percent(stat.max))
    console.print(stats)

    if report.cpu_offenders:
        console.print(_offender_table("Top CPU offenders", report.cpu_offenders))
    if report.mem_offenders:
        console.print(_offender_table("Top memory offenders", report.mem_offenders))


def render_json(report: DiagnosticReport) -> str:
    """The report document as indented JSON text."""
    return report.to_json(indent=2)


def _template_env() -> Environment:
    templates_path = Path(__file__).resolve().parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(templates_path)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["percent"] = format_percent
    return env


def render_html(report: DiagnosticReport) -> str:
    """Render the standalone HTML page as a string."""
    template = _template_env().get_template("report.html.j2")
    doc = report.to_dict()
    timeline = report.timeline
    return template.render(
        generated_at=format_timestamp(report.meta.generated_at),
        meta=report.meta,
        findings=[
            {
                "title": _TITLES[kind],
                "status": outcome.status,
                "text": describe_sample(outcome.sample) if outcome.sample else None,
                "hits": outcome.hits,
                "ticks": outcome.ticks,
                "error": outcome.error,
                "explanation": report.explanations.get(kind),
            }
            for kind in ResourceKind
            if (outcome := report.outcomes.get(kind)) is not None
        ],
        summary=doc["summary"],
        series={
            "cpu": [t.cpu.cpu_percent if t.cpu else 0.0 for t in timeline],
            "mem": [t.mem.mem_percent if t.mem else 0.0 for t in timeline],
            "disk": [t.disk.used_percent if t.disk else 0.0 for t in timeline],
        },
        cpu_offenders=report.cpu_offenders,
        mem_offenders=report.mem_offenders,
        raw_json=report.to_json(indent=2),
    )


def write_html_report(report: DiagnosticReport, path: Path) -> Path:
    """Write the HTML report to path.

    Raises:
        ReportWriteError: the file or its directory could not be created.
    """
    path = Path(path)
    rendered = render_html(report)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(rendered, encoding="utf-8")
    except OSError as e:
        raise ReportWriteError(path, e) from e
    return path
