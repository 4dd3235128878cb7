"""CLI commands for why-linux."""

import sys
from pathlib import Path

import click


def _load_config(path: Path | None):
    """Load config or exit with status 2 if the file is invalid."""
    from why_linux import logging as wl_log
    from why_linux.config import Config

    try:
        return Config.load(path)
    except ValueError as e:
        wl_log.config_invalid(str(e))
        sys.exit(2)


@click.group()
@click.version_option(package_name="why-linux")
def main() -> None:
    """Find out why this Linux machine feels slow right now."""
    pass


@main.command()
@click.option(
    "--duration",
    "-d",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to sample for",
)
@click.option(
    "--interval",
    "-i",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between ticks",
)
@click.option("--unified", is_flag=True, help="Size every window from duration")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option(
    "--html",
    "html_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write an HTML report to this path",
)
@click.option("--top", "-n", type=click.IntRange(min=1), default=None, help="Offender rows")
@click.option("--no-exclude-self", is_flag=True, help="Allow blaming why-linux itself")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of the default",
)
@click.option("--verbose", "-v", is_flag=True, help="Record per-tick debug events in the log")
def run(
    duration: float | None,
    interval: float | None,
    unified: bool,
    as_json: bool,
    html_path: Path | None,
    top: int | None,
    no_exclude_self: bool,
    config_path: Path | None,
    verbose: bool,
) -> None:
    """Sample the system once and report sustained problems."""
    import asyncio

    from rich.console import Console

    from why_linux import logging as wl_log
    from why_linux.explain import annotate
    from why_linux.orchestrator import Orchestrator
    from why_linux.provider import PsutilSnapshotProvider
    from why_linux.render import render_console, render_json, write_html_report
    from why_linux.report import ReportWriteError

    config = _load_config(config_path)
    if duration is not None:
        config.run.duration = duration
    if interval is not None:
        config.run.interval = interval
    if unified:
        config.run.unified = True
    if top is not None:
        config.report.top_n = top
    if no_exclude_self:
        config.run.exclude_self = False

    wl_log.configure(config, verbose=verbose)

    wl_log.run_started(config.run.duration, config.run.interval, config.run.timeline_ticks)
    report = asyncio.run(Orchestrator(config, PsutilSnapshotProvider()).run())
    report = annotate(report)

    for kind in report.errored:
        wl_log.detector_failed(kind.value, report.outcomes[kind].error or "unknown error")

    if as_json:
        click.echo(render_json(report))
    else:
        render_console(report, Console())

    detected = sum(1 for o in report.outcomes.values() if o.status == "detected")
    wl_log.run_finished(detected)

    if html_path is not None:
        try:
            written = write_html_report(report, html_path)
        except ReportWriteError as e:
            wl_log.report_failed(str(e))
            sys.exit(1)
        wl_log.report_written(str(written))


@main.command()
@click.argument("name")
def explain(name: str) -> None:
    """Explain what a process or resource name usually means."""
    from why_linux.explain import explain as explain_name

    click.echo(explain_name(name))


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from dataclasses import fields

    cfg = _load_config(None)

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo(f"Log file: {cfg.log_path}")

    for section in ("thresholds", "run", "report", "system"):
        click.echo()
        click.echo(f"[{section}]")
        obj = getattr(cfg, section)
        for f in fields(obj):
            click.echo(f"  {f.name} = {getattr(obj, f.name)}")

    windows = cfg.effective_windows()
    click.echo()
    click.echo("[windows]" + ("  # unified" if cfg.run.unified else ""))
    for name in ("cpu", "mem", "disk", "io"):
        w = getattr(windows, name)
        click.echo(f"  {name} = {w.samples} ticks, {w.min_hits} hits")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from why_linux import logging as wl_log

    cfg = _load_config(None)

    if not cfg.config_path.exists():
        cfg.save()
        wl_log.config_created(str(cfg.config_path))

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from why_linux.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")


if __name__ == "__main__":
    main()
