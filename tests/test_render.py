"""Tests for console, JSON and HTML renderers."""

import json
from pathlib import Path

import pytest
from conftest import make_report
from rich.console import Console

from why_linux.detector import DetectionOutcome
from why_linux.render import (
    describe_sample,
    render_console,
    render_html,
    render_json,
    write_html_report,
)
from why_linux.report import ReportWriteError
from why_linux.samples import CpuSample, DiskSample, IoSample, MemSample, ResourceKind


def console_text(report) -> str:
    console = Console(record=True, width=120)
    render_console(report, console)
    return console.export_text()


class TestConsole:
    def test_detected_resource_with_explanation(self):
        text = console_text(make_report())
        assert "busy (PID 100) at 50.0%" in text
        assert "busy is busy" in text

    def test_absent_resource_looks_normal(self):
        text = console_text(make_report())
        assert "Memory: looks normal" in text

    def test_errored_resource_not_checked(self):
        text = console_text(make_report())
        assert "not checked (PermissionError: denied)" in text

    def test_offender_table(self):
        text = console_text(make_report())
        assert "Top CPU offenders" in text
        assert "Top memory offenders" not in text


def test_describe_samples():
    mem = MemSample(name="java", pid=3, mem_percent=40.0, system_used_percent=91.3)
    assert describe_sample(mem) == (
        "system memory 91.3% used, largest is java (PID 3) (40.0%)"
    )
    disk = DiskSample(filesystem="/dev/nvme0n1p2", mount_point="/home", used_percent=97.0)
    assert describe_sample(disk) == "/home (/dev/nvme0n1p2) 97.0% full"
    io = IoSample(pid=9, name="dd", read_bytes_per_sec=0, write_bytes_per_sec=2048)
    assert describe_sample(io) == "dd (PID 9) reading 0 B/s, writing 2.0 KB/s"


def test_render_json_matches_document():
    report = make_report()
    assert json.loads(render_json(report)) == json.loads(report.to_json())


class TestHtml:
    def test_contains_sections(self):
        html = render_html(make_report())
        assert "<!doctype html>" in html
        assert "Top CPU offenders" in html
        assert "spark-cpu" in html
        assert "busy (PID 100) at 50.0%" in html

    def test_escapes_process_names(self):
        outcome = DetectionOutcome(
            ResourceKind.CPU,
            "detected",
            sample=CpuSample(name="<script>alert(1)</script>", pid=1, cpu_percent=99.0),
            hits=3,
            ticks=5,
        )
        report = make_report(outcomes={**make_report().outcomes, ResourceKind.CPU: outcome})

        html = render_html(report)

        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html

    def test_write_creates_parent_dirs(self, tmp_path: Path):
        path = tmp_path / "out" / "report.html"
        written = write_html_report(make_report(), path)
        assert written == path
        assert "Why is my Linux slow?" in path.read_text(encoding="utf-8")

    def test_write_failure_wrapped(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(ReportWriteError) as exc_info:
            write_html_report(make_report(), blocker / "report.html")

        assert exc_info.value.path == blocker / "report.html"
        assert isinstance(exc_info.value.cause, OSError)
