"""Tests for CLI commands."""

import io
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import FakeProvider, io_script, make_cpu, make_disk, make_mem
from rich.console import Console

from why_linux.cli import main
from why_linux.config import Config

FAST = ["--interval", "0.01", "--duration", "0.03"]


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def quiet_console():
    """Send status lines to a buffer so stdout holds only command output."""
    buffer = io.StringIO()
    with patch("why_linux.logging._console", Console(file=buffer, highlight=False)):
        yield buffer


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(
        cpu=[make_cpu(75.0, pid=300, name="firefox")],
        mem=[make_mem(50.0)],
        disk=[make_disk(40.0)],
        io={7: io_script([0] * 5)},
    )


def invoke_run(runner: CliRunner, provider: FakeProvider, args: list[str]):
    with patch("why_linux.provider.PsutilSnapshotProvider", return_value=provider):
        return runner.invoke(main, ["run", *FAST, *args])


class TestRunCommand:
    def test_json_output(self, runner, home, quiet_console, provider):
        result = invoke_run(runner, provider, ["--json"])

        assert result.exit_code == 0, result.output
        doc = json.loads(result.output)
        assert doc["cpu"]["name"] == "firefox"
        assert doc["mem"] is None
        assert doc["workers"]["io"]["status"] == "absent"
        assert "Firefox" in doc["explanations"]["cpu"]
        assert len(doc["timeline"]) == 3

    def test_console_output(self, runner, home, quiet_console, provider):
        result = invoke_run(runner, provider, [])

        assert result.exit_code == 0, result.output
        assert "Why is my Linux slow?" in result.output
        assert "firefox (PID 300)" in result.output
        assert "Memory: looks normal" in result.output

    def test_top_option_limits_rows(self, runner, home, quiet_console, provider):
        result = invoke_run(runner, provider, ["--json", "--top", "1"])

        assert result.exit_code == 0, result.output
        assert len(json.loads(result.output)["offenders"]["cpu"]) == 1

    def test_status_lines_go_to_console_helpers(self, runner, home, quiet_console, provider):
        invoke_run(runner, provider, ["--json"])

        status = quiet_console.getvalue()
        assert "Sampling for" in status
        assert "sustained problem" in status

    def test_html_written(self, runner, home, quiet_console, provider, tmp_path: Path):
        out = tmp_path / "report.html"

        result = invoke_run(runner, provider, ["--json", "--html", str(out)])

        assert result.exit_code == 0, result.output
        assert out.exists()
        assert "Report written" in quiet_console.getvalue()

    def test_html_failure_exits_1_after_output(
        self, runner, home, quiet_console, provider, tmp_path: Path
    ):
        blocker = tmp_path / "file"
        blocker.write_text("")

        result = invoke_run(runner, provider, ["--json", "--html", str(blocker / "r.html")])

        assert result.exit_code == 1
        assert json.loads(result.output)["cpu"]["pid"] == 300
        assert "Cannot write report" in quiet_console.getvalue()

    def test_invalid_config_exits_2(self, runner, home, quiet_console, provider, tmp_path: Path):
        bad = tmp_path / "bad.toml"
        bad.write_text("[run]\ninterval = -1\n")

        result = invoke_run(runner, provider, ["--config", str(bad)])

        assert result.exit_code == 2
        assert "Invalid config" in quiet_console.getvalue()

    def test_rejects_zero_interval(self, runner, home):
        result = runner.invoke(main, ["run", "--interval", "0"])
        assert result.exit_code == 2

    def test_writes_json_log(self, runner, home, quiet_console, provider):
        invoke_run(runner, provider, ["--json"])

        log_path = Config().log_path
        assert log_path.exists()
        events = [json.loads(line)["event"] for line in log_path.read_text().splitlines()]
        assert "run_started" in events
        assert "run_finished" in events


def test_explain_command(runner):
    result = runner.invoke(main, ["explain", "kworker/2:0"])
    assert result.exit_code == 0
    assert "kernel thread" in result.output


class TestConfigCommands:
    def test_show_defaults(self, runner, home):
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "Exists: False" in result.output
        assert "[thresholds]" in result.output
        assert "cpu = 20.0" in result.output
        assert "cpu = 5 ticks, 3 hits" in result.output

    def test_reset_writes_defaults(self, runner, home):
        result = runner.invoke(main, ["config", "reset", "--yes"])

        assert result.exit_code == 0
        path = home / ".config" / "why-linux" / "config.toml"
        assert path.exists()
        assert Config.load(path) == Config()

    def test_edit_creates_file_and_opens_editor(self, runner, home, quiet_console, monkeypatch):
        monkeypatch.setenv("EDITOR", "vi")
        path = home / ".config" / "why-linux" / "config.toml"

        with patch("subprocess.run") as mock_run:
            result = runner.invoke(main, ["config", "edit"])

        assert result.exit_code == 0
        assert path.exists()
        mock_run.assert_called_once_with(["vi", str(path)])

    def test_show_invalid_config_exits_2(self, runner, home, quiet_console):
        path = home / ".config" / "why-linux" / "config.toml"
        path.parent.mkdir(parents=True)
        path.write_text("[report]\ntop_n = 0\n")

        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 2
