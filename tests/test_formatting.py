"""Tests for formatting utilities."""

from why_linux.formatting import format_percent, format_process, format_rate


def test_format_percent():
    assert format_percent(12.345) == "12.3%"
    assert format_percent(0) == "0.0%"
    assert format_percent(None) == "-"


def test_format_rate_units():
    assert format_rate(0) == "0 B/s"
    assert format_rate(512) == "512 B/s"
    assert format_rate(1024) == "1.0 KB/s"
    assert format_rate(5 * 1024 * 1024) == "5.0 MB/s"
    assert format_rate(3 * 1024**3) == "3.0 GB/s"


def test_format_process():
    assert format_process("sshd", 22) == "sshd (PID 22)"
