"""Formatting utilities for consistent output across console and HTML reports."""

from datetime import datetime

_RATE_UNITS = ("B/s", "KB/s", "MB/s", "GB/s")


def format_percent(value: float | None) -> str:
    """Format a percentage with one decimal, or "-" when missing."""
    if value is None:
        return "-"
    return f"{value:.1f}%"


def format_rate(bytes_per_sec: int | float) -> str:
    """Format a byte rate for humans.

    Returns:
        "512 B/s", "4.0 KB/s", "12.3 MB/s", ... (1024-based)
    """
    value = float(bytes_per_sec)
    for unit in _RATE_UNITS[:-1]:
        if abs(value) < 1024:
            if unit == "B/s":
                return f"{value:.0f} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {_RATE_UNITS[-1]}"


def format_timestamp(ts: float) -> str:
    """Format a Unix timestamp as local "YYYY-MM-DD HH:MM:SS"."""
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def format_process(name: str, pid: int) -> str:
    return f"{name} (PID {pid})"
