"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (run_started, detector_failed, report_written, etc.)
5. Structlog configuration (configure, get_structlog)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from why_linux.config import Config

# Rich console for human-readable output; stderr keeps --json stdout clean
_console = Console(highlight=False, stderr=True)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    SAVE = "💾"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def run_started(duration: float, interval: float, ticks: int) -> None:
    """Log diagnostic run started."""
    info(
        f"Sampling for [cyan]{duration:g}s[/] "
        f"[dim]({ticks} ticks every {interval:g}s)[/]",
        Icon.WAIT,
    )


def run_finished(detected: int) -> None:
    """Log diagnostic run complete."""
    if detected:
        info(f"Done, [bold]{detected}[/] sustained problem{'s' if detected != 1 else ''}", Icon.OK)
    else:
        info("Done, nothing sustained", Icon.OK)


def detector_failed(kind: str, error_msg: str) -> None:
    """Log a detector worker that crashed."""
    warn(f"[bold]{kind}[/] detector failed: {error_msg}")


def report_written(path: str) -> None:
    """Log HTML report written."""
    info(f"Report written to [cyan]{path}[/]", Icon.SAVE)


def report_failed(error_msg: str) -> None:
    """Log HTML report could not be written."""
    error(error_msg, Icon.FAIL)


def config_invalid(error_msg: str) -> None:
    """Log config file rejected."""
    error(f"Invalid config: {error_msg}", Icon.FAIL)


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, verbose: bool = False) -> None:
    """Configure structlog to write JSON Lines to the rotating log file.

    Console output is handled by the Rich helpers above; structlog only
    writes to the file for machine parsing.

    Args:
        config: Application config with paths
        verbose: Also record debug events (per-tick and acquisition details)
    """
    level = logging.DEBUG if verbose else logging.INFO

    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("why-linux"),
                structlog.processors.format_exc_info,
            ],
        )
    )

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(level)
    stdlib_root.handlers.clear()
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("why-linux"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog() -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance for structured JSON file output."""
    return structlog.get_logger()
