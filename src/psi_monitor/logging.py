"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (monitor_started, source_registered, draining, etc.)
5. Structlog configuration (configure, configure_stderr_fallback)

Console output uses Rich markup and goes to stderr, leaving stdout to the
event lines. JSON file output via structlog remains separate
(machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

from psi_monitor.formatting import format_clock

if TYPE_CHECKING:
    from psi_monitor.config import Config

_console = Console(highlight=False, stderr=True)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    SIGNAL = "⚡"
    REGISTER = "[cyan]⬤[/]"
    CLOSE = "[dim]○[/]"


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
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{format_clock()}[/] {lvl}{icon_part} {msg}")


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


def monitor_started(timestamp: str) -> None:
    """Log kernel support confirmed and monitoring about to start."""
    info(f"Polling events starting at [cyan]{timestamp}[/]", Icon.OK)


def source_registered(path: str, descriptor: str, content: str) -> None:
    """Log a trigger registration with the file's content before registering."""
    info(f"[cyan]{path}[/] distress_event: [bold]{descriptor}[/]", Icon.REGISTER)
    for line in content.splitlines():
        info(f"[dim]  {escape(line)}[/]")


def content_unavailable(path: str, error_msg: str) -> None:
    """Log failed diagnostic read."""
    warn(f"Could not read [cyan]{path}[/]: {error_msg}")


def polling() -> None:
    """Log wait loop entered."""
    info("Polling for events...", Icon.WAIT)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def draining() -> None:
    """Log shutdown drain started."""
    info("Please wait until all three handles are closed", Icon.WAIT)


def closing_handle(domain: str, path: str, window_ms: int) -> None:
    """Log one handle about to be released."""
    info(f"Closing [cyan]{domain}[/] handle for {path} [dim](after {window_ms}ms)[/]", Icon.CLOSE)


def monitor_stopped() -> None:
    """Log shutdown complete."""
    info("All handles now closed, exiting", Icon.OK)


def monitor_failed(error_msg: str, exit_code: int) -> None:
    """Log fatal error."""
    error(f"{escape(error_msg)} [dim](exit {exit_code})[/]", Icon.FAIL)


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


def configure(config: Config) -> None:
    """Configure structlog to write JSON Lines to the rotating log file.

    Console output is handled by Rich (see log functions above); structlog
    only writes to the JSON file for machine parsing. Timestamps use local
    time to match event lines.

    Args:
        config: Application config with paths
    """
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("monitor"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("monitor"),
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


def configure_stderr_fallback() -> None:
    """Keep structlog's default printer off stdout unless configure() ran.

    stdout carries only event lines, so unconfigured log records go to stderr.
    """
    if not structlog.is_configured():
        structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
