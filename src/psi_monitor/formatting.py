"""Formatting utilities for console and event output."""

from datetime import datetime

LOCAL_FORMAT = "%Y-%m-%d %H:%M:%S"
CLOCK_FORMAT = "%H:%M:%S"


def format_timestamp(fmt: str = "local", now: datetime | None = None) -> str:
    """Format the event timestamp.

    Args:
        fmt: "local" for YYYY-MM-DD HH:MM:SS local time, "epoch" for Unix seconds
        now: Time to format (defaults to datetime.now())

    Raises:
        ValueError: If fmt is not a known format.
    """
    if now is None:
        now = datetime.now()
    if fmt == "local":
        return now.strftime(LOCAL_FORMAT)
    if fmt == "epoch":
        return str(int(now.timestamp()))
    raise ValueError(f"Unknown timestamp format: {fmt!r}")


def format_clock(now: datetime | None = None) -> str:
    """Format the short HH:MM:SS prefix used on console lines."""
    return (now or datetime.now()).strftime(CLOCK_FORMAT)


def format_descriptor(trigger_ms: int, window_ms: int) -> str:
    """Build the trigger descriptor the kernel expects.

    Thresholds are configured in milliseconds; the kernel takes microseconds.
    """
    return f"some {trigger_ms * 1000} {window_ms * 1000}"
