"""Event reporting for triggered pressure sources."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import click
import structlog

from psi_monitor.formatting import format_timestamp
from psi_monitor.source import ContentRead, PressureSource

log = structlog.get_logger()


@dataclass(frozen=True)
class EventRecord:
    """One reported distress event."""

    path: str
    count: int
    timestamp: str
    content: str
    truncated: bool = False

    @property
    def line(self) -> str:
        return format_event_line(self.path, self.count, self.timestamp, self.content)


def format_event_line(path: str, count: int, timestamp: str, content: str) -> str:
    """Format an event as "<path> <count> <timestamp> <content>"."""
    return f"{path} {count} {timestamp} {content}"


class EventReporter:
    """Reads a triggered source and emits one timestamped event line.

    Each call handles exactly one source and returns; the wait loop decides
    what to report and in which order.
    """

    def __init__(
        self,
        content_limit: int = 128,
        timestamp_format: str = "local",
        emit: Callable[[str], None] = click.echo,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.content_limit = content_limit
        self.timestamp_format = timestamp_format
        self._emit = emit
        self._clock = clock

    def _read(self, source: PressureSource) -> ContentRead:
        try:
            return source.read_content(self.content_limit)
        except OSError as e:
            # Poll reports a vanished file as POLLERR; a failed read alone
            # still yields a line, with empty content.
            log.warning(
                "pressure_content_unavailable",
                domain=source.domain.value,
                path=str(source.path),
                error=str(e),
            )
            return ContentRead(text="")

    def report(self, source: PressureSource) -> EventRecord:
        """Count, read and emit one distress event for a source."""
        timestamp = format_timestamp(self.timestamp_format, self._clock())
        content = self._read(source)
        record = EventRecord(
            path=str(source.path),
            count=source.record_event(),
            timestamp=timestamp,
            content=content.text.rstrip("\0\n"),
            truncated=content.truncated,
        )
        self._emit(record.line)
        log.info(
            "pressure_event",
            domain=source.domain.value,
            path=record.path,
            count=record.count,
            content=record.content,
            truncated=record.truncated,
        )
        return record
