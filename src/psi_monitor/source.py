"""Pressure sources, one per monitored resource domain.

Each source wraps a kernel pressure file (/proc/pressure/cpu, io, memory),
its distress threshold, and the non-blocking read/write handle the trigger is
registered on. The handle is opened once during registration and closed once
during shutdown; nothing else shares it.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from psi_monitor.config import Config
from psi_monitor.errors import PressureOpenError, PressureWriteError
from psi_monitor.formatting import format_descriptor

log = structlog.get_logger()


class Domain(Enum):
    """Monitored resource domain. Values are the pressure file names."""

    CPU = "cpu"
    IO = "io"
    MEMORY = "memory"


# Fixed processing order: registration, report tie-break and shutdown
DOMAIN_ORDER = (Domain.CPU, Domain.IO, Domain.MEMORY)


@dataclass(frozen=True)
class ContentRead:
    """Result of a bounded read of a pressure file."""

    text: str
    truncated: bool = False


@dataclass
class PressureSource:
    """One kernel pressure file and its registered distress trigger."""

    domain: Domain
    path: Path
    trigger_ms: int
    window_ms: int
    fd: int | None = None
    event_count: int = 0

    @property
    def descriptor(self) -> str:
        """Trigger descriptor, e.g. "some 50000 500000" for CPU."""
        return format_descriptor(self.trigger_ms, self.window_ms)

    @property
    def is_open(self) -> bool:
        return self.fd is not None

    def open(self) -> int:
        """Open the pressure file for non-blocking read/write.

        Raises:
            PressureOpenError: If the file can't be opened.
            RuntimeError: If the handle is already open.
        """
        if self.fd is not None:
            raise RuntimeError(f"{self.domain.value} handle already open")
        try:
            self.fd = os.open(self.path, os.O_RDWR | os.O_NONBLOCK)
        except OSError as e:
            raise PressureOpenError(
                f"Error opening pressure file {self.path}: {e.strerror}",
                domain=self.domain.value,
            ) from e
        log.debug("pressure_opened", domain=self.domain.value, path=str(self.path), fd=self.fd)
        return self.fd

    def write_descriptor(self) -> int:
        """Write the NUL-terminated trigger descriptor to the open handle.

        Returns:
            Number of bytes written.

        Raises:
            PressureWriteError: On a write error or a short write.
        """
        if self.fd is None:
            raise RuntimeError(f"{self.domain.value} handle is not open")
        data = self.descriptor.encode("ascii") + b"\0"
        try:
            written = os.write(self.fd, data)
        except OSError as e:
            raise PressureWriteError(
                f"Error writing pressure file {self.path}: {e.strerror}",
                domain=self.domain.value,
            ) from e
        if written != len(data):
            raise PressureWriteError(
                f"Short write to pressure file {self.path}: {written}/{len(data)} bytes",
                domain=self.domain.value,
            )
        return written

    def read_content(self, limit: int = 128) -> ContentRead:
        """Read the current file content through a separate read-only handle.

        Reads at most `limit` bytes. One extra byte is requested so that
        content longer than `limit` is reported as truncated.

        Raises:
            OSError: If the file can't be opened or read.
        """
        fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        try:
            data = os.read(fd, limit + 1)
        finally:
            os.close(fd)
        truncated = len(data) > limit
        text = data[:limit].decode("ascii", errors="replace")
        return ContentRead(text=text, truncated=truncated)

    def record_event(self) -> int:
        """Count one distress event and return the new count (first event is 1)."""
        self.event_count += 1
        return self.event_count

    def close(self) -> bool:
        """Close the handle. Closing an already-closed source is a no-op.

        Returns:
            True if a handle was closed, False if there was none.
        """
        if self.fd is None:
            return False
        fd, self.fd = self.fd, None
        os.close(fd)
        log.debug("pressure_closed", domain=self.domain.value, path=str(self.path))
        return True


def build_sources(config: Config) -> list[PressureSource]:
    """Create the three pressure sources in CPU, IO, MEMORY order."""
    sources = []
    for domain in DOMAIN_ORDER:
        threshold = config.domain(domain.value)
        sources.append(
            PressureSource(
                domain=domain,
                path=config.pressure_dir / domain.value,
                trigger_ms=threshold.trigger_ms,
                window_ms=threshold.window_ms,
            )
        )
    return sources
