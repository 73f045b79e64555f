"""Distress trigger registration.

Writing "some <trigger_us> <window_us>" to a pressure file asks the kernel to
signal the handle with POLLPRI whenever tasks stall for at least trigger_us
within a window_us span. Tracking starts as soon as the write succeeds.
"""

from collections.abc import Iterable

import structlog

from psi_monitor import logging as console
from psi_monitor.source import ContentRead, PressureSource

log = structlog.get_logger()


class ThresholdRegistrar:
    """Registers distress triggers on pressure sources."""

    def __init__(self, content_limit: int = 128) -> None:
        self.content_limit = content_limit

    def _diagnostic_read(self, source: PressureSource) -> ContentRead | None:
        """Read current content for the registration echo. Best-effort."""
        try:
            return source.read_content(self.content_limit)
        except OSError as e:
            log.warning(
                "pressure_content_unavailable",
                domain=source.domain.value,
                path=str(source.path),
                error=str(e),
            )
            console.content_unavailable(str(source.path), str(e))
            return None

    def register(self, source: PressureSource) -> None:
        """Open a source's handle and write its trigger descriptor.

        Raises:
            PressureOpenError: If the pressure file can't be opened.
            PressureWriteError: If the descriptor write fails or is short.
        """
        source.open()
        content = self._diagnostic_read(source)
        console.source_registered(
            str(source.path), source.descriptor, content.text if content else ""
        )
        source.write_descriptor()
        log.info(
            "pressure_registered",
            domain=source.domain.value,
            path=str(source.path),
            descriptor=source.descriptor,
            trigger_ms=source.trigger_ms,
            window_ms=source.window_ms,
        )

    def register_all(self, sources: Iterable[PressureSource]) -> None:
        """Register every source in order. The first failure is fatal."""
        for source in sources:
            self.register(source)
