"""Run flag and ordered release of pressure handles on shutdown.

State machine: RUNNING -> DRAINING -> STOPPED. A termination request only
flips the run flag; the drain itself runs on the main control flow once the
blocking wait returns. Draining waits one tracking window per domain before
closing its handle, so an accounting window already in flight settles before
the handle disappears.
"""

import signal
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from types import FrameType

import structlog

from psi_monitor import logging as console
from psi_monitor.source import DOMAIN_ORDER, PressureSource

log = structlog.get_logger()


class ShutdownState(Enum):
    """Lifecycle of the shutdown coordinator."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class RunState:
    """Process run flag. Starts True and goes False exactly once."""

    running: bool = True


def _domain_order(source: PressureSource) -> int:
    return DOMAIN_ORDER.index(source.domain)


class ShutdownCoordinator:
    """Owns the run flag and the release protocol for pressure handles."""

    def __init__(self, sleep: Callable[[float], None] = time.sleep) -> None:
        self.run_state = RunState()
        self.state = ShutdownState.RUNNING
        self.signals: list[str] = []
        self._sleep = sleep

    @property
    def running(self) -> bool:
        return self.run_state.running

    def request(self, signum: int | None = None) -> None:
        """Post a termination request.

        Safe to call from a signal handler: records the signal and flips the
        run flag, nothing else. Repeated requests are harmless.
        """
        if signum is not None:
            self.signals.append(signal.Signals(signum).name)
        self.run_state.running = False

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """signal.signal() compatible handler."""
        self.request(signum)

    def drain(self, sources: Iterable[PressureSource]) -> bool:
        """Release every handle in CPU, IO, MEMORY order, one window apart.

        Returns:
            True if this call performed the drain, False if a drain had
            already started (handles are never closed twice).
        """
        if self.state is not ShutdownState.RUNNING:
            log.info("shutdown_drain_ignored", state=self.state.value)
            return False

        self.run_state.running = False
        self.state = ShutdownState.DRAINING
        ordered = sorted(sources, key=_domain_order)
        console.draining()
        log.info("shutdown_draining", signals=self.signals, handles=len(ordered))

        for source in ordered:
            console.closing_handle(source.domain.value, str(source.path), source.window_ms)
            self._sleep(source.window_ms / 1000)
            closed = source.close()
            log.info(
                "handle_closed",
                domain=source.domain.value,
                path=str(source.path),
                waited_ms=source.window_ms,
                was_open=closed,
            )

        self.state = ShutdownState.STOPPED
        console.monitor_stopped()
        log.info("shutdown_complete")
        return True

    def abort(self, sources: Iterable[PressureSource]) -> None:
        """Close every handle immediately after a fatal error. No drain wait."""
        self.run_state.running = False
        for source in sorted(sources, key=_domain_order):
            source.close()
        self.state = ShutdownState.STOPPED
