"""Multiplexed wait across all pressure handles.

The kernel only notifies pressure triggers through POLLPRI, so a single
poll() with no timeout over the three handles is the suspension point of the
whole monitor. A self-pipe is registered alongside them; signal.set_wakeup_fd()
writes to it so a termination request wakes the wait instead of being
swallowed by the automatic EINTR retry.
"""

import os
import select
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from psi_monitor.errors import PollError
from psi_monitor.source import PressureSource

log = structlog.get_logger()


class EventKind(Enum):
    """Classification of one handle's poll result."""

    NONE = "none"
    DISTRESS = "distress"
    ERROR = "error"
    UNRECOGNIZED = "unrecognized"


def classify(revents: int) -> EventKind:
    """Classify poll revents for a pressure handle.

    POLLERR means the pressure file is gone and takes precedence over POLLPRI.
    """
    if revents == 0:
        return EventKind.NONE
    if revents & select.POLLERR:
        return EventKind.ERROR
    if revents & select.POLLPRI:
        return EventKind.DISTRESS
    return EventKind.UNRECOGNIZED


@dataclass(frozen=True)
class SourceEvent:
    """A signalled pressure handle."""

    source: PressureSource
    kind: EventKind
    revents: int


@dataclass(frozen=True)
class WakeResult:
    """Outcome of one wait.

    events: signalled sources in domain order (sources with no event omitted)
    interrupted: the wakeup pipe fired, i.e. a signal arrived
    """

    events: tuple[SourceEvent, ...] = ()
    interrupted: bool = False


class MultiplexedWaiter:
    """Blocks until any registered pressure handle (or the wakeup pipe) is ready."""

    def __init__(
        self,
        sources: Iterable[PressureSource],
        poller_factory: Callable = select.poll,
    ) -> None:
        self.sources = list(sources)
        for source in self.sources:
            if source.fd is None:
                raise RuntimeError(f"{source.domain.value} source is not registered")

        self._poller = poller_factory()
        for source in self.sources:
            self._poller.register(source.fd, select.POLLPRI)

        self._wake_r, self._wake_w = os.pipe()
        os.set_blocking(self._wake_r, False)
        os.set_blocking(self._wake_w, False)
        self._closed = False
        self._poller.register(self._wake_r, select.POLLIN)

    @property
    def wakeup_fd(self) -> int:
        """Write end of the wakeup pipe, for signal.set_wakeup_fd()."""
        return self._wake_w

    def wait(self) -> WakeResult:
        """Block with no timeout and report which handles are ready.

        Raises:
            PollError: If poll() itself fails.
        """
        try:
            ready = self._poller.poll()
        except OSError as e:
            raise PollError(f"Error using poll(): {e}") from e

        revents_by_fd = dict(ready)
        interrupted = self._wake_r in revents_by_fd
        if interrupted:
            self._drain_wakeup()

        events = []
        for source in self.sources:
            revents = revents_by_fd.get(source.fd, 0) if source.fd is not None else 0
            kind = classify(revents)
            if kind is not EventKind.NONE:
                events.append(SourceEvent(source=source, kind=kind, revents=revents))

        log.debug(
            "poll_woke",
            ready=len(ready),
            events=[(e.source.domain.value, e.kind.value) for e in events],
            interrupted=interrupted,
        )
        return WakeResult(events=tuple(events), interrupted=interrupted)

    def _drain_wakeup(self) -> None:
        """Empty the wakeup pipe so the next wait blocks again."""
        try:
            while os.read(self._wake_r, 512):
                pass
        except BlockingIOError:
            pass  # Pipe empty

    def close(self) -> None:
        """Close the wakeup pipe. Pressure handles belong to their sources."""
        if self._closed:
            return
        self._closed = True
        os.close(self._wake_r)
        os.close(self._wake_w)
