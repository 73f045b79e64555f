"""Monitor driver: kernel check, trigger registration, wait loop, shutdown."""

import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import click
import structlog

from psi_monitor import logging as console
from psi_monitor.config import Config
from psi_monitor.errors import (
    ExitCode,
    KernelUnsupportedError,
    PsiError,
    SourceGoneError,
    UnrecognizedEventError,
)
from psi_monitor.formatting import format_timestamp
from psi_monitor.registrar import ThresholdRegistrar
from psi_monitor.reporter import EventReporter
from psi_monitor.shutdown import ShutdownCoordinator, ShutdownState
from psi_monitor.source import Domain, build_sources
from psi_monitor.waiter import EventKind, MultiplexedWaiter, SourceEvent

log = structlog.get_logger()

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def verify_kernel_support(pressure_dir: Path) -> Path:
    """Check that the kernel exposes pressure files.

    The CPU file stands in for the whole interface.

    Raises:
        KernelUnsupportedError: If the CPU pressure file does not exist.
    """
    cpu_path = pressure_dir / Domain.CPU.value
    if not cpu_path.exists():
        raise KernelUnsupportedError(
            f"{cpu_path} not found; to monitor with poll() in Linux, "
            "uname -r must report a kernel version of 5.2+"
        )
    return cpu_path


class Monitor:
    """Wires sources, registrar, waiter, reporter and shutdown together.

    All mutable state (sources, run flag, counters) lives on this object;
    the signal handler only reaches it through the shutdown coordinator.
    """

    def __init__(
        self,
        config: Config,
        *,
        waiter_factory: Callable[..., MultiplexedWaiter] = MultiplexedWaiter,
        sleep: Callable[[float], None] = time.sleep,
        emit: Callable[[str], None] = click.echo,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.sources = build_sources(config)
        self.coordinator = ShutdownCoordinator(sleep=sleep)
        self.registrar = ThresholdRegistrar(content_limit=config.system.content_buffer_size)
        self.reporter = EventReporter(
            content_limit=config.system.content_buffer_size,
            timestamp_format=config.system.timestamp_format,
            emit=emit,
            clock=clock,
        )
        self._waiter_factory = waiter_factory
        self._clock = clock

    def run(self) -> None:
        """Run until a termination request has been drained.

        Raises:
            PsiError: On any fatal condition. Handles may still be open;
                call close() to release them.
        """
        pressure_dir = self.config.pressure_dir
        verify_kernel_support(pressure_dir)
        started_at = format_timestamp(self.config.system.timestamp_format, self._clock())
        console.monitor_started(started_at)
        log.info("monitor_starting", pressure_dir=str(pressure_dir), started_at=started_at)

        self.registrar.register_all(self.sources)

        waiter = self._waiter_factory(self.sources)
        try:
            with self._signal_handlers(waiter.wakeup_fd):
                console.polling()
                self._event_loop(waiter)
                for name in self.coordinator.signals:
                    console.signal_received(name)
                log.info("monitor_stopping", signals=self.coordinator.signals)
                self.coordinator.drain(self.sources)
        finally:
            waiter.close()

    def execute(self) -> ExitCode:
        """Run and map the outcome to a process exit code.

        This is the only place fatal errors become exit codes.
        """
        try:
            self.run()
        except PsiError as e:
            log.error(
                "monitor_failed",
                error=str(e),
                error_type=type(e).__name__,
                domain=e.domain,
                exit_code=int(e.exit_code),
            )
            console.monitor_failed(str(e), int(e.exit_code))
            return e.exit_code
        finally:
            self.close()
        return ExitCode.OK

    def close(self) -> None:
        """Release any handles left open by a failed run."""
        if self.coordinator.state is not ShutdownState.STOPPED:
            self.coordinator.abort(self.sources)

    @contextmanager
    def _signal_handlers(self, wakeup_fd: int) -> Iterator[None]:
        """Route SIGINT/SIGTERM to the coordinator and wake the poll."""
        previous_wakeup = signal.set_wakeup_fd(wakeup_fd, warn_on_full_buffer=False)
        previous = {
            sig: signal.signal(sig, self.coordinator.handle_signal) for sig in TERMINATION_SIGNALS
        }
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            signal.set_wakeup_fd(previous_wakeup)

    def _event_loop(self, waiter: MultiplexedWaiter) -> None:
        """Wait and dispatch until the run flag drops."""
        while self.coordinator.running:
            wake = waiter.wait()
            if not self.coordinator.running:
                break
            for event in wake.events:
                if not self.coordinator.running:
                    break
                self._dispatch(event)

    def _dispatch(self, event: SourceEvent) -> None:
        source = event.source
        if event.kind is EventKind.DISTRESS:
            self.reporter.report(source)
        elif event.kind is EventKind.ERROR:
            raise SourceGoneError(
                f"poll() event source is gone: {source.path}", domain=source.domain.value
            )
        else:
            raise UnrecognizedEventError(
                f"Unrecognized event on {source.path}: 0x{event.revents:x}",
                domain=source.domain.value,
                revents=event.revents,
            )


def run_monitor(config: Config, **kwargs) -> ExitCode:
    """Run a monitor built from config and return its exit code.

    Call logging.configure() first to send structured logs to the log file;
    otherwise they go to stderr. Keyword arguments are passed to Monitor.
    """
    console.configure_stderr_fallback()
    return Monitor(config, **kwargs).execute()
