"""Tests for shutdown coordination."""

import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from psi_monitor.config import Config
from psi_monitor.registrar import ThresholdRegistrar
from psi_monitor.shutdown import RunState, ShutdownCoordinator, ShutdownState
from psi_monitor.source import Domain, build_sources


@pytest.fixture
def sources(config: Config):
    """Registered sources on the fake pressure directory."""
    built = build_sources(config)
    ThresholdRegistrar().register_all(built)
    yield built
    for source in built:
        source.close()


def test_run_state_initial():
    """Run flag starts True."""
    assert RunState().running is True


def test_coordinator_initial():
    """Coordinator starts RUNNING with no signals."""
    coordinator = ShutdownCoordinator()
    assert coordinator.state is ShutdownState.RUNNING
    assert coordinator.running is True
    assert coordinator.signals == []


def test_request_only_flips_flag(sources):
    """A termination request touches the flag, not the handles."""
    coordinator = ShutdownCoordinator()
    coordinator.request(signal.SIGINT)

    assert coordinator.running is False
    assert coordinator.state is ShutdownState.RUNNING
    assert coordinator.signals == ["SIGINT"]
    assert all(s.is_open for s in sources)


def test_handle_signal_records_name():
    """The signal.signal() handler posts a request."""
    coordinator = ShutdownCoordinator()
    coordinator.handle_signal(signal.SIGTERM, None)
    coordinator.handle_signal(signal.SIGTERM, None)
    assert coordinator.running is False
    assert coordinator.signals == ["SIGTERM", "SIGTERM"]


def test_drain_closes_in_domain_order_after_each_window(sources, recording_sleep):
    """Each handle closes after its window, CPU then IO then MEMORY."""
    recording_sleep.sources = sources
    coordinator = ShutdownCoordinator(sleep=recording_sleep)
    flags_at_sleep = []
    recording_sleep.hooks.append(lambda: flags_at_sleep.append(coordinator.running))

    assert coordinator.drain(reversed(sources)) is True

    assert recording_sleep.calls == [0.5, 1.0, 0.75]
    assert recording_sleep.open_at_call == [
        [Domain.CPU, Domain.IO, Domain.MEMORY],
        [Domain.IO, Domain.MEMORY],
        [Domain.MEMORY],
    ]
    assert flags_at_sleep == [False, False, False]
    assert not any(s.is_open for s in sources)
    assert coordinator.state is ShutdownState.STOPPED


def test_drain_state_transitions(sources, recording_sleep):
    """RUNNING -> DRAINING while closing -> STOPPED afterwards."""
    coordinator = ShutdownCoordinator(sleep=recording_sleep)
    states = []
    recording_sleep.hooks.append(lambda: states.append(coordinator.state))

    coordinator.drain(sources)

    assert states == [ShutdownState.DRAINING] * 3
    assert coordinator.state is ShutdownState.STOPPED


def test_second_request_during_drain_is_harmless(sources, recording_sleep):
    """A signal mid-drain neither restarts the drain nor double-closes."""
    coordinator = ShutdownCoordinator(sleep=recording_sleep)
    nested = []

    def second_signal():
        coordinator.handle_signal(signal.SIGINT, None)
        nested.append(coordinator.drain(sources))

    recording_sleep.hooks.append(second_signal)

    with patch("psi_monitor.source.os.close", wraps=os.close) as close:
        assert coordinator.drain(sources) is True

    assert nested == [False, False, False]
    assert len(recording_sleep.calls) == 3
    assert close.call_count == 3
    assert coordinator.state is ShutdownState.STOPPED


def test_drain_after_stop_is_noop(sources, recording_sleep):
    """Draining twice never sleeps or closes again."""
    coordinator = ShutdownCoordinator(sleep=recording_sleep)
    coordinator.drain(sources)
    recording_sleep.calls.clear()

    assert coordinator.drain(sources) is False
    assert recording_sleep.calls == []


def test_drain_tolerates_already_closed_handle(sources, recording_sleep):
    """Closing an already-closed source is benign."""
    sources[1].close()
    coordinator = ShutdownCoordinator(sleep=recording_sleep)

    assert coordinator.drain(sources) is True
    assert not any(s.is_open for s in sources)


def test_abort_closes_without_waiting(sources, recording_sleep):
    """Fatal-path release skips the window waits."""
    coordinator = ShutdownCoordinator(sleep=recording_sleep)
    coordinator.abort(sources)

    assert recording_sleep.calls == []
    assert not any(s.is_open for s in sources)
    assert coordinator.running is False
    assert coordinator.state is ShutdownState.STOPPED


def test_drain_uses_configured_windows(tmp_path: Path, recording_sleep):
    """Pauses follow each domain's tracking window."""
    for name in ("cpu", "io", "memory"):
        (tmp_path / name).write_text("some\n")
    config = Config()
    config.pressure.dir = str(tmp_path)
    config.io.window_ms = 10_000
    built = build_sources(config)

    ShutdownCoordinator(sleep=recording_sleep).drain(built)

    assert recording_sleep.calls == [0.5, 10.0, 0.75]
