"""Shared test fixtures for psi-monitor."""

import signal
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
import structlog

from psi_monitor.config import Config, PressureConfig
from psi_monitor.monitor import Monitor
from psi_monitor.source import Domain, PressureSource
from psi_monitor.waiter import MultiplexedWaiter

# Real /proc/pressure/cpu content on a 6.x kernel
CPU_CONTENT = (
    "some avg10=1.52 avg60=0.61 avg300=0.14 total=96340123\n"
    "full avg10=0.00 avg60=0.00 avg300=0.00 total=0\n"
)
IO_CONTENT = (
    "some avg10=0.00 avg60=0.08 avg300=0.05 total=12004415\n"
    "full avg10=0.00 avg60=0.07 avg300=0.04 total=11170082\n"
)
MEMORY_CONTENT = (
    "some avg10=0.00 avg60=0.00 avg300=0.00 total=4517\n"
    "full avg10=0.00 avg60=0.00 avg300=0.00 total=3950\n"
)

FIXED_NOW = datetime(2026, 10, 19, 14, 2, 11)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def pressure_dir(tmp_path: Path) -> Path:
    """Directory laid out like /proc/pressure, backed by regular files."""
    directory = tmp_path / "pressure"
    directory.mkdir()
    (directory / "cpu").write_text(CPU_CONTENT)
    (directory / "io").write_text(IO_CONTENT)
    (directory / "memory").write_text(MEMORY_CONTENT)
    return directory


@pytest.fixture
def config(pressure_dir: Path) -> Config:
    """Default config pointed at the fake pressure directory."""
    return Config(pressure=PressureConfig(dir=str(pressure_dir)))


class FakePoll:
    """Stand-in for select.poll() driven by a script of per-domain revents.

    Each script entry is either a {Domain: revents} mapping, translated to
    (fd, revents) pairs for the sources' current handles, or an exception to
    raise. When the script runs out, on_exhausted() is called and an empty
    result is returned.
    """

    def __init__(
        self,
        sources: list[PressureSource],
        script: list,
        on_exhausted: Callable[[], None] | None = None,
    ) -> None:
        self.sources = sources
        self.script = list(script)
        self.on_exhausted = on_exhausted
        self.registered: dict[int, int] = {}
        self.calls = 0

    def register(self, fd: int, mask: int) -> None:
        self.registered[fd] = mask

    def poll(self, timeout=None) -> list[tuple[int, int]]:
        self.calls += 1
        if not self.script:
            if self.on_exhausted is not None:
                self.on_exhausted()
            return []
        entry = self.script.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        by_domain = {s.domain: s for s in self.sources}
        return [(by_domain[domain].fd, revents) for domain, revents in entry.items()]


@pytest.fixture
def make_fake_poll() -> Callable[..., FakePoll]:
    """Factory for FakePoll instances."""
    return FakePoll


class RecordingSleep:
    """Mock clock for the shutdown drain: records requested pauses, never sleeps."""

    def __init__(self, sources: list[PressureSource] | None = None) -> None:
        self.sources = sources or []
        self.calls: list[float] = []
        self.open_at_call: list[list[Domain]] = []
        self.hooks: list[Callable[[], None]] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.open_at_call.append([s.domain for s in self.sources if s.is_open])
        for hook in self.hooks:
            hook()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


class ScriptedRun:
    """A Monitor wired to a FakePoll script, capturing emitted lines."""

    def __init__(self, config: Config, script: list, stop_with: Callable | None = None) -> None:
        self.lines: list[str] = []
        self.sleep = RecordingSleep()
        self.poller: FakePoll | None = None

        def waiter_factory(sources):
            self.poller = FakePoll(sources, script, on_exhausted=stop_with or self._request_stop)
            return MultiplexedWaiter(sources, poller_factory=lambda: self.poller)

        self.monitor = Monitor(
            config,
            waiter_factory=waiter_factory,
            sleep=self.sleep,
            emit=self.lines.append,
            clock=lambda: FIXED_NOW,
        )
        self.sleep.sources = self.monitor.sources

    def _request_stop(self) -> None:
        self.monitor.coordinator.request(signal.SIGTERM)


@pytest.fixture
def scripted_run(config: Config) -> Callable[..., ScriptedRun]:
    """Factory building a ScriptedRun on the fake pressure directory."""

    def factory(script: list, stop_with: Callable | None = None) -> ScriptedRun:
        return ScriptedRun(config, script, stop_with=stop_with)

    return factory
