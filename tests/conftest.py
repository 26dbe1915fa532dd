"""Shared test fixtures for freewrite tests."""

import itertools
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.scheduler import Clock, Scheduler, TimerHandle


class FakeClock(Clock):
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class ManualTimer(TimerHandle):
    _seq = itertools.count()

    def __init__(self, due: float, interval, callback):
        self.due = due
        self.interval = interval
        self.callback = callback
        self.seq = next(self._seq)
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class ManualScheduler(Scheduler):
    """Runs due timers in order as the fake clock is advanced."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_sec, callback):
        timer = ManualTimer(self.clock.now() + delay_sec, None, callback)
        self.timers.append(timer)
        return timer

    def call_every(self, interval_sec, callback):
        timer = ManualTimer(self.clock.now() + interval_sec, interval_sec, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.clock.now() + seconds
        while True:
            due = [t for t in self.timers if t.active and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.current = max(self.clock.current, timer.due)
            if timer.interval is None:
                timer.fired = True
            else:
                timer.due += timer.interval
            timer.callback()
        self.clock.current = target
        self.timers = [t for t in self.timers if t.active]

    def active_timers(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.active]


class FailingScheduler(Scheduler):
    """Scheduler whose every request fails, as if the host ran out of threads."""

    def call_later(self, delay_sec, callback):
        raise RuntimeError("can't start new thread")

    def call_every(self, interval_sec, callback):
        raise RuntimeError("can't start new thread")


@pytest.fixture
def temp_db_path():
    """Create a temporary database path and clean up afterwards."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield db_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def wall_clock():
    """Fixed wall-clock time for started_at."""
    return lambda: datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def failing_scheduler():
    return FailingScheduler()
