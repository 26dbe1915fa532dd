"""Clock and timer scheduling for writing sessions.

The session controller never touches ``time`` or ``threading`` directly; it
receives a Clock and a Scheduler so tests can drive time deterministically.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

log = logging.getLogger("freewrite.scheduler")


class Clock(ABC):
    """Monotonic time source in seconds."""

    @abstractmethod
    def now(self) -> float:
        pass


class MonotonicClock(Clock):
    def now(self) -> float:
        return time.monotonic()


class TimerHandle(ABC):
    """A single owned timer that can be cancelled."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class Scheduler(ABC):
    """Schedules one-shot and repeating callbacks."""

    @abstractmethod
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_sec."""
        pass

    @abstractmethod
    def call_every(self, interval_sec: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every interval_sec until cancelled."""
        pass


class _ThreadTimer(TimerHandle):
    """Timer running its callback on a daemon thread."""

    def __init__(self, interval_sec: float, callback: Callable[[], None], repeat: bool):
        self._interval = interval_sec
        self._callback = callback
        self._repeat = repeat
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._callback()
            except Exception as e:
                log.error(f"Timer callback failed: {e}")
            if not self._repeat:
                self._stop_event.set()

    def cancel(self) -> None:
        self._stop_event.set()

    @property
    def active(self) -> bool:
        return not self._stop_event.is_set()


class ThreadingScheduler(Scheduler):
    """Scheduler backed by lightweight daemon threads."""

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ThreadTimer(delay_sec, callback, repeat=False)
        timer.start()
        return timer

    def call_every(self, interval_sec: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ThreadTimer(interval_sec, callback, repeat=True)
        timer.start()
        return timer


__all__ = [
    "Clock",
    "MonotonicClock",
    "Scheduler",
    "ThreadingScheduler",
    "TimerHandle",
]
