"""Writing session lifecycle: start detection, inactivity timeout, completion."""

import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.scheduler import Clock, MonotonicClock, Scheduler, ThreadingScheduler, TimerHandle
from core.session_config import SessionConfig
from core.session_stats import KeyEvent, KeyEventType, SessionStats, SessionStatsTracker

log = logging.getLogger("freewrite.writing_session")


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    TERMINATED = "terminated"


class EndReason(str, Enum):
    INACTIVITY = "inactivity"
    EXPLICIT = "explicit"
    ERROR = "error"


class InvalidState(RuntimeError):
    """Raised when input reaches a controller that cannot accept it."""

    pass


class WritingSession(BaseModel):
    """A finished writing session, frozen at termination."""

    content: str = Field(..., description="Everything written, in order")
    started_at: datetime = Field(..., description="Wall-clock time of the first keystroke")
    ended_at: datetime = Field(..., description="Wall-clock time of termination")
    duration_seconds: float = Field(..., ge=0, description="Elapsed time start to termination")
    word_count: int = Field(..., ge=0)
    words_per_minute: int = Field(..., ge=0)
    backspace_count: int = Field(default=0, ge=0)
    blocked_edit_count: int = Field(default=0, ge=0)
    enter_count: int = Field(default=0, ge=0)
    arrow_key_count: int = Field(default=0, ge=0)
    is_qualifying: bool = Field(..., description="Duration reached the qualifying threshold")
    end_reason: EndReason = Field(default=EndReason.INACTIVITY)

    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_completion_payload(self) -> dict[str, Any]:
        """Fields handed to the persistence/generation collaborator."""
        return {
            "content": self.content,
            "durationSeconds": self.duration_seconds,
            "wordCount": self.word_count,
            "wordsPerMinute": self.words_per_minute,
            "backspaceCount": self.backspace_count,
            "enterCount": self.enter_count,
            "arrowKeyCount": self.arrow_key_count,
            "isQualifying": self.is_qualifying,
        }


class InactivityTimer:
    """Single owned one-shot timer that is restarted on every keystroke.

    Each start() takes a fresh token from the owner's counter; an expiry
    carrying any other token belongs to a timer that has since been restarted
    or cancelled.
    """

    def __init__(self, scheduler: Scheduler, clock: Clock, timeout_sec: float,
                 on_expire: Callable[[int], None], tokens: Optional[Iterator[int]] = None):
        self._scheduler = scheduler
        self._clock = clock
        self.timeout_sec = timeout_sec
        self._on_expire = on_expire
        self._tokens = tokens if tokens is not None else itertools.count(1)
        self._handle: Optional[TimerHandle] = None
        self.generation = 0
        self.deadline: Optional[float] = None

    def start(self) -> None:
        self.cancel()
        self.generation = next(self._tokens)
        token = self.generation
        self.deadline = self._clock.now() + self.timeout_sec
        self._handle = self._scheduler.call_later(
            self.timeout_sec, lambda: self._on_expire(token)
        )

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def is_current(self, token: int) -> bool:
        return self._handle is not None and token == self.generation

    def remaining(self) -> float:
        if self.deadline is None:
            return self.timeout_sec
        return max(0.0, self.deadline - self._clock.now())


class WritingSessionController:
    """Owns the state machine of one writing session.

    Idle until the first typed character, then Active: every accepted key
    restarts the inactivity timer and a sampler refreshes the live view.
    The session terminates after a full inactivity window without input or
    on end_session(), whichever comes first. Terminated is final until
    reset().
    """

    def __init__(
        self,
        on_complete: Optional[Callable[[WritingSession], None]] = None,
        config: Optional[SessionConfig] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        wall_clock: Optional[Callable[[], datetime]] = None,
        on_tick: Optional[Callable[[SessionStats, float], None]] = None,
    ):
        """Initialize controller.

        Args:
            on_complete: Sink receiving the finished session (non-blank content only)
            config: Session timing configuration
            clock: Monotonic clock used for all durations
            scheduler: Timer scheduler for the inactivity timer and sampler
            wall_clock: Returns the current aware datetime, used for started_at
            on_tick: Observer called by the sampler with (stats, time_remaining)
        """
        self.config = config or SessionConfig()
        self.on_complete = on_complete
        self.on_tick = on_tick
        self._clock = clock or MonotonicClock()
        self._scheduler = scheduler or ThreadingScheduler()
        self._wall_clock = wall_clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        # Outlives reset() so a timer from a previous session never matches
        self._timer_tokens = itertools.count(1)
        self._init_session_state()

    def _init_session_state(self) -> None:
        self._state = SessionState.IDLE
        self._tracker = SessionStatsTracker()
        self._inactivity = InactivityTimer(
            self._scheduler, self._clock,
            self.config.inactivity_timeout_sec, self._on_inactivity_expired,
            tokens=self._timer_tokens,
        )
        self._sampler: Optional[TimerHandle] = None
        self._start_monotonic: Optional[float] = None
        self._started_at: Optional[datetime] = None
        self._stats = SessionStats()
        self._time_remaining = self.config.inactivity_timeout_sec
        self._session: Optional[WritingSession] = None
        self._pending_emit = False

    # ========== Live view ==========

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def content(self) -> str:
        return self._tracker.content

    @property
    def stats(self) -> SessionStats:
        with self._lock:
            if self._state == SessionState.ACTIVE:
                return self._tracker.sample(self._elapsed())
            return self._stats

    @property
    def time_remaining(self) -> float:
        """Seconds left before the inactivity timeout ends the session."""
        with self._lock:
            if self._state == SessionState.ACTIVE:
                return self._inactivity.remaining()
            return self._time_remaining

    @property
    def is_danger(self) -> bool:
        return (
            self._state == SessionState.ACTIVE
            and self.time_remaining < self.config.danger_threshold_sec
        )

    @property
    def is_qualifying_pace(self) -> bool:
        """Whether the session has already run long enough to qualify."""
        return self.stats.duration_seconds >= self.config.qualifying_threshold_sec

    @property
    def session(self) -> Optional[WritingSession]:
        """The finished session, once terminated with content."""
        return self._session

    # ========== Input ==========

    def handle_key(self, event: KeyEvent) -> SessionStats:
        """Feed one key event into the session.

        Raises:
            InvalidState: If the session has already terminated
        """
        with self._lock:
            if self._state == SessionState.TERMINATED:
                log.warning(f"Rejected {event.type.value} event: session already terminated")
                raise InvalidState("Writing session has terminated")

            if self._state == SessionState.IDLE:
                if not (event.type == KeyEventType.CHAR and event.payload):
                    log.debug(f"Ignoring {event.type.value} event before session start")
                    return self._stats
                self._start()

            self._tracker.apply(event)
            try:
                if self._sampler is None:
                    self._sampler = self._scheduler.call_every(
                        self.config.sample_interval_sec, self._on_sample
                    )
                self._inactivity.start()
            except Exception as e:
                log.error(f"Timer scheduling failed, ending session: {e}")
                self._terminate_locked(EndReason.ERROR)
            else:
                self._stats = self._tracker.sample(self._elapsed())
            stats = self._stats
        self._emit()
        return stats

    def _start(self) -> None:
        self._start_monotonic = self._clock.now()
        self._started_at = self._wall_clock()
        self._state = SessionState.ACTIVE
        log.info("Writing session started")

    def end_session(self) -> Optional[WritingSession]:
        """Explicitly stop the session.

        No-op when idle or already terminated.

        Returns:
            The finished session, or None if there was none to emit
        """
        with self._lock:
            if self._state == SessionState.IDLE:
                return None
            if self._state == SessionState.TERMINATED:
                log.debug("end_session() on terminated session ignored")
                return self._session
            self._terminate_locked(EndReason.EXPLICIT)
        self._emit()
        return self._session

    def reset(self) -> None:
        """Prepare the controller for a new session.

        Raises:
            InvalidState: If a session is still active
        """
        with self._lock:
            if self._state == SessionState.ACTIVE:
                raise InvalidState("Cannot reset an active writing session")
            self._init_session_state()

    # ========== Timers ==========

    def _elapsed(self) -> float:
        if self._start_monotonic is None:
            return 0.0
        return max(0.0, self._clock.now() - self._start_monotonic)

    def _on_sample(self) -> None:
        with self._lock:
            if self._state != SessionState.ACTIVE:
                return
            try:
                self._stats = self._tracker.sample(self._elapsed())
                self._time_remaining = self._inactivity.remaining()
            except Exception as e:
                log.error(f"Duration sampler failed, ending session: {e}")
                self._terminate_locked(EndReason.ERROR)
            else:
                if self.on_tick:
                    try:
                        self.on_tick(self._stats, self._time_remaining)
                    except Exception as e:
                        log.error(f"Error in tick observer: {e}")
        self._emit()

    def _on_inactivity_expired(self, token: int) -> None:
        with self._lock:
            if self._state != SessionState.ACTIVE or not self._inactivity.is_current(token):
                return
            self._terminate_locked(EndReason.INACTIVITY)
        self._emit()

    # ========== Termination ==========

    def _terminate_locked(self, reason: EndReason) -> None:
        """Move to TERMINATED. Caller holds the lock and emits afterwards."""
        if self._state != SessionState.ACTIVE:
            return

        if reason == EndReason.INACTIVITY and self._inactivity.deadline is not None:
            end_monotonic = self._inactivity.deadline
        else:
            end_monotonic = self._clock.now()

        self._inactivity.cancel()
        if self._sampler is not None:
            self._sampler.cancel()
            self._sampler = None
        self._state = SessionState.TERMINATED

        duration = max(0.0, end_monotonic - self._start_monotonic)
        self._stats = self._tracker.sample(duration)
        self._time_remaining = (
            0.0 if reason == EndReason.INACTIVITY else self._inactivity.remaining()
        )

        content = self._tracker.content
        if not content.strip():
            log.info(f"Abandoned writing session discarded ({reason.value})")
            self._session = None
            return

        is_qualifying = duration >= self.config.qualifying_threshold_sec
        self._session = WritingSession(
            content=content,
            started_at=self._started_at,
            ended_at=self._started_at + timedelta(seconds=duration),
            duration_seconds=duration,
            word_count=self._stats.word_count,
            words_per_minute=self._stats.words_per_minute,
            backspace_count=self._stats.backspace_count,
            blocked_edit_count=self._stats.blocked_edit_count,
            enter_count=self._stats.enter_count,
            arrow_key_count=self._stats.arrow_key_count,
            is_qualifying=is_qualifying,
            end_reason=reason,
        )
        self._pending_emit = True
        log.info(
            f"Writing session ended ({reason.value}): {duration:.1f}s, "
            f"{self._stats.word_count} words, qualifying={is_qualifying}"
        )

    def _emit(self) -> None:
        """Hand the finished session to the sink, at most once."""
        with self._lock:
            if not self._pending_emit:
                return
            self._pending_emit = False
            session = self._session
        if session is not None and self.on_complete:
            try:
                self.on_complete(session)
            except Exception as e:
                log.error(f"Error in session complete callback: {e}")


__all__ = [
    "EndReason",
    "InactivityTimer",
    "InvalidState",
    "SessionState",
    "WritingSession",
    "WritingSessionController",
]
