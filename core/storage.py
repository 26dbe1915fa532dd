"""Storage of finished writing sessions and streak bookkeeping."""

import logging
import threading
import weakref
from datetime import date, datetime, timezone
from typing import Optional

from core.database_adapter import ConcurrentModification, DatabaseAdapter
from core.logical_date import logical_date
from core.models import StoredSession, UserRecord
from core.streak_engine import StreakRecord, StreakStatus, record_session, streak_status
from core.writing_session import WritingSession
from utils.config import AppSettings, UserSettings
from utils.share_id import generate_share_id

log = logging.getLogger("freewrite.storage")


class StreakUpdateFailed(ConcurrentModification):
    """Raised when a session was stored but its streak update kept racing.

    Retry with Storage.apply_to_streak(error.stored_session) instead of
    recording the session again.
    """

    def __init__(self, message: str, stored_session: StoredSession):
        super().__init__(message)
        self.stored_session = stored_session


class Storage:
    """Records finished sessions and keeps each user's streak up to date.

    Streak updates are read-modify-write, so they run inside a per-user lock
    and, for writers outside this process, rely on the adapter's version
    check with a bounded number of retries.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        settings: Optional[AppSettings] = None,
        max_streak_retries: int = 3,
    ):
        """Initialize storage.

        Args:
            adapter: Initialized database adapter
            settings: Application settings supplying default day boundary and timezone
            max_streak_retries: Attempts at saving a streak before giving up

        Raises:
            ValueError: If max_streak_retries is not positive
        """
        if max_streak_retries <= 0:
            raise ValueError("max_streak_retries must be positive")
        self.adapter = adapter
        self.settings = settings or AppSettings()
        self.max_streak_retries = max_streak_retries
        # Entries disappear once no thread holds or waits on the lock
        self._user_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    # ========== User settings ==========

    def get_user_settings(self, user_id: Optional[str]) -> UserSettings:
        """Get a user's logical day preferences, falling back to app defaults."""
        record = self.adapter.get_user(user_id) if user_id else None
        if record is None:
            return UserSettings(
                day_boundary_hour=self.settings.default_day_boundary_hour,
                timezone=self.settings.default_timezone,
            )
        # Stored values are checked by logical_date(), which raises InvalidConfiguration
        return UserSettings.model_construct(
            day_boundary_hour=record.day_boundary_hour, timezone=record.timezone
        )

    def update_user_settings(
        self,
        user_id: str,
        day_boundary_hour: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> UserRecord:
        """Update a user's day boundary and/or timezone.

        Raises:
            ValueError: If a value is invalid (pydantic ValidationError)
        """
        current = self.get_user_settings(user_id)
        updated = UserSettings(
            day_boundary_hour=(
                current.day_boundary_hour if day_boundary_hour is None else day_boundary_hour
            ),
            timezone=current.timezone if timezone is None else timezone,
        )
        record = self.adapter.upsert_user(user_id, updated.day_boundary_hour, updated.timezone)
        log.info(
            f"User {user_id} settings: day boundary {updated.day_boundary_hour}:00, "
            f"timezone {updated.timezone}"
        )
        return record

    # ========== Sessions ==========

    def record_completed_session(
        self,
        user_id: Optional[str],
        session: WritingSession,
        now: Optional[datetime] = None,
        is_public: bool = True,
    ) -> Optional[StoredSession]:
        """Persist a finished session and update the user's streak.

        Args:
            user_id: Owner of the session, None for anonymous writing
            session: Finished session from WritingSessionController
            now: Moment used for the logical date (defaults to now)
            is_public: Whether the session can be looked up by share id

        Returns:
            Stored session, or None if the content was blank

        Raises:
            InvalidConfiguration: If the user's timezone or boundary is invalid;
                nothing is written in that case
            StreakUpdateFailed: If the session was stored but the streak update
                lost every retry
        """
        if not session.content.strip():
            log.debug("Blank session not recorded")
            return None

        now = now or datetime.now(timezone.utc)
        user_settings = self.get_user_settings(user_id)
        day = logical_date(now, user_settings.day_boundary_hour, user_settings.timezone)
        duration = int(session.duration_seconds)

        stored = self.adapter.store_writing_session(
            user_id=user_id,
            content=session.content,
            duration_seconds=duration,
            word_count=session.word_count,
            words_per_minute=session.words_per_minute,
            backspace_count=session.backspace_count,
            enter_count=session.enter_count,
            arrow_key_count=session.arrow_key_count,
            is_qualifying=session.is_qualifying,
            logical_date=day,
            share_id=generate_share_id(),
            is_public=is_public,
            created_at=now,
        )
        log.info(
            f"Stored session {stored.id} ({stored.share_id}) for logical day {day}: "
            f"{duration}s, qualifying={session.is_qualifying}"
        )

        if user_id:
            self.apply_to_streak(stored)
        return stored

    def apply_to_streak(self, stored: StoredSession) -> StreakRecord:
        """Apply an already stored session to its owner's streak.

        Raises:
            ValueError: If the session has no owner
            StreakUpdateFailed: If every retry lost the race
        """
        if not stored.user_id:
            raise ValueError("Anonymous sessions have no streak")
        try:
            return self.update_streak(
                stored.user_id,
                stored.logical_date,
                stored.is_qualifying,
                stored.word_count,
                stored.duration_seconds,
            )
        except ConcurrentModification as e:
            raise StreakUpdateFailed(
                f"Session {stored.id} stored, streak not updated: {e}", stored
            ) from e

    def update_streak(
        self,
        user_id: str,
        day: date,
        is_qualifying: bool,
        word_count: int,
        duration_seconds: int,
    ) -> StreakRecord:
        """Apply a session to the user's streak inside the per-user critical section.

        Raises:
            ConcurrentModification: If every retry lost the race
        """
        with self._lock_for(user_id):
            for attempt in range(1, self.max_streak_retries + 1):
                current = self.adapter.load_streak(user_id)
                updated = record_session(
                    current, day, is_qualifying, word_count, duration_seconds
                )
                try:
                    saved = self.adapter.save_streak(user_id, updated)
                except ConcurrentModification:
                    log.warning(
                        f"Streak update for {user_id} raced (attempt {attempt}/"
                        f"{self.max_streak_retries}), reloading"
                    )
                    continue
                if saved.current_streak != current.current_streak:
                    log.info(
                        f"Streak for {user_id}: {current.current_streak} -> "
                        f"{saved.current_streak} (longest {saved.longest_streak})"
                    )
                return saved
        raise ConcurrentModification(
            f"Could not update streak for {user_id} after {self.max_streak_retries} attempts"
        )

    def get_streak_status(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[StreakStatus]:
        """Get a user's streak with its active flag, None if they never wrote."""
        record = self.adapter.load_streak(user_id)
        if record.version == 0:
            return None
        user_settings = self.get_user_settings(user_id)
        today = logical_date(now, user_settings.day_boundary_hour, user_settings.timezone)
        return streak_status(record, today)

    def get_session_by_share_id(self, share_id: str) -> Optional[StoredSession]:
        return self.adapter.get_writing_session_by_share_id(share_id)

    def get_recent_sessions(self, user_id: str, limit: int = 10) -> list[StoredSession]:
        return self.adapter.get_recent_sessions(user_id, limit)
