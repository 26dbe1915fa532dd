"""Database adapter abstraction layer for freewrite.

Provides a pluggable backend for persisting writing sessions, user
preferences and streak records while keeping one consistent interface.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional

from core.models import StoredSession, UserRecord
from core.streak_engine import StreakRecord

log = logging.getLogger("freewrite.database_adapter")


class DatabaseAdapter(ABC):
    """Abstract base class for database adapters."""

    @abstractmethod
    def initialize(self) -> None:
        """Create all necessary tables."""
        pass

    @abstractmethod
    @contextmanager
    def get_connection(self):
        """Get a database connection.

        Yields:
            Database connection object (type varies by backend)
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close all database connections and cleanup resources."""
        pass

    # ========== User Operations ==========

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Get a user's logical day preferences, None if unknown."""
        pass

    @abstractmethod
    def upsert_user(self, user_id: str, day_boundary_hour: int, timezone: str) -> UserRecord:
        """Create or update a user's logical day preferences.

        Args:
            user_id: User identifier
            day_boundary_hour: Hour (0-23) at which the user's day resets
            timezone: IANA timezone

        Returns:
            The stored UserRecord
        """
        pass

    # ========== Streak Operations ==========

    @abstractmethod
    def load_streak(self, user_id: str) -> StreakRecord:
        """Load a user's streak record.

        Returns:
            Stored record, or an empty StreakRecord (version 0) if none exists
        """
        pass

    @abstractmethod
    def save_streak(self, user_id: str, record: StreakRecord) -> StreakRecord:
        """Save a streak record loaded earlier with load_streak().

        The write only succeeds if the stored version still equals
        record.version.

        Returns:
            The saved record with its version incremented

        Raises:
            ConcurrentModification: If the row changed since it was loaded
        """
        pass

    # ========== Writing Session Operations ==========

    @abstractmethod
    def store_writing_session(
        self,
        user_id: Optional[str],
        content: str,
        duration_seconds: int,
        word_count: int,
        words_per_minute: int,
        backspace_count: int,
        enter_count: int,
        arrow_key_count: int,
        is_qualifying: bool,
        logical_date: date,
        share_id: str,
        is_public: bool,
        created_at: datetime,
    ) -> StoredSession:
        """Store a finished writing session.

        Returns:
            The stored session including its row id
        """
        pass

    @abstractmethod
    def get_writing_session(self, session_id: int) -> Optional[StoredSession]:
        pass

    @abstractmethod
    def get_writing_session_by_share_id(self, share_id: str) -> Optional[StoredSession]:
        """Get a public session by its share id, None if missing or private."""
        pass

    @abstractmethod
    def get_recent_sessions(self, user_id: str, limit: int = 10) -> list[StoredSession]:
        """Get a user's most recent sessions, newest first."""
        pass


class AdapterError(Exception):
    """Base exception for database adapter errors."""

    pass


class ConnectionError(AdapterError):
    """Exception raised when database connection fails."""

    pass


class QueryError(AdapterError):
    """Exception raised when a database query fails."""

    pass


class ConcurrentModification(AdapterError):
    """Raised when a streak record changed between load and save.

    The caller must load the record again and retry.
    """

    pass
