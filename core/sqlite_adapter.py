"""SQLite adapter for freewrite database operations."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from core.database_adapter import (
    AdapterError,
    ConcurrentModification,
    ConnectionError,
    DatabaseAdapter,
    QueryError,
)
from core.models import StoredSession, UserRecord
from core.streak_engine import StreakRecord

log = logging.getLogger("freewrite.sqlite_adapter")

_SESSION_COLUMNS = (
    "id, user_id, content, duration_seconds, word_count, words_per_minute, "
    "backspace_count, enter_count, arrow_key_count, is_qualifying, logical_date, "
    "share_id, is_public, created_at"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter implementation."""

    def __init__(self, db_path: Path, timeout_sec: float = 30.0):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite database file
            timeout_sec: Seconds to wait for a locked database
        """
        self.db_path = db_path
        self.timeout_sec = timeout_sec
        self._initialized = False

    def initialize(self) -> None:
        """Create database tables if they don't exist."""
        self._initialized = True
        with self.get_connection() as conn:
            self._create_users_table(conn)
            self._create_writing_sessions_table(conn)
            self._create_user_streaks_table(conn)
            conn.commit()
        log.debug(f"Database initialized at {self.db_path}")

    @contextmanager
    def get_connection(self):
        """Get a database connection, closed on exit."""
        if not self._initialized:
            raise AdapterError("Adapter not initialized. Call initialize() first.")
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout_sec)
        except sqlite3.Error as e:
            raise ConnectionError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise QueryError(str(e)) from e
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per call; nothing stays open."""
        self._initialized = False

    # ========== Table Creation ==========

    def _create_users_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                day_boundary_hour INTEGER NOT NULL DEFAULT 4,
                timezone TEXT NOT NULL DEFAULT 'UTC',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

    def _create_writing_sessions_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS writing_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT REFERENCES users(id),
                content TEXT NOT NULL,
                duration_seconds INTEGER NOT NULL,
                word_count INTEGER NOT NULL,
                words_per_minute INTEGER,
                backspace_count INTEGER NOT NULL DEFAULT 0,
                enter_count INTEGER NOT NULL DEFAULT 0,
                arrow_key_count INTEGER NOT NULL DEFAULT 0,
                is_qualifying INTEGER NOT NULL DEFAULT 0,
                logical_date TEXT NOT NULL,
                share_id TEXT UNIQUE,
                is_public INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_writing_sessions_user "
            "ON writing_sessions(user_id, created_at)"
        )

    def _create_user_streaks_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_streaks (
                user_id TEXT PRIMARY KEY REFERENCES users(id),
                current_streak INTEGER NOT NULL DEFAULT 0,
                longest_streak INTEGER NOT NULL DEFAULT 0,
                last_qualifying_date TEXT,
                total_qualifying_sessions INTEGER NOT NULL DEFAULT 0,
                total_sessions INTEGER NOT NULL DEFAULT 0,
                total_words_written INTEGER NOT NULL DEFAULT 0,
                total_seconds_written INTEGER NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            )
        """)

    # ========== User Operations ==========

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT id, day_boundary_hour, timezone, updated_at FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return UserRecord(
            id=row["id"],
            day_boundary_hour=row["day_boundary_hour"],
            timezone=row["timezone"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def upsert_user(self, user_id: str, day_boundary_hour: int, timezone: str) -> UserRecord:
        now = _utcnow().isoformat()
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, day_boundary_hour, timezone, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    day_boundary_hour = excluded.day_boundary_hour,
                    timezone = excluded.timezone,
                    updated_at = excluded.updated_at
            """,
                (user_id, day_boundary_hour, timezone, now, now),
            )
            conn.commit()
        return self.get_user(user_id)

    # ========== Streak Operations ==========

    def load_streak(self, user_id: str) -> StreakRecord:
        with self.get_connection() as conn:
            row = conn.execute(
                """
                SELECT current_streak, longest_streak, last_qualifying_date,
                       total_qualifying_sessions, total_sessions,
                       total_words_written, total_seconds_written, version
                FROM user_streaks WHERE user_id = ?
            """,
                (user_id,),
            ).fetchone()
        if row is None:
            return StreakRecord()
        last = row["last_qualifying_date"]
        return StreakRecord(
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_qualifying_date=date.fromisoformat(last) if last else None,
            total_qualifying_sessions=row["total_qualifying_sessions"],
            total_sessions=row["total_sessions"],
            total_words_written=row["total_words_written"],
            total_seconds_written=row["total_seconds_written"],
            version=row["version"],
        )

    def save_streak(self, user_id: str, record: StreakRecord) -> StreakRecord:
        last = record.last_qualifying_date.isoformat() if record.last_qualifying_date else None
        values = (
            record.current_streak,
            record.longest_streak,
            last,
            record.total_qualifying_sessions,
            record.total_sessions,
            record.total_words_written,
            record.total_seconds_written,
            _utcnow().isoformat(),
        )
        with self.get_connection() as conn:
            if record.version == 0:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO user_streaks
                    (current_streak, longest_streak, last_qualifying_date,
                     total_qualifying_sessions, total_sessions, total_words_written,
                     total_seconds_written, updated_at, user_id, version)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                """,
                    values + (user_id,),
                )
            else:
                cursor = conn.execute(
                    """
                    UPDATE user_streaks SET
                        current_streak = ?, longest_streak = ?, last_qualifying_date = ?,
                        total_qualifying_sessions = ?, total_sessions = ?,
                        total_words_written = ?, total_seconds_written = ?,
                        updated_at = ?, version = version + 1
                    WHERE user_id = ? AND version = ?
                """,
                    values + (user_id, record.version),
                )
            conn.commit()
            if cursor.rowcount == 0:
                log.warning(f"Streak for user {user_id} changed since version {record.version}")
                raise ConcurrentModification(
                    f"Streak record for {user_id} was modified concurrently"
                )
        return record.model_copy(update={"version": record.version + 1})

    # ========== Writing Session Operations ==========

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
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO writing_sessions
                (user_id, content, duration_seconds, word_count, words_per_minute,
                 backspace_count, enter_count, arrow_key_count, is_qualifying,
                 logical_date, share_id, is_public, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    user_id,
                    content,
                    duration_seconds,
                    word_count,
                    words_per_minute,
                    backspace_count,
                    enter_count,
                    arrow_key_count,
                    int(is_qualifying),
                    logical_date.isoformat(),
                    share_id,
                    int(is_public),
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            session_id = cursor.lastrowid
        return self.get_writing_session(session_id)

    def get_writing_session(self, session_id: int) -> Optional[StoredSession]:
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM writing_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def get_writing_session_by_share_id(self, share_id: str) -> Optional[StoredSession]:
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM writing_sessions "
                "WHERE share_id = ? AND is_public = 1",
                (share_id,),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def get_recent_sessions(self, user_id: str, limit: int = 10) -> list[StoredSession]:
        with self.get_connection() as conn:
            rows = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM writing_sessions "
                "WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_session(row) for row in rows]

    def _row_to_session(self, row: sqlite3.Row) -> StoredSession:
        return StoredSession(
            id=row["id"],
            user_id=row["user_id"],
            content=row["content"],
            duration_seconds=row["duration_seconds"],
            word_count=row["word_count"],
            words_per_minute=row["words_per_minute"] or 0,
            backspace_count=row["backspace_count"],
            enter_count=row["enter_count"],
            arrow_key_count=row["arrow_key_count"],
            is_qualifying=bool(row["is_qualifying"]),
            logical_date=date.fromisoformat(row["logical_date"]),
            share_id=row["share_id"],
            is_public=bool(row["is_public"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
