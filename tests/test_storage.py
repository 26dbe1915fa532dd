"""Tests for SQLiteAdapter and Storage."""

import sqlite3
import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from core.database_adapter import AdapterError, ConcurrentModification
from core.logical_date import InvalidConfiguration
from core.session_stats import KeyEvent
from core.sqlite_adapter import SQLiteAdapter
from core.storage import Storage, StreakUpdateFailed
from core.streak_engine import StreakRecord
from core.writing_session import WritingSession, WritingSessionController
from utils.config import AppSettings
from utils.share_id import SHARE_ID_ALPHABET, generate_share_id

NOW = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


def make_session(content="hello world", duration=500.0, words=2):
    return WritingSession(
        content=content,
        started_at=NOW - timedelta(seconds=duration),
        ended_at=NOW,
        duration_seconds=duration,
        word_count=words,
        words_per_minute=1,
        is_qualifying=duration >= 480,
    )


@pytest.fixture
def adapter(temp_db_path):
    adapter = SQLiteAdapter(temp_db_path)
    adapter.initialize()
    yield adapter
    adapter.close()


@pytest.fixture
def storage(adapter):
    return Storage(adapter)


class TestSQLiteAdapter:
    """Test SQLiteAdapter."""

    def test_init_database(self, adapter):
        with sqlite3.connect(adapter.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = [row[0] for row in cursor.fetchall()]

        assert "users" in tables
        assert "writing_sessions" in tables
        assert "user_streaks" in tables

    def test_requires_initialize(self, temp_db_path):
        adapter = SQLiteAdapter(temp_db_path)
        with pytest.raises(AdapterError):
            adapter.load_streak("alice")

    def test_missing_streak_is_empty(self, adapter):
        record = adapter.load_streak("alice")
        assert record == StreakRecord()

    def test_save_and_load_streak(self, adapter):
        record = StreakRecord(
            current_streak=2,
            longest_streak=3,
            last_qualifying_date=date(2026, 1, 9),
            total_qualifying_sessions=4,
            total_sessions=6,
            total_words_written=1200,
            total_seconds_written=3000,
        )
        saved = adapter.save_streak("alice", record)
        loaded = adapter.load_streak("alice")

        assert saved.version == 1
        assert loaded == saved

    def test_stale_save_rejected(self, adapter):
        """Test a save based on an outdated load raises ConcurrentModification."""
        adapter.save_streak("alice", StreakRecord())
        first = adapter.load_streak("alice")
        second = adapter.load_streak("alice")

        adapter.save_streak("alice", first.model_copy(update={"total_sessions": 1}))
        with pytest.raises(ConcurrentModification):
            adapter.save_streak("alice", second.model_copy(update={"total_sessions": 1}))

    def test_concurrent_first_insert_rejected(self, adapter):
        adapter.save_streak("alice", StreakRecord())
        with pytest.raises(ConcurrentModification):
            adapter.save_streak("alice", StreakRecord())

    def test_upsert_user(self, adapter):
        adapter.upsert_user("alice", 4, "UTC")
        user = adapter.upsert_user("alice", 6, "Europe/Oslo")

        assert user.day_boundary_hour == 6
        assert user.timezone == "Europe/Oslo"
        assert adapter.get_user("bob") is None

    def test_store_and_fetch_session(self, adapter):
        stored = adapter.store_writing_session(
            user_id="alice",
            content="some words",
            duration_seconds=500,
            word_count=2,
            words_per_minute=0,
            backspace_count=1,
            enter_count=2,
            arrow_key_count=3,
            is_qualifying=True,
            logical_date=date(2026, 1, 10),
            share_id="abcd1234",
            is_public=True,
            created_at=NOW,
        )

        assert stored.id is not None
        assert adapter.get_writing_session(stored.id) == stored
        assert adapter.get_writing_session_by_share_id("abcd1234") == stored
        assert stored.logical_date == date(2026, 1, 10)
        assert stored.created_at == NOW


class TestStorage:
    """Test Storage session recording and streaks."""

    def test_record_qualifying_session(self, storage):
        stored = storage.record_completed_session("alice", make_session(), now=NOW)

        assert stored.is_qualifying
        assert stored.duration_seconds == 500
        assert stored.logical_date == date(2026, 1, 10)

        status = storage.get_streak_status("alice", now=NOW)
        assert status.record.current_streak == 1
        assert status.record.total_sessions == 1
        assert status.streak_is_active

    def test_short_session_updates_totals_only(self, storage):
        storage.record_completed_session("alice", make_session(duration=60), now=NOW)
        status = storage.get_streak_status("alice", now=NOW)

        assert status.record.current_streak == 0
        assert status.record.total_sessions == 1
        assert status.record.total_seconds_written == 60
        assert not status.streak_is_active

    def test_consecutive_days_extend_streak(self, storage):
        for offset in range(3):
            storage.record_completed_session(
                "alice", make_session(), now=NOW + timedelta(days=offset)
            )
        status = storage.get_streak_status("alice", now=NOW + timedelta(days=2))

        assert status.record.current_streak == 3
        assert status.record.longest_streak == 3

    def test_late_night_counts_for_previous_day(self, storage):
        """Test writing at 02:00 with the 4am boundary continues yesterday's streak."""
        storage.record_completed_session("alice", make_session(), now=NOW)
        late = datetime(2026, 1, 11, 2, 0, tzinfo=timezone.utc)
        stored = storage.record_completed_session("alice", make_session(), now=late)

        assert stored.logical_date == date(2026, 1, 10)
        status = storage.get_streak_status("alice", now=late)
        assert status.record.current_streak == 1
        assert status.record.total_qualifying_sessions == 2

    def test_user_timezone_used(self, storage):
        storage.update_user_settings("alice", day_boundary_hour=4, timezone="Asia/Tokyo")
        # 20:00 UTC is 05:00 the next morning in Tokyo
        stored = storage.record_completed_session(
            "alice", make_session(), now=datetime(2026, 1, 10, 20, 0, tzinfo=timezone.utc)
        )
        assert stored.logical_date == date(2026, 1, 11)

    def test_app_default_settings_used(self, adapter):
        storage = Storage(adapter, settings=AppSettings(default_day_boundary_hour=0))
        stored = storage.record_completed_session(
            "alice", make_session(), now=datetime(2026, 1, 11, 2, 0, tzinfo=timezone.utc)
        )
        assert stored.logical_date == date(2026, 1, 11)

    def test_blank_session_dropped(self, storage, adapter):
        assert storage.record_completed_session("alice", make_session(content="  \t "), now=NOW) is None
        assert adapter.get_recent_sessions("alice") == []
        assert storage.get_streak_status("alice", now=NOW) is None

    def test_anonymous_session_has_no_streak(self, storage):
        stored = storage.record_completed_session(None, make_session(), now=NOW)

        assert stored.user_id is None
        assert storage.get_session_by_share_id(stored.share_id) == stored

    def test_private_session_not_shared(self, storage):
        stored = storage.record_completed_session(
            "alice", make_session(), now=NOW, is_public=False
        )
        assert storage.get_session_by_share_id(stored.share_id) is None

    def test_invalid_timezone_aborts_without_writes(self, storage, adapter):
        """Test an invalid stored timezone stores neither session nor streak."""
        adapter.upsert_user("alice", 4, "Bad/Zone")

        with pytest.raises(InvalidConfiguration):
            storage.record_completed_session("alice", make_session(), now=NOW)
        assert adapter.get_recent_sessions("alice") == []
        assert adapter.load_streak("alice") == StreakRecord()

    def test_update_user_settings_validates(self, storage):
        with pytest.raises(ValueError):
            storage.update_user_settings("alice", day_boundary_hour=25)
        with pytest.raises(ValueError):
            storage.update_user_settings("alice", timezone="Nope/Nope")

    def test_update_user_settings_partial(self, storage):
        storage.update_user_settings("alice", timezone="Europe/Oslo")
        settings = storage.get_user_settings("alice")

        assert settings.timezone == "Europe/Oslo"
        assert settings.day_boundary_hour == 4

    def test_recent_sessions_newest_first(self, storage):
        for offset in range(3):
            storage.record_completed_session(
                "alice", make_session(content=f"day {offset}"), now=NOW + timedelta(days=offset)
            )
        recent = storage.get_recent_sessions("alice", limit=2)

        assert [s.content for s in recent] == ["day 2", "day 1"]

    def test_streak_retry_after_concurrent_modification(self, storage, adapter, monkeypatch):
        """Test a lost race is retried with a fresh load."""
        real_save = adapter.save_streak
        calls = []

        def flaky_save(user_id, record):
            calls.append(record)
            if len(calls) == 1:
                raise ConcurrentModification("raced")
            return real_save(user_id, record)

        monkeypatch.setattr(adapter, "save_streak", flaky_save)
        record = storage.update_streak("alice", date(2026, 1, 10), True, 10, 500)

        assert len(calls) == 2
        assert record.current_streak == 1

    def test_streak_gives_up_after_retries(self, adapter, monkeypatch):
        def always_races(user_id, record):
            raise ConcurrentModification("raced")

        monkeypatch.setattr(adapter, "save_streak", always_races)
        storage = Storage(adapter, max_streak_retries=2)

        with pytest.raises(ConcurrentModification):
            storage.update_streak("alice", date(2026, 1, 10), True, 10, 500)

    def test_stored_session_returned_when_streak_update_fails(self, storage, adapter, monkeypatch):
        """Test a failed streak update can be retried without storing the session twice."""
        def always_races(user_id, record):
            raise ConcurrentModification("raced")

        monkeypatch.setattr(adapter, "save_streak", always_races)
        with pytest.raises(StreakUpdateFailed) as exc_info:
            storage.record_completed_session("alice", make_session(), now=NOW)
        stored = exc_info.value.stored_session
        monkeypatch.undo()

        record = storage.apply_to_streak(stored)

        assert record.current_streak == 1
        assert record.total_sessions == 1
        assert adapter.get_recent_sessions("alice") == [stored]

    def test_anonymous_session_cannot_be_applied_to_streak(self, storage):
        stored = storage.record_completed_session(None, make_session(), now=NOW)
        with pytest.raises(ValueError):
            storage.apply_to_streak(stored)

    def test_user_locks_released_when_unused(self, storage):
        """Test per-user locks do not accumulate for users no longer writing."""
        lock = storage._lock_for("alice")
        assert storage._lock_for("alice") is lock

        del lock
        storage.update_streak("bob", date(2026, 1, 10), True, 10, 500)

        assert len(storage._user_locks) == 0

    def test_parallel_updates_serialized(self, storage):
        """Test concurrent qualifying sessions for one user lose no updates."""
        threads = [
            threading.Thread(
                target=storage.update_streak,
                args=("alice", date(2026, 1, 10), True, 10, 500),
            )
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        record = storage.adapter.load_streak("alice")
        assert record.total_sessions == 8
        assert record.total_qualifying_sessions == 8
        assert record.current_streak == 1

    def test_controller_feeds_storage(self, storage, clock, scheduler, wall_clock):
        """Test a controller's completion sink recording into storage."""
        controller = WritingSessionController(
            on_complete=lambda s: storage.record_completed_session("alice", s, now=NOW),
            clock=clock,
            scheduler=scheduler,
            wall_clock=wall_clock,
        )
        for char in "free writing":
            controller.handle_key(KeyEvent.char(char))
        scheduler.advance(8)

        recent = storage.get_recent_sessions("alice")
        assert len(recent) == 1
        assert recent[0].content == "free writing"
        assert not recent[0].is_qualifying
        assert storage.get_streak_status("alice", now=NOW).record.total_sessions == 1


class TestShareId:
    """Test share id generation."""

    def test_length_and_alphabet(self):
        share_id = generate_share_id()

        assert len(share_id) == 8
        assert all(c in SHARE_ID_ALPHABET for c in share_id)

    def test_custom_length(self):
        assert len(generate_share_id(12)) == 12

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            generate_share_id(0)
