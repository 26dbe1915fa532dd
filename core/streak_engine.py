"""Daily streak tracking from qualifying writing sessions.

A streak counts consecutive logical days with at least one qualifying
session. It is evaluated lazily: a missed day only breaks the streak when
the next qualifying session is recorded. Until then is_streak_active()
reports whether the streak can still be extended.
"""

import logging
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.logical_date import days_since

log = logging.getLogger("freewrite.streak_engine")


class StreakRecord(BaseModel):
    """Per-user streak and lifetime totals."""

    current_streak: int = Field(default=0, ge=0, description="Consecutive logical days")
    longest_streak: int = Field(default=0, ge=0, description="Best streak ever reached")
    last_qualifying_date: Optional[date] = Field(
        default=None, description="Logical date of the most recent qualifying session"
    )
    total_qualifying_sessions: int = Field(default=0, ge=0)
    total_sessions: int = Field(default=0, ge=0)
    total_words_written: int = Field(default=0, ge=0)
    total_seconds_written: int = Field(default=0, ge=0)
    version: int = Field(
        default=0, ge=0, description="Row version for optimistic concurrency control"
    )

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def validate_streaks(self):
        if self.current_streak > self.longest_streak:
            raise ValueError(
                f"current_streak ({self.current_streak}) must not exceed "
                f"longest_streak ({self.longest_streak})"
            )
        return self


class StreakStatus(BaseModel):
    """Streak record enriched for display."""

    record: StreakRecord
    streak_is_active: bool = Field(..., description="Streak can still be extended")
    days_since_last_qualifying: Optional[int] = Field(
        default=None, description="Logical days since the last qualifying session"
    )

    model_config = ConfigDict(extra="ignore")


def record_session(
    streak: StreakRecord,
    logical_date: date,
    is_qualifying: bool,
    word_count: int,
    duration_seconds: float,
) -> StreakRecord:
    """Apply one finished session to a streak record.

    Args:
        streak: Current record (not modified)
        logical_date: Logical date the session belongs to
        is_qualifying: Whether the session reached the qualifying threshold
        word_count: Words written in the session
        duration_seconds: Session duration

    Returns:
        Updated StreakRecord
    """
    updates = {
        "total_sessions": streak.total_sessions + 1,
        "total_words_written": streak.total_words_written + max(0, word_count),
        "total_seconds_written": streak.total_seconds_written + max(0, int(duration_seconds)),
    }
    if not is_qualifying:
        return streak.model_copy(update=updates)

    current = streak.current_streak
    longest = streak.longest_streak

    if streak.last_qualifying_date is None:
        current = 1
    else:
        gap = days_since(streak.last_qualifying_date, logical_date)
        if gap == 0:
            # One extension per logical day
            pass
        elif gap == 1:
            current += 1
            log.debug(f"Streak extended to {current}")
        else:
            log.info(f"Streak of {current} broken after a gap of {gap} days")
            current = 1

    longest = max(longest, current)

    updates.update(
        current_streak=current,
        longest_streak=longest,
        last_qualifying_date=logical_date,
        total_qualifying_sessions=streak.total_qualifying_sessions + 1,
    )
    return streak.model_copy(update=updates)


def is_streak_active(streak: StreakRecord, now_logical_date: date) -> bool:
    """Whether the streak can still be extended on now_logical_date."""
    if streak.last_qualifying_date is None:
        return False
    return days_since(streak.last_qualifying_date, now_logical_date) <= 1


def streak_status(streak: StreakRecord, now_logical_date: date) -> StreakStatus:
    days = None
    if streak.last_qualifying_date is not None:
        days = days_since(streak.last_qualifying_date, now_logical_date)
    return StreakStatus(
        record=streak,
        streak_is_active=is_streak_active(streak, now_logical_date),
        days_since_last_qualifying=days,
    )


__all__ = [
    "StreakRecord",
    "StreakStatus",
    "is_streak_active",
    "record_session",
    "streak_status",
]
