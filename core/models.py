"""Pydantic models for stored freewrite data."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredSession(BaseModel):
    """Writing session as persisted."""

    id: int = Field(..., description="Row id")
    user_id: Optional[str] = Field(default=None, description="Owner, None for anonymous")
    content: str = Field(..., description="Session text")
    duration_seconds: int = Field(..., ge=0, description="Duration in whole seconds")
    word_count: int = Field(..., ge=0)
    words_per_minute: int = Field(default=0, ge=0)
    backspace_count: int = Field(default=0, ge=0)
    enter_count: int = Field(default=0, ge=0)
    arrow_key_count: int = Field(default=0, ge=0)
    is_qualifying: bool = Field(..., description="Reached the qualifying threshold")
    logical_date: date = Field(..., description="Logical day the session counts for")
    share_id: str = Field(..., description="Short public identifier")
    is_public: bool = Field(default=True)
    created_at: datetime = Field(..., description="When the session was stored (UTC)")

    model_config = ConfigDict(extra="ignore")


class UserRecord(BaseModel):
    """User row holding the logical-day preferences."""

    id: str = Field(..., description="User identifier")
    day_boundary_hour: int = Field(..., ge=0, le=23)
    timezone: str = Field(...)
    updated_at: datetime = Field(...)

    model_config = ConfigDict(extra="ignore")
