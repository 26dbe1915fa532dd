"""Configuration management for freewrite."""

import json
import sqlite3
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.logical_date import InvalidConfiguration, resolve_timezone
from core.session_config import (
    DANGER_THRESHOLD_SECONDS,
    DEFAULT_DAY_BOUNDARY_HOUR,
    DEFAULT_TIMEZONE,
    INACTIVITY_TIMEOUT_SECONDS,
    QUALIFYING_THRESHOLD_SECONDS,
    SAMPLE_INTERVAL_MS,
    SessionConfig,
)


def _validate_timezone(v: str) -> str:
    try:
        resolve_timezone(v)
    except InvalidConfiguration as e:
        raise ValueError(str(e))
    return v


class AppSettings(BaseModel):
    """Application settings with validation."""

    # Session timing
    inactivity_timeout_ms: int = Field(
        default=INACTIVITY_TIMEOUT_SECONDS * 1000,
        gt=0,
        description="Silence after the last keystroke before the session ends (ms)",
    )
    qualifying_threshold_sec: int = Field(
        default=QUALIFYING_THRESHOLD_SECONDS,
        gt=0,
        description="Minimum duration for a session to qualify for the streak (sec)",
    )
    sample_interval_ms: int = Field(
        default=SAMPLE_INTERVAL_MS,
        gt=0,
        description="Interval of the live duration sampler (ms)",
    )
    danger_threshold_sec: float = Field(
        default=DANGER_THRESHOLD_SECONDS,
        ge=0,
        description="Time remaining below which the session is flagged as in danger (sec)",
    )

    # Defaults for users without their own settings
    default_day_boundary_hour: int = Field(
        default=DEFAULT_DAY_BOUNDARY_HOUR,
        ge=0,
        le=23,
        description="Hour (0-23) at which a new logical day starts",
    )
    default_timezone: str = Field(
        default=DEFAULT_TIMEZONE, description="IANA timezone for logical days"
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("sample_interval_ms")
    @classmethod
    def validate_sample_interval(cls, v, info):
        """Validate interdependent field relationships."""
        if "inactivity_timeout_ms" in info.data and v >= info.data["inactivity_timeout_ms"]:
            raise ValueError(
                f"sample_interval_ms ({v}) must be "
                f"less than inactivity_timeout_ms ({info.data['inactivity_timeout_ms']})"
            )
        return v

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v):
        return _validate_timezone(v)

    def to_session_config(self) -> SessionConfig:
        return SessionConfig(
            inactivity_timeout_ms=self.inactivity_timeout_ms,
            qualifying_threshold_sec=self.qualifying_threshold_sec,
            sample_interval_ms=self.sample_interval_ms,
            danger_threshold_sec=self.danger_threshold_sec,
        )


class UserSettings(BaseModel):
    """Per-user logical day preferences."""

    day_boundary_hour: int = Field(
        default=DEFAULT_DAY_BOUNDARY_HOUR,
        ge=0,
        le=23,
        description="Hour (0-23) at which the user's day resets",
    )
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="User's IANA timezone")

    model_config = ConfigDict(extra="ignore")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        return _validate_timezone(v)


class Config:
    """Configuration manager using SQLite for persistence with Pydantic validation."""

    def __init__(self, db_path: Path):
        """Initialize config with database connection.

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = db_path
        self._init_settings_table()
        self._ensure_defaults()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_settings_table(self) -> None:
        """Create settings table if not exists."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()

    def _ensure_defaults(self) -> None:
        """Ensure all default settings exist in database."""
        defaults = AppSettings().model_dump()

        with self._get_connection() as conn:
            cursor = conn.cursor()
            for key, value in defaults.items():
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO settings (key, value)
                    VALUES (?, ?)
                """,
                    (key, self._serialize_value(value)),
                )
            conn.commit()

    def _serialize_value(self, value: Any) -> str:
        """Convert value to string for storage."""
        if isinstance(value, bool):
            return "True" if value else "False"
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return str(value)

    def _simple_parse(self, value: str) -> Any:
        """Parse a stored string back into a Python value."""
        if value.startswith("[") or value.startswith("{"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get configuration value.

        Args:
            key: Setting key
            default: Default value if not found

        Returns:
            Setting value
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            result = cursor.fetchone()
        if result:
            return self._simple_parse(result[0])
        if default is not None:
            return default
        if key in AppSettings.model_fields:
            return getattr(AppSettings(), key)
        return None

    def set(self, key: str, value: Any) -> None:
        """Set configuration value with pydantic validation.

        Args:
            key: Setting key
            value: Setting value

        Raises:
            ValueError: If value fails validation
        """
        if key in AppSettings.model_fields:
            current = self.get_settings().model_dump()
            current[key] = value
            try:
                validated = AppSettings(**current)
            except Exception as e:
                raise ValueError(f"Invalid value for {key}: {e}")
            value = getattr(validated, key)

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO settings (key, value)
                VALUES (?, ?)
            """,
                (key, self._serialize_value(value)),
            )
            conn.commit()

    def get_all(self) -> dict[str, Any]:
        """Get all settings as dictionary."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT key, value FROM settings")
            settings = {row[0]: self._simple_parse(row[1]) for row in cursor.fetchall()}
        return settings

    def get_settings(self) -> AppSettings:
        """Get all known settings as a validated AppSettings."""
        stored = {k: v for k, v in self.get_all().items() if k in AppSettings.model_fields}
        return AppSettings(**stored)
