"""Writing session configuration with Pydantic validation."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Session ends after this much silence
INACTIVITY_TIMEOUT_SECONDS = 8
# Sessions at least this long count towards a streak
QUALIFYING_THRESHOLD_SECONDS = 480
DEFAULT_DAY_BOUNDARY_HOUR = 4
DEFAULT_TIMEZONE = "UTC"
SAMPLE_INTERVAL_MS = 100
DANGER_THRESHOLD_SECONDS = 2


class SessionConfig(BaseModel):
    """Configuration for WritingSessionController with validation."""

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

    @property
    def inactivity_timeout_sec(self) -> float:
        return self.inactivity_timeout_ms / 1000.0

    @property
    def sample_interval_sec(self) -> float:
        return self.sample_interval_ms / 1000.0


__all__ = [
    "SessionConfig",
    "INACTIVITY_TIMEOUT_SECONDS",
    "QUALIFYING_THRESHOLD_SECONDS",
    "DEFAULT_DAY_BOUNDARY_HOUR",
    "DEFAULT_TIMEZONE",
    "SAMPLE_INTERVAL_MS",
    "DANGER_THRESHOLD_SECONDS",
]
