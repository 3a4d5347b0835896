"""Pydantic models for config validation.

Opt-in schema validation for ``Config.config_data``.  Call
``Config.validated()`` to obtain a typed, validated ``StepwatchConfig``
instance.  Dict-based access through ``Config.get`` keeps working.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class PathsConfig(BaseModel):
    """File-system paths used by the application."""

    data_dir: Path
    log_dir: Path | None = None

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v


class StepsConfig(BaseModel):
    """Which source is trusted and which wall clock buckets are computed in."""

    preferred_source: str
    timezone: str = "local"

    @field_validator("preferred_source")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("preferred_source must not be empty")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        if v == "local":
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone {v!r}") from e
        return v


class PollingConfig(BaseModel):
    """Foreground timer cadence and backoff tuning (seconds)."""

    clock_interval: float = 1.0
    refresh_interval: float = 5.0
    backoff_base: float = 1.0
    backoff_max: float = 60.0

    @field_validator("clock_interval", "refresh_interval", "backoff_base", "backoff_max")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals must be positive")
        return v

    @model_validator(mode="after")
    def _ceiling_above_base(self) -> PollingConfig:
        if self.backoff_max < self.backoff_base:
            raise ValueError(f"backoff_max ({self.backoff_max}) is below backoff_base ({self.backoff_base})")
        return self


class BackgroundConfig(BaseModel):
    """Periodic background sync settings."""

    enabled: bool = True
    interval_minutes: float = 15
    flex_minutes: float = 5
    retry_base_seconds: float = 30

    @field_validator("interval_minutes", "retry_base_seconds")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("flex_minutes")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("flex_minutes must not be negative")
        return v


class SourceConfig(BaseModel):
    """Step data source plugin selection."""

    name: str = "apple_health_export"
    options: dict[str, Any] = {}


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    file: str = ""

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return v.upper()


class StepwatchConfig(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so consumers can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    paths: PathsConfig = PathsConfig(data_dir=Path("~/.stepwatch-data"))
    steps: StepsConfig
    polling: PollingConfig = PollingConfig()
    background: BackgroundConfig = BackgroundConfig()
    source: SourceConfig = SourceConfig()
    logging: LoggingConfig = LoggingConfig()
