"""
Configuration management using Pydantic models loaded from YAML.

Environment variables take precedence over the file:

- MAX_WALKS_DURING_SITTING: default walk cap during an active sitting
- WALKSCHEDULER_TIMEZONE: business timezone
"""

import os
from datetime import time
from pathlib import Path
from typing import List, Mapping, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import WorkingHours


class WorkingHoursConfig(BaseModel):
    """Working-hours envelope for walk services."""
    start_hour: int = 9
    start_minute: int = 0
    end_hour: int = 20
    end_minute: int = 0
    exclude_days: List[int] = Field(default_factory=lambda: [5, 6])  # Saturday, Sunday

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("start_minute", "end_minute")
    @classmethod
    def validate_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError(f"Minute must be between 0 and 59, got {v}")
        return v

    @field_validator("exclude_days")
    @classmethod
    def validate_exclude_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"exclude_days must be between 0 and 6, got {invalid_days}")
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def validate_hours_order(self) -> "WorkingHoursConfig":
        """Ensure the working day opens before it closes."""
        if self.get_end_time() <= self.get_start_time():
            raise ValueError("working hours must end later than they start")
        return self

    def get_start_time(self) -> time:
        return time(hour=self.start_hour, minute=self.start_minute)

    def get_end_time(self) -> time:
        return time(hour=self.end_hour, minute=self.end_minute)


class CalendarConfig(BaseModel):
    """Microsoft Graph settings for the business calendar feed."""
    client_id: str = ""
    tenant_id: str = "common"
    calendar_id: Optional[str] = None

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/London"
    working_hours: WorkingHoursConfig = Field(default_factory=WorkingHoursConfig)
    travel_buffer_minutes: int = 15
    extended_travel_buffer_minutes: int = 30
    long_sitting_hours: int = 6
    max_walks_during_sitting: int = 4
    data_file: Path = Path("bookings.json")
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator(
        "travel_buffer_minutes",
        "extended_travel_buffer_minutes",
        "long_sitting_hours",
        "max_walks_during_sitting",
    )
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value

    def get_working_hours(self) -> WorkingHours:
        """Build the domain working-hours object in the business timezone."""
        return WorkingHours(
            start_time=self.working_hours.get_start_time(),
            end_time=self.working_hours.get_end_time(),
            exclude_weekdays=self.working_hours.exclude_days,
            timezone=self.timezone,
        )

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def load(cls, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Load the YAML file if it exists, then apply environment overrides.

        A missing file is fine here: every setting has a default.
        """
        environ = os.environ if environ is None else environ
        path = config_path or get_default_config_path()

        if config_path is not None or path.exists():
            config = cls.load_from_yaml(path)
        else:
            config = cls()

        return config.with_env_overrides(environ)

    def with_env_overrides(self, environ: Mapping[str, str]) -> "AppConfig":
        updates = {}

        raw_cap = environ.get("MAX_WALKS_DURING_SITTING")
        if raw_cap:
            try:
                updates["max_walks_during_sitting"] = int(raw_cap)
            except ValueError as exc:
                raise ValueError(f"MAX_WALKS_DURING_SITTING must be an integer, got {raw_cap!r}") from exc

        raw_tz = environ.get("WALKSCHEDULER_TIMEZONE")
        if raw_tz:
            updates["timezone"] = raw_tz

        if not updates:
            return self
        # Re-validate so bad environment values fail the same way as bad YAML
        return type(self)(**{**self.model_dump(), **updates})


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
