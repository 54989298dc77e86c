"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.slot_calculator import SlotSettings


class SlotDefaults(BaseModel):
    """Default slot knobs applied to every provider."""
    slot_step_minutes: Optional[int] = None
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    align_to_minutes: Optional[int] = 15
    lead_time_minutes: int = 0

    @field_validator("slot_step_minutes", "align_to_minutes")
    @classmethod
    def validate_positive(cls, value: Optional[int]) -> Optional[int]:
        """Steps and grids must be positive when set."""
        if value is not None and value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("buffer_before_minutes", "buffer_after_minutes", "lead_time_minutes")
    @classmethod
    def validate_not_negative(cls, value: int) -> int:
        """Buffers and lead time cannot be negative."""
        if value < 0:
            raise ValueError("value cannot be negative")
        return value

    def to_settings(self) -> SlotSettings:
        """Get the domain settings object."""
        return SlotSettings(
            slot_step_minutes=self.slot_step_minutes,
            buffer_before_minutes=self.buffer_before_minutes,
            buffer_after_minutes=self.buffer_after_minutes,
            align_to_minutes=self.align_to_minutes,
            lead_time_minutes=self.lead_time_minutes,
        )


class ReminderConfig(BaseModel):
    """Window (minutes from now) in which bookings get a reminder."""
    window_start_minutes: int = 55
    window_end_minutes: int = 65

    @model_validator(mode="after")
    def validate_window_order(self) -> "ReminderConfig":
        """Ensure the reminder window opens before it closes."""
        if self.window_start_minutes < 0:
            raise ValueError("window_start_minutes cannot be negative")
        if self.window_end_minutes < self.window_start_minutes:
            raise ValueError("window_end_minutes must not be earlier than window_start_minutes")
        return self


class GoogleCalendarConfig(BaseModel):
    """OAuth client used to sync bookings into Google Calendar."""
    client_id: str
    client_secret: str
    timeout_seconds: int = 30


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    data_file: Path = Path("bookings.json")
    slots: SlotDefaults = Field(default_factory=SlotDefaults)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)
    google: Optional[GoogleCalendarConfig] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Relative ``data_file`` paths are resolved against the config file's
        directory.

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

        config = cls(**data)
        if not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file
        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
