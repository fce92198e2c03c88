"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator

from .adapters.schemas import ClinicSettingsSchema
from .domain.models import DEFAULT_TIMEZONE, ClinicSettings
from .domain.slot_calculator import DEFAULT_STEP_MINUTES, SlotCalculator


def _default_fallback_settings() -> ClinicSettingsSchema:
    return ClinicSettingsSchema.from_domain(ClinicSettings())


class AppConfig(BaseModel):
    """Application configuration."""
    api_base_url: str = "http://localhost:3000"
    api_timeout_seconds: float = 10
    timezone: str = DEFAULT_TIMEZONE
    slot_step_minutes: int = DEFAULT_STEP_MINUTES
    strict_bookings: bool = False  # fail instead of skipping unparseable bookings
    booking_window_days: int = 30
    mock_data_file: Optional[Path] = None
    # Used when the clinic has never saved settings
    fallback_settings: ClinicSettingsSchema = Field(default_factory=_default_fallback_settings)

    @field_validator("slot_step_minutes", "booking_window_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure step and window sizes are positive."""
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("api_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("api_timeout_seconds must be greater than zero")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"api_base_url must be an http(s) URL, got {value!r}")
        return value.rstrip("/")

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

        config = cls(**data)

        # Relative fixture paths are relative to the config file
        if config.mock_data_file is not None and not config.mock_data_file.is_absolute():
            config.mock_data_file = config_path.parent / config.mock_data_file

        return config

    def get_fallback_settings(self) -> ClinicSettings:
        return self.fallback_settings.to_domain()

    def build_slot_calculator(self) -> SlotCalculator:
        return SlotCalculator(
            step_minutes=self.slot_step_minutes,
            timezone=self.timezone,
            strict_bookings=self.strict_bookings,
        )


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
