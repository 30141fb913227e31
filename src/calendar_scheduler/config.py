"""Configuration management for the calendar scheduler."""

from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .layout.geometry import TimeGeometry
from .utils.exceptions import ConfigurationError

load_dotenv()


class ApiConfig(BaseSettings):
    """Calendar service connection settings."""

    base_url: Optional[str] = Field(None, validation_alias="CALENDAR_API_URL")
    token: Optional[str] = Field(None, validation_alias="CALENDAR_API_TOKEN")
    timeout: float = Field(default=30.0, validation_alias="CALENDAR_API_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",  # Treat empty string as None
    )

    def require_base_url(self) -> str:
        if not self.base_url:
            raise ConfigurationError("CALENDAR_API_URL is not set")
        return self.base_url


class GridConfig(BaseSettings):
    """Day column geometry and interaction settings."""

    window_start_hour: int = Field(default=8, ge=0, le=23, validation_alias="GRID_WINDOW_START_HOUR")
    window_duration_hours: int = Field(default=10, ge=1, le=24, validation_alias="GRID_WINDOW_HOURS")
    column_height: float = Field(default=600.0, gt=0, validation_alias="GRID_COLUMN_HEIGHT")
    snap_minutes: int = Field(default=15, ge=1, le=60, validation_alias="GRID_SNAP_MINUTES")
    resize_handle_px: float = Field(default=8.0, ge=0, validation_alias="GRID_RESIZE_HANDLE_PX")
    search_debounce_ms: int = Field(default=300, ge=0, validation_alias="SEARCH_DEBOUNCE_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def search_delay(self) -> float:
        return self.search_debounce_ms / 1000

    def geometry(self, timezone: str = "UTC") -> TimeGeometry:
        return TimeGeometry(
            column_height=self.column_height,
            window_start_hour=self.window_start_hour,
            window_duration_hours=self.window_duration_hours,
            snap_minutes=self.snap_minutes,
            timezone=timezone,
        )


class AppConfig(BaseSettings):
    """Application configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    grid: GridConfig = Field(default_factory=GridConfig)

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, validation_alias="LOG_FILE")

    default_timezone: str = Field(default="UTC", validation_alias="DEFAULT_TIMEZONE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",
    )


class ViewConfig:
    """Visible calendars and range loaded from YAML."""

    def __init__(self, config_path: Path = Path("scheduler_config.yaml")):
        self.calendar_ids: list[str] = []
        self.contexts: list[str] = []
        self.timezone: Optional[str] = None
        self.lookback_days: int = 0
        self.lookahead_days: int = 7
        self.default_calendar_id: Optional[str] = None

        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}

            view = data.get("view", {})
            self.calendar_ids = list(view.get("calendars", []))
            self.contexts = list(view.get("contexts", []))
            self.timezone = view.get("timezone")
            self.lookback_days = view.get("lookback_days", 0)
            self.lookahead_days = view.get("lookahead_days", 7)
            self.default_calendar_id = view.get("default_calendar")

    @property
    def has_config(self) -> bool:
        return bool(self.calendar_ids or self.contexts)


# Global config instances
config = AppConfig()
view_config = ViewConfig()
