"""Configuration management using pydantic-settings."""

import tomllib
from pathlib import Path
from typing import Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.models import Plan

DEFAULT_DATA = "~/.local/share/fiscalsync"
DEFAULT_STORAGE = "~/Documents/XML"
DEFAULT_BASE_URL = "https://api.sieg.com"
DEFAULT_RETENTION_DAYS = 30
DEFAULT_PLAN_WINDOWS = {
    Plan.FREE.value: 5,
    Plan.STARTER.value: 7,
    Plan.PROFESSIONAL.value: 30,
    Plan.ENTERPRISE.value: 90,
}
CONFIG_PATH = Path("~/.config/fiscalsync/config.toml").expanduser()
TIME_FORMAT_HELP = "HH:MM"


def parse_time(value: str) -> tuple[int, int]:
    """Parse HH:MM into (hour, minute)."""
    try:
        hour_str, minute_str = value.strip().split(":", 1)
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        raise ValueError(f"Time must be {TIME_FORMAT_HELP}: {value!r}") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


class PathsConfig(BaseSettings):
    model_config = SettingsConfigDict(validate_default=True)

    data: Path = Path(DEFAULT_DATA)
    storage: Path = Path(DEFAULT_STORAGE)

    @field_validator("data", "storage", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()

    @property
    def database(self) -> Path:
        return self.data / "outcomes.sqlite3"

    @property
    def registry(self) -> Path:
        return self.data / "subscribers.yaml"


class SourceConfig(BaseSettings):
    """SIEG API access parameters."""

    base_url: str = DEFAULT_BASE_URL
    page_size: int = 50
    max_attempts: int = 5
    retry_delay: float = 5.0
    pacing_interval: float = 2.0
    timeout: float = 60.0


class RetentionConfig(BaseSettings):
    default_days: int = DEFAULT_RETENTION_DAYS


class ScheduleConfig(BaseSettings):
    housekeeping_time: str = "00:00"
    sweep_time: str | None = None  # optional daily sweep of all subscribers
    weekly_weekday: int = 0  # Monday
    max_workers: int = 4
    plan_windows: dict[str, int] = DEFAULT_PLAN_WINDOWS
    default_window: int = 5

    @field_validator("housekeeping_time", "sweep_time")
    @classmethod
    def check_time(cls, v: str | None) -> str | None:
        if v is not None:
            parse_time(v)
        return v

    @field_validator("weekly_weekday")
    @classmethod
    def check_weekday(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("weekly_weekday must be 0 (Monday) to 6 (Sunday)")
        return v

    def window_days(self, plan: Plan | str) -> int:
        """Rolling window length for a plan tier."""
        key = plan.value if isinstance(plan, Plan) else str(plan)
        return self.plan_windows.get(key, self.default_window)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FISCALSYNC_")

    paths: PathsConfig = Field(default_factory=PathsConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @model_validator(mode="after")
    def ensure_dirs(self) -> Self:
        self.paths.data.mkdir(parents=True, exist_ok=True)
        return self


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from TOML file, falling back to defaults."""
    path = config_path or CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)

        paths = PathsConfig(**data.get("paths", {}))
        source = SourceConfig(**data.get("source", {}))
        retention = RetentionConfig(**data.get("retention", {}))
        schedule = ScheduleConfig(**data.get("schedule", {}))
        return Settings(
            paths=paths, source=source, retention=retention, schedule=schedule
        )

    return Settings()
