"""
Deployment settings.

Loads settings from environment variables and .env file.
Only values that change between deployments live here; model and
feature tuning constants belong in pricecast.config.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment.

    Attributes:
        project_name: Display name used in logs and health reports.
        version: Current package version string.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        models_dir: Directory for persisted model versions. When unset
            the model registry keeps versions in memory only.
        scheduler_timezone: Timezone for cron-style workflow schedules.
        default_hours_ahead: Horizon used when a caller does not pass one.
        max_hours_ahead: Largest horizon a prediction request may ask for.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRICECAST_",
        extra="ignore",
    )

    project_name: str = "pricecast"
    version: str = "0.1.0"
    log_level: str = "INFO"
    models_dir: Optional[Path] = None
    scheduler_timezone: str = "UTC"
    default_hours_ahead: int = 24
    max_hours_ahead: int = 168


settings = Settings()
