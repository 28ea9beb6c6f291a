"""
Configuration settings for the application
"""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    # Expiration sweep
    sweep_batch_size: int = Field(default=300, alias="SWEEP_BATCH_SIZE")
    sweep_batch_size_night: int = Field(default=1000, alias="SWEEP_BATCH_SIZE_NIGHT")
    disable_sweep: bool = Field(default=False, alias="DISABLE_SWEEP")
    expired_notice_window_hours: int = Field(default=24, alias="EXPIRED_NOTICE_WINDOW_HOURS")

    # Trials
    trial_days: int = Field(default=7, alias="TRIAL_DAYS")

    # Pre-expiry reminders (comma separated day windows)
    reminder_windows: str = Field(default="7,3,1", alias="REMINDER_WINDOWS")
    reminder_lookback: int = Field(default=200, alias="REMINDER_LOOKBACK")
    reminder_page_size: int = Field(default=200, alias="REMINDER_PAGE_SIZE")

    # Deferred jobs
    job_dispatch_batch_size: int = Field(default=100, alias="JOB_DISPATCH_BATCH_SIZE")
    job_max_attempts: int = Field(default=5, alias="JOB_MAX_ATTEMPTS")

    @property
    def reminder_window_list(self) -> List[int]:
        return [int(part) for part in self.reminder_windows.split(",") if part.strip()]


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")

# Non-production deployments cap sweep batches to keep dev/test runs cheap
DEV_SWEEP_BATCH_CAP = 50
DEV_SWEEP_BATCH_CAP_NIGHT = 100
