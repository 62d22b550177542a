"""
Application configuration using Pydantic Settings
"""
from datetime import datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Database
    DATABASE_URL: str = "sqlite:///routinely.db"

    # Calendar days are computed in this zone. Empty = local time zone of the device
    TIMEZONE: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"

    # Reminders (APScheduler)
    REMINDERS_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_sqlalchemy_url(self) -> str:
        """
        Convert DATABASE_URL to SQLAlchemy format (postgresql+psycopg://)
        """
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
        return url

    def get_timezone(self) -> tzinfo:
        """Time zone used for calendar-day boundaries."""
        if self.TIMEZONE:
            return ZoneInfo(self.TIMEZONE)
        return datetime.now().astimezone().tzinfo


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
