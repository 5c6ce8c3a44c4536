"""
Application configuration using Pydantic Settings.

Centralizes all configuration with environment variable support.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Telegram
    telegram_bot_token: str = ""
    telegram_webhook_secret: str = ""
    telegram_webhook_url: Optional[str] = None

    # The single operator allowed to approve/reject identities
    bot_admin_telegram_id: str = ""

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/gatekeeper.db"

    # Job scheduler
    scheduler_poll_interval_seconds: int = 60
    scheduler_first_delay_seconds: int = 5

    # Require group members to be approved users as well as the group
    gate_group_members: bool = False

    # Admin input sessions
    admin_session_timeout_seconds: int = 600

    # Field encryption
    encryption_salt: str = ""

    # Environment
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
