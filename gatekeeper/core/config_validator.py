"""
Startup configuration validation and redacted summary logging.

Called early in the FastAPI lifespan to fail fast on misconfiguration.
"""

import logging
import re
from typing import List
from urllib.parse import urlparse

from .config import Settings

logger = logging.getLogger(__name__)

# Values that must be non-empty for the bot to function.
_REQUIRED_VALUES = [
    ("telegram_bot_token", "TELEGRAM_BOT_TOKEN"),
    ("bot_admin_telegram_id", "BOT_ADMIN_TELEGRAM_ID"),
]

# Minimal pattern: scheme://... or scheme:///...
_SQLALCHEMY_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+\-.]*://")


def validate_config(settings: Settings) -> List[str]:
    """
    Validate application configuration and return a list of error strings.

    An empty list means the configuration is valid.
    """
    errors: List[str] = []

    # -- Required values ---------------------------------------------------
    for attr, env_name in _REQUIRED_VALUES:
        value = getattr(settings, attr, "")
        if not value or not str(value).strip():
            errors.append(f"{env_name} is required but missing or empty")

    admin_id = (settings.bot_admin_telegram_id or "").strip()
    if admin_id and not admin_id.lstrip("-").isdigit():
        errors.append(
            f"BOT_ADMIN_TELEGRAM_ID must be a numeric Telegram user id: '{admin_id}'"
        )

    # -- DATABASE_URL format -----------------------------------------------
    db_url = (settings.database_url or "").strip()
    if not db_url:
        errors.append("DATABASE_URL is required but missing or empty")
    elif not _SQLALCHEMY_URL_RE.match(db_url):
        errors.append(
            f"DATABASE_URL format is invalid (expected SQLAlchemy URL like "
            f"'sqlite+aiosqlite:///...' or 'postgresql+asyncpg://...'): "
            f"'{db_url}'"
        )

    # -- Scheduler ---------------------------------------------------------
    if settings.scheduler_poll_interval_seconds <= 0:
        errors.append("SCHEDULER_POLL_INTERVAL_SECONDS must be positive")
    if settings.scheduler_first_delay_seconds < 0:
        errors.append("SCHEDULER_FIRST_DELAY_SECONDS must not be negative")

    # -- Production requirements -------------------------------------------
    if settings.environment.lower() == "production":
        if not (settings.telegram_webhook_secret or "").strip():
            errors.append("TELEGRAM_WEBHOOK_SECRET is required in production")

    # -- TELEGRAM_WEBHOOK_URL format (optional) ----------------------------
    webhook_url = getattr(settings, "telegram_webhook_url", None)
    if webhook_url is not None and webhook_url.strip():
        parsed = urlparse(webhook_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(
                f"TELEGRAM_WEBHOOK_URL format is invalid "
                f"(expected http(s)://...): '{webhook_url}'"
            )

    return errors


def _redact(secret: str) -> str:
    """Return first 4 characters followed by '***', or '<empty>' if blank."""
    if not secret:
        return "<empty>"
    return secret[:4] + "***"


def _db_type(database_url: str) -> str:
    """Extract the database backend name from a SQLAlchemy URL."""
    if not database_url:
        return "none"
    scheme = database_url.split("://")[0] if "://" in database_url else database_url
    # e.g. "sqlite+aiosqlite" -> "sqlite", "postgresql+asyncpg" -> "postgresql"
    return scheme.split("+")[0].lower()


def log_config_summary(settings: Settings) -> None:
    """
    Log an INFO-level summary of loaded configuration with secrets redacted.

    Includes: environment, database type, operator and scheduler interval.
    """
    summary_lines = [
        f"environment={settings.environment}",
        f"database={_db_type(settings.database_url)}",
        f"operator={settings.bot_admin_telegram_id or 'none'}",
        f"poll_interval={settings.scheduler_poll_interval_seconds}s",
        f"gate_members={settings.gate_group_members}",
        f"bot_token={_redact(settings.telegram_bot_token)}",
        f"webhook_secret={_redact(settings.telegram_webhook_secret)}",
    ]

    logger.info("Config loaded: %s", " | ".join(summary_lines))
