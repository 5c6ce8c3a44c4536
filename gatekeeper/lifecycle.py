"""
Application lifespan management.

Startup: validate configuration, initialize the database, start the
Telegram application (and with it the job scheduler), register the
webhook. Shutdown runs the same steps in reverse; the scheduler waits
for a running tick before the database is closed.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.health import set_start_time
from .bot.bot import initialize_bot, shutdown_bot
from .core.config import get_settings
from .core.config_validator import log_config_summary, validate_config
from .core.database import close_database, init_database
from .utils.task_tracker import drain_tasks, get_active_task_count

logger = logging.getLogger(__name__)

_bot_fully_initialized = False


def is_bot_initialized() -> bool:
    """Check if bot lifespan startup completed."""
    return _bot_fully_initialized


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global _bot_fully_initialized
    logger.info("🚀 Gatekeeper starting up...")
    set_start_time()

    settings = get_settings()
    config_errors = validate_config(settings)
    if config_errors:
        for err in config_errors:
            logger.error(f"Config validation error: {err}")
        logger.critical(
            "Aborting startup due to %d configuration error(s)", len(config_errors)
        )
        sys.exit(1)
    log_config_summary(settings)

    try:
        await init_database()
        logger.info("✅ Database initialized")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        raise

    bot_initialized = False
    try:
        bot = await initialize_bot()
        bot_initialized = True
        logger.info("✅ Telegram bot initialized")

        if settings.telegram_webhook_url:
            await bot.set_webhook(
                settings.telegram_webhook_url, settings.telegram_webhook_secret
            )
        else:
            logger.warning("⚠️ TELEGRAM_WEBHOOK_URL not set, skipping webhook setup")
    except Exception as e:
        logger.error(f"❌ Bot initialization failed - running in degraded mode: {e}")

    _bot_fully_initialized = bot_initialized

    yield

    logger.info("🛑 Gatekeeper shutting down...")
    _bot_fully_initialized = False

    active_count = get_active_task_count()
    if active_count > 0:
        logger.info(f"Waiting for {active_count} update(s) in flight...")
        await drain_tasks(timeout=5.0)

    if bot_initialized:
        await shutdown_bot()
    await close_database()
    logger.info("✅ Shutdown complete")
