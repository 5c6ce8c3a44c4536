"""
Health endpoint.

Returns uptime, version, database connectivity and bot status.
Lightweight and requires no authentication.
"""

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter

logger = logging.getLogger(__name__)

_start_time: float = time.monotonic()


def set_start_time() -> None:
    """Reset the start time (called during app startup)."""
    global _start_time
    _start_time = time.monotonic()


def get_uptime_seconds() -> float:
    return time.monotonic() - _start_time


async def check_database_health() -> bool:
    """True if the database answers a trivial query."""
    try:
        from ..core.database import health_check

        return await health_check()
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False


def _get_version() -> str:
    try:
        from ..version import __version__

        return __version__
    except Exception:
        return "unknown"


def _is_bot_initialized() -> bool:
    from ..lifecycle import is_bot_initialized

    return is_bot_initialized()


def create_health_router() -> APIRouter:
    """Create the health check router.

    A factory so the router can be included in the main app or used
    standalone in tests.
    """
    router = APIRouter()

    @router.get("/health")
    async def health_endpoint() -> Dict[str, Any]:
        db_healthy = await check_database_health()
        bot_initialized = _is_bot_initialized()

        return {
            "status": "healthy" if db_healthy and bot_initialized else "degraded",
            "service": "telegram-gatekeeper",
            "version": _get_version(),
            "uptime_seconds": round(get_uptime_seconds(), 2),
            "database": "connected" if db_healthy else "disconnected",
            "bot_initialized": bot_initialized,
        }

    return router
