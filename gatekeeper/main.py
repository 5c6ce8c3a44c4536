import asyncio
import logging
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request

# Load project .env, then .env.local overrides
project_root = Path(__file__).parent.parent
for env_path in (project_root / ".env", project_root / ".env.local"):
    if env_path.exists():
        load_dotenv(env_path, override=True)

from .api.health import create_health_router
from .bot.bot import get_bot
from .core.config import get_settings
from .lifecycle import lifespan
from .utils.logging import setup_logging
from .utils.task_tracker import create_tracked_task
from .version import __version__

_settings = get_settings()
setup_logging(log_level=_settings.log_level, log_to_file=_settings.environment != "test")
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Telegram Gatekeeper",
    description="Access gate, discovery workflow and job scheduler for a Telegram bot",
    version=__version__,
    lifespan=lifespan,
)
app.include_router(create_health_router())


@app.get("/")
async def root() -> Dict[str, str]:
    return {"message": "Telegram Gatekeeper", "version": __version__, "status": "running"}


# Telegram redelivers an update when the webhook is slow to answer
_processed_updates: "OrderedDict[int, float]" = OrderedDict()
_processing_updates: set = set()
_updates_lock = asyncio.Lock()
MAX_TRACKED_UPDATES = 1000
UPDATE_EXPIRY_SECONDS = 600


def _forget_old_updates() -> None:
    cutoff = time.time() - UPDATE_EXPIRY_SECONDS
    for uid in [uid for uid, ts in _processed_updates.items() if ts < cutoff]:
        _processed_updates.pop(uid, None)
    while len(_processed_updates) > MAX_TRACKED_UPDATES:
        _processed_updates.popitem(last=False)


@app.post("/webhook")
async def webhook_endpoint(request: Request) -> Dict[str, Any]:
    """Telegram webhook endpoint"""
    webhook_secret = get_settings().telegram_webhook_secret
    if webhook_secret:
        received_secret = request.headers.get("X-Telegram-Bot-Api-Secret-Token")
        if received_secret != webhook_secret:
            logger.warning("Invalid webhook secret token")
            raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        update_data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    update_id = update_data.get("update_id") if isinstance(update_data, dict) else None
    if update_id is None:
        logger.warning("Webhook update missing update_id")
        raise HTTPException(status_code=400, detail="Missing update_id")

    async with _updates_lock:
        if len(_processed_updates) > MAX_TRACKED_UPDATES:
            _forget_old_updates()
        if update_id in _processed_updates:
            logger.info(f"Skipping duplicate update {update_id} (already processed)")
            return {"status": "ok", "note": "duplicate"}
        if update_id in _processing_updates:
            logger.info(f"Skipping duplicate update {update_id} (currently processing)")
            return {"status": "ok", "note": "in_progress"}
        _processing_updates.add(update_id)

    async def process_in_background():
        try:
            if not await get_bot().process_update(update_data):
                logger.error(f"Failed to process update {update_id}")
        finally:
            async with _updates_lock:
                _processing_updates.discard(update_id)
                _processed_updates[update_id] = time.time()

    create_tracked_task(process_in_background(), name=f"update_{update_id}")
    return {"status": "ok"}


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run("gatekeeper.main:app", host=host, port=port, log_level="info")
