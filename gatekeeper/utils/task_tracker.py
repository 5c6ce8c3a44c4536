"""
Task tracker for graceful shutdown.

Webhook updates are processed in background tasks so Telegram gets its
200 immediately; shutdown waits for (then cancels) whatever is left.
"""

import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger(__name__)

_active_tasks: Set[asyncio.Task] = set()


def create_tracked_task(
    coro: Coroutine,
    name: Optional[str] = None,
) -> asyncio.Task:
    """Create an asyncio task and track it until it finishes.

    Args:
        coro: The coroutine to run as a task
        name: Optional name for the task (for debugging)
    """
    task = asyncio.create_task(coro, name=name)
    _active_tasks.add(task)

    def _on_done(t: asyncio.Task) -> None:
        _active_tasks.discard(t)
        if t.cancelled():
            logger.info(f"Task cancelled: {t.get_name()}")
        elif t.exception() is not None:
            exc = t.exception()
            logger.error(
                f"Task failed: {t.get_name()}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    task.add_done_callback(_on_done)
    return task


def get_active_task_count() -> int:
    return len(_active_tasks)


async def drain_tasks(timeout: float = 5.0) -> int:
    """Wait up to *timeout* seconds for tracked tasks, then cancel the rest.

    Returns:
        Number of tasks that had to be cancelled
    """
    if not _active_tasks:
        return 0

    tasks = list(_active_tasks)
    logger.info(f"Waiting for {len(tasks)} background task(s)...")
    _, pending = await asyncio.wait(tasks, timeout=timeout)

    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning(f"Cancelled {len(pending)} task(s) still running after {timeout}s")
    return len(pending)
