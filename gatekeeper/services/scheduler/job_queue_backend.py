"""
JobQueueBackend - TimerBackend on top of python-telegram-bot's JobQueue.
"""

import logging
from typing import Dict, List

from telegram.ext import Application

from .base import PeriodicTask, TimerBackend

logger = logging.getLogger(__name__)


class JobQueueBackend(TimerBackend):
    """Fires PeriodicTasks through ``application.job_queue.run_repeating``."""

    def __init__(self, application: Application) -> None:
        self._application = application
        self._tasks: Dict[str, PeriodicTask] = {}

    @property
    def _job_queue(self):
        jq = self._application.job_queue
        if jq is None:
            raise RuntimeError(
                "JobQueue not available; install python-telegram-bot[job-queue]"
            )
        return jq

    def schedule(self, task: PeriodicTask) -> None:
        if task.name in self._tasks:
            self.cancel(task.name)

        self._job_queue.run_repeating(
            task.callback,
            interval=task.interval_seconds,
            first=task.first_delay_seconds,
            name=task.name,
        )
        self._tasks[task.name] = task
        logger.info(
            "Timer '%s' every %ss (first after %ss)",
            task.name,
            task.interval_seconds,
            task.first_delay_seconds,
        )

    def cancel(self, name: str) -> bool:
        if name not in self._tasks:
            return False
        for ptb_job in self._job_queue.get_jobs_by_name(name):
            ptb_job.schedule_removal()
        del self._tasks[name]
        logger.info("Timer '%s' cancelled", name)
        return True

    def list_tasks(self) -> List[str]:
        return list(self._tasks.keys())
