"""
Job scheduler and its timer backends.

Provides:
- JobScheduler, the single-flight executor of due jobs
- TimerBackend ABC for in-process periodic timers
- JobQueueBackend wrapping python-telegram-bot's job_queue
"""

from .base import PeriodicTask, TimerBackend
from .job_queue_backend import JobQueueBackend
from .job_scheduler import JobScheduler, TickReport

__all__ = [
    "JobScheduler",
    "TickReport",
    "PeriodicTask",
    "TimerBackend",
    "JobQueueBackend",
]
