"""
Timer abstraction for the job scheduler.

PeriodicTask describes a coroutine to run every N seconds.
TimerBackend is the ABC for in-process timer sources (e.g. JobQueueBackend).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, List


@dataclass
class PeriodicTask:
    """A named callback fired at a fixed interval.

    The callback receives whatever context object the backend passes
    (python-telegram-bot passes a CallbackContext).
    """

    name: str
    callback: Callable[..., Coroutine[Any, Any, None]]
    interval_seconds: float
    first_delay_seconds: float = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name is required")
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.first_delay_seconds < 0:
            raise ValueError("first_delay_seconds cannot be negative")


class TimerBackend(ABC):
    """ABC for in-process periodic timers."""

    @abstractmethod
    def schedule(self, task: PeriodicTask) -> None:
        """Register a task; re-registering a name replaces it."""

    @abstractmethod
    def cancel(self, name: str) -> bool:
        """Cancel a task by name. Returns True if found."""

    @abstractmethod
    def list_tasks(self) -> List[str]:
        """Return names of all registered tasks."""
