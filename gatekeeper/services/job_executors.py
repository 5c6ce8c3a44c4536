"""
Job executors, keyed by a job's ``description``.

An executor is an async callable taking the Job. Raising marks the job
failed; returning normally marks it completed.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..domain.errors import UnknownJobType
from ..domain.ports import ApprovalNotifier
from ..models.job import Job

logger = logging.getLogger(__name__)

JobExecutor = Callable[[Job], Awaitable[Any]]

SEND_MESSAGE = "send_message"


class ExecutorRegistry:
    """Maps job descriptions to executors."""

    def __init__(self) -> None:
        self._executors: Dict[str, JobExecutor] = {}

    def register(self, description: str, executor: JobExecutor) -> None:
        if not description:
            raise ValueError("description is required")
        if description in self._executors:
            logger.info("Replacing executor for job type '%s'", description)
        self._executors[description] = executor

    def get(self, description: str) -> JobExecutor:
        """Return the executor for *description*.

        Raises:
            UnknownJobType: If none is registered.
        """
        executor = self._executors.get(description)
        if executor is None:
            raise UnknownJobType(description)
        return executor

    def is_registered(self, description: str) -> bool:
        return description in self._executors

    def descriptions(self) -> List[str]:
        return sorted(self._executors)

    async def execute(self, job: Job) -> Any:
        return await self.get(job.description)(job)


def parse_payload(job: Job) -> Dict[str, Any]:
    """Decode a JSON object payload.

    Raises:
        ValueError: If the payload is missing or not a JSON object.
    """
    if not job.payload:
        raise ValueError(f"Job {job.id} has no payload")
    data = json.loads(job.payload)
    if not isinstance(data, dict):
        raise ValueError(f"Job {job.id} payload must be a JSON object")
    return data


def make_send_message_executor(notifier: ApprovalNotifier) -> JobExecutor:
    """Executor for reminders: payload ``{"chat_id": ..., "text": ...}``."""

    async def send_message(job: Job) -> None:
        data = parse_payload(job)
        chat_id: Optional[Any] = data.get("chat_id")
        text: Optional[str] = data.get("text")
        if chat_id is None or not text:
            raise ValueError(f"Job {job.id} payload needs chat_id and text")
        await notifier.send_text(str(chat_id), text, parse_mode=data.get("parse_mode"))
        logger.info("Job %d: sent message to chat %s", job.id, chat_id)

    return send_message


def build_default_registry(notifier: ApprovalNotifier) -> ExecutorRegistry:
    """Registry with the built-in executors."""
    registry = ExecutorRegistry()
    registry.register(SEND_MESSAGE, make_send_message_executor(notifier))
    return registry
