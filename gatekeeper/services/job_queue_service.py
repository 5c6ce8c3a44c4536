"""
Job queue service - the producer side of the durable job queue.

Producers enqueue deferred work here; only the JobScheduler finalizes
jobs. Failed jobs stay in the queue until the operator requeues or
deletes them.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from ..domain.errors import JobNotFound
from ..domain.repositories import JobRepository
from ..models.job import Job, JobStatus
from .job_executors import ExecutorRegistry

logger = logging.getLogger(__name__)


class JobQueueService:
    """Create, inspect and manage queued jobs."""

    def __init__(
        self, jobs: JobRepository, registry: Optional[ExecutorRegistry] = None
    ) -> None:
        self._jobs = jobs
        self._registry = registry

    async def enqueue(
        self,
        description: str,
        due_at: datetime,
        payload: Union[str, dict, list, None] = None,
    ) -> Job:
        """Queue a job for execution at *due_at*.

        Args:
            description: Executor key (e.g. ``"send_message"``).
            due_at: Timezone-aware due time; stored as UTC.
            payload: Opaque string, or a dict/list serialized to JSON.

        Raises:
            ValueError: If due_at is naive or no executor handles *description*.
        """
        if due_at.tzinfo is None:
            raise ValueError("due_at must be timezone-aware (preferably UTC)")
        if self._registry is not None and not self._registry.is_registered(description):
            raise ValueError(f"No executor registered for job type '{description}'")

        if payload is not None and not isinstance(payload, str):
            payload = json.dumps(payload, ensure_ascii=False)

        job = await self._jobs.add(
            description=description,
            payload=payload,
            due_at=due_at.astimezone(timezone.utc),
        )
        logger.info("Queued job %d (%s) due at %s", job.id, description, due_at.isoformat())
        return job

    async def get_job(self, job_id: int) -> Job:
        """Raises JobNotFound if the job does not exist."""
        job = await self._jobs.get_by_id(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    async def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        return await self._jobs.list_by_status(status)

    async def delete_job(self, job_id: int) -> bool:
        deleted = await self._jobs.delete(job_id)
        if deleted:
            logger.info("Deleted job %d", job_id)
        return deleted

    async def requeue_failed(self, job_id: int) -> Job:
        """Put a failed job back in the queue for the next tick.

        Raises:
            JobNotFound: If the job does not exist.
            ValueError: If the job is not in the failed state.
        """
        job = await self.get_job(job_id)
        if job.status != JobStatus.FAILED:
            raise ValueError(f"Job {job_id} is {job.status.value}, only failed jobs can be retried")
        await self._jobs.requeue(job_id)
        logger.info("Requeued failed job %d (%s)", job_id, job.description)
        return await self.get_job(job_id)


def describe_job(job: Job) -> str:
    """One-line operator summary of a job."""
    line = f"#{job.id} {job.description} due {_fmt(job.due_at)} [{job.status.value}]"
    if job.error_message:
        line += f": {job.error_message[:120]}"
    return line


def _fmt(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    return str(value)
