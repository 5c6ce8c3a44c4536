"""JobRepository protocol: defines the durable job queue contract."""

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from gatekeeper.models.job import Job, JobStatus


@runtime_checkable
class JobRepository(Protocol):
    """Repository interface for Job access."""

    async def add(
        self, description: str, payload: Optional[str], due_at: datetime
    ) -> Job:
        """Insert a new pending job and return it."""
        ...

    async def get_by_id(self, job_id: int) -> Optional[Job]:
        """Look up a job by ID, or None if not found."""
        ...

    async def find_due(self, now: datetime) -> List[Job]:
        """Return pending jobs with ``due_at <= now`` ordered by (due_at, id)."""
        ...

    async def finalize(
        self,
        job_id: int,
        status: JobStatus,
        executed_at: datetime,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a pending job to a terminal status.

        Returns:
            True if the job was pending and is now terminal.
        """
        ...

    async def requeue(self, job_id: int) -> bool:
        """Move a failed job back to pending. Returns True if it changed."""
        ...

    async def delete(self, job_id: int) -> bool:
        """Delete a job. Returns True if a row was deleted."""
        ...

    async def delete_completed(self) -> int:
        """Delete every completed job. Returns the number of rows deleted."""
        ...

    async def list_by_status(self, status: Optional[JobStatus] = None) -> List[Job]:
        """List jobs, optionally filtered by status, ordered by (due_at, id)."""
        ...
