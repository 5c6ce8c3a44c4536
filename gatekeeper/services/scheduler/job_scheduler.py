"""
JobScheduler - periodically executes due jobs from the job store.

Every tick selects pending jobs with ``due_at <= now`` (oldest first),
runs the executor registered for each job's description and records the
outcome: completed jobs are marked and then deleted, failed jobs are
marked with the error and kept for the operator. Each tick ends by
purging completed rows whose delete failed earlier. Selection never mutates
rows, so a crash between ticks loses nothing; anything left pending is
picked up again after a restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ...domain.errors import ExecutorFailure
from ...domain.repositories import JobRepository
from ...models.job import Job, JobStatus
from ..job_executors import ExecutorRegistry
from .base import PeriodicTask, TimerBackend

logger = logging.getLogger(__name__)

TICK_TASK_NAME = "job_scheduler_tick"


@dataclass
class TickReport:
    """Outcome of one tick."""

    started_at: datetime
    skipped: bool = False
    aborted: bool = False
    selected: int = 0
    completed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    purged: int = 0

    @property
    def ran(self) -> bool:
        return not (self.skipped or self.aborted)


class JobScheduler:
    """Single-flight executor of due jobs."""

    def __init__(
        self,
        jobs: JobRepository,
        executors: ExecutorRegistry,
        interval_seconds: float = 60,
        first_delay_seconds: float = 5,
    ) -> None:
        self._jobs = jobs
        self._executors = executors
        self._interval_seconds = interval_seconds
        self._first_delay_seconds = first_delay_seconds
        self._lock = asyncio.Lock()
        self._backend: Optional[TimerBackend] = None
        self._stopped = False

    @property
    def is_running(self) -> bool:
        """True while a tick is in flight."""
        return self._lock.locked()

    def start(self, backend: TimerBackend) -> None:
        """Register the periodic tick on *backend*."""
        self._stopped = False
        self._backend = backend
        backend.schedule(
            PeriodicTask(
                name=TICK_TASK_NAME,
                callback=self._on_timer,
                interval_seconds=self._interval_seconds,
                first_delay_seconds=self._first_delay_seconds,
            )
        )
        logger.info("Job scheduler started (every %ss)", self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight tick to finish."""
        self._stopped = True
        if self._backend is not None:
            self._backend.cancel(TICK_TASK_NAME)
            self._backend = None
        if self._lock.locked():
            logger.info("Waiting for in-flight tick to finish")
        async with self._lock:
            pass
        logger.info("Job scheduler stopped")

    async def _on_timer(self, context=None) -> None:
        if self._stopped:
            return
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"Scheduler tick crashed: {e}", exc_info=True)

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Run every job due at *now* (default: current UTC time).

        A tick that starts while another is still running is skipped.
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        report = TickReport(started_at=now)

        if self._lock.locked():
            logger.info("Previous tick still running, skipping")
            report.skipped = True
            return report

        async with self._lock:
            try:
                due = await self._jobs.find_due(now)
            except Exception as e:
                logger.error("Could not select due jobs, retrying next tick: %s", e)
                report.aborted = True
                return report

            report.selected = len(due)
            if due:
                logger.info("Tick at %s: %d due job(s)", now.isoformat(), len(due))

            for job in due:
                outcome = await self._run_job(job, now)
                if outcome == JobStatus.COMPLETED:
                    report.completed.append(job.id)
                elif outcome == JobStatus.FAILED:
                    report.failed.append(job.id)

            report.purged = await self._purge_completed()

        if report.failed:
            logger.warning(
                "Tick finished: %d completed, %d failed",
                len(report.completed),
                len(report.failed),
            )
        return report

    async def _run_job(self, job: Job, now: datetime) -> Optional[JobStatus]:
        """Execute one job and record its outcome.

        Returns the recorded status, or None when the outcome could not be
        written (the job stays pending and runs again on a later tick).
        """
        try:
            await self._executors.execute(job)
        except Exception as e:
            failure = ExecutorFailure(job.id, e)
            logger.error("%s (%s)", failure, job.description)
            try:
                await self._jobs.finalize(
                    job.id, JobStatus.FAILED, now, error_message=str(failure)
                )
            except Exception as store_error:
                logger.error("Could not mark job %d failed: %s", job.id, store_error)
                return None
            return JobStatus.FAILED

        try:
            await self._jobs.finalize(job.id, JobStatus.COMPLETED, now)
        except Exception as e:
            logger.error("Job %d ran but could not be finalized: %s", job.id, e)
            return None
        try:
            await self._jobs.delete(job.id)
        except Exception as e:
            # Purged with the other completed rows at the end of a tick
            logger.warning("Completed job %d could not be deleted yet: %s", job.id, e)
        logger.info("Job %d (%s) completed", job.id, job.description)
        return JobStatus.COMPLETED

    async def _purge_completed(self) -> int:
        try:
            purged = await self._jobs.delete_completed()
        except Exception as e:
            logger.error("Could not purge completed jobs: %s", e)
            return 0
        if purged:
            logger.info("Purged %d completed job(s) whose delete had failed", purged)
        return purged


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
