"""SQLAlchemy implementation of JobRepository."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatekeeper.core.database import get_db_session
from gatekeeper.domain.errors import StoreUnavailable
from gatekeeper.models.job import Job, JobStatus

logger = logging.getLogger(__name__)


class SqlAlchemyJobRepository:
    """Concrete JobRepository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            if self._session_factory is not None:
                async with self._session_factory() as session:
                    yield session
            else:
                async with get_db_session() as session:
                    yield session
        except SQLAlchemyError as e:
            logger.error("Job store error: %s", e)
            raise StoreUnavailable(str(e)) from e

    async def add(
        self, description: str, payload: Optional[str], due_at: datetime
    ) -> Job:
        """Insert a new pending job."""
        job = Job(
            description=description,
            payload=payload,
            due_at=due_at,
            status=JobStatus.PENDING,
        )
        async with self._session() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job

    async def get_by_id(self, job_id: int) -> Optional[Job]:
        """Get a single job by primary key."""
        async with self._session() as session:
            result = await session.execute(select(Job).where(Job.id == job_id))
            return result.scalar_one_or_none()

    async def find_due(self, now: datetime) -> List[Job]:
        """Return pending jobs whose due_at is at or before *now*."""
        stmt = (
            select(Job)
            .where(Job.status == JobStatus.PENDING, Job.due_at <= now)
            .order_by(Job.due_at, Job.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def finalize(
        self,
        job_id: int,
        status: JobStatus,
        executed_at: datetime,
        error_message: Optional[str] = None,
    ) -> bool:
        """Mark a pending job completed or failed, stamping executed_at."""
        if not status.is_terminal:
            raise ValueError(f"Cannot finalize job with non-terminal status {status}")

        async with self._session() as session:
            result = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.PENDING)
                .values(
                    status=status,
                    executed_at=executed_at,
                    error_message=error_message,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def requeue(self, job_id: int) -> bool:
        """Return a failed job to pending, clearing its execution record."""
        async with self._session() as session:
            result = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.FAILED)
                .values(
                    status=JobStatus.PENDING,
                    executed_at=None,
                    error_message=None,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, job_id: int) -> bool:
        """Delete a job by ID."""
        async with self._session() as session:
            result = await session.execute(delete(Job).where(Job.id == job_id))
            await session.commit()
            return result.rowcount > 0

    async def delete_completed(self) -> int:
        """Delete completed jobs whose own delete did not go through."""
        async with self._session() as session:
            result = await session.execute(
                delete(Job).where(Job.status == JobStatus.COMPLETED)
            )
            await session.commit()
            return result.rowcount

    async def list_by_status(self, status: Optional[JobStatus] = None) -> List[Job]:
        """List jobs, optionally filtered by status."""
        stmt = select(Job).order_by(Job.due_at, Job.id)
        if status is not None:
            stmt = stmt.where(Job.status == status)

        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
