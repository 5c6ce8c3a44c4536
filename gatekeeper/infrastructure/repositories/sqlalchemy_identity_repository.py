"""SQLAlchemy implementation of IdentityRepository."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatekeeper.core.database import get_db_session
from gatekeeper.domain.errors import IdentityConflict, StoreUnavailable
from gatekeeper.models.identity import IdentityKind, IdentityStatus, ManagedIdentity

logger = logging.getLogger(__name__)

# Columns the administrative override path may change
_UPDATABLE_FIELDS = frozenset(
    {
        "display_name",
        "username",
        "status",
        "secret_token",
        "notification_chat_id",
        "notification_message_id",
    }
)


class SqlAlchemyIdentityRepository:
    """Concrete IdentityRepository backed by SQLAlchemy async sessions.

    Each method opens its own short-lived session and commits before
    returning, so concurrent callers never share a transaction. When
    *session_factory* is omitted the application-wide ``get_db_session()``
    is used.
    """

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
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Identity store error: %s", e)
            raise StoreUnavailable(str(e)) from e

    async def get_by_external_id(
        self, kind: IdentityKind, external_id: str
    ) -> Optional[ManagedIdentity]:
        """Look up an identity by kind and Telegram id."""
        async with self._session() as session:
            result = await session.execute(
                select(ManagedIdentity).where(
                    ManagedIdentity.kind == kind,
                    ManagedIdentity.external_id == external_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_by_id(self, identity_id: int) -> Optional[ManagedIdentity]:
        """Look up an identity by internal database ID."""
        async with self._session() as session:
            result = await session.execute(
                select(ManagedIdentity).where(ManagedIdentity.id == identity_id)
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        kind: IdentityKind,
        external_id: str,
        display_name: str,
        status: IdentityStatus = IdentityStatus.PENDING,
        username: Optional[str] = None,
    ) -> ManagedIdentity:
        """Insert a new identity; the unique constraint decides races."""
        identity = ManagedIdentity(
            kind=kind,
            external_id=external_id,
            display_name=display_name,
            username=username,
            status=status,
        )
        try:
            async with self._session() as session:
                session.add(identity)
                await session.commit()
                await session.refresh(identity)
                return identity
        except IntegrityError as e:
            logger.debug("Create conflict for %s:%s: %s", kind.value, external_id, e)
            raise IdentityConflict(kind.value, external_id) from e

    async def update_status(self, identity_id: int, status: IdentityStatus) -> bool:
        """Set status only if it differs; returns True when a row changed."""
        async with self._session() as session:
            result = await session.execute(
                update(ManagedIdentity)
                .where(
                    ManagedIdentity.id == identity_id,
                    ManagedIdentity.status != status,
                )
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def update_fields(self, identity_id: int, **fields: Any) -> bool:
        """Update whitelisted columns on one identity."""
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update identity fields: {sorted(unknown)}")
        if not fields:
            return False

        async with self._session() as session:
            result = await session.execute(
                update(ManagedIdentity)
                .where(ManagedIdentity.id == identity_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, identity_id: int) -> bool:
        """Delete an identity by ID."""
        async with self._session() as session:
            result = await session.execute(
                delete(ManagedIdentity).where(ManagedIdentity.id == identity_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def list_grouped_by_status(
        self, kind: Optional[IdentityKind] = None
    ) -> Dict[IdentityStatus, List[ManagedIdentity]]:
        """Return identities bucketed by status, oldest first within a bucket."""
        stmt = select(ManagedIdentity).order_by(ManagedIdentity.id)
        if kind is not None:
            stmt = stmt.where(ManagedIdentity.kind == kind)

        async with self._session() as session:
            result = await session.execute(stmt)
            identities = list(result.scalars().all())

        grouped: Dict[IdentityStatus, List[ManagedIdentity]] = {
            status: [] for status in IdentityStatus
        }
        for identity in identities:
            grouped[identity.status].append(identity)
        return grouped
