import logging
import os
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["TELEGRAM_BOT_TOKEN"] = "test:token"
os.environ["TELEGRAM_WEBHOOK_SECRET"] = "test-secret"
os.environ["BOT_ADMIN_TELEGRAM_ID"] = "1001"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

OPERATOR_ID = 1001


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Re-read settings (and the derived encryption key) for every test."""
    from gatekeeper.core.config import get_settings
    from gatekeeper.utils.encryption import reset_encryption_key

    get_settings.cache_clear()
    reset_encryption_key()
    yield
    get_settings.cache_clear()
    reset_encryption_key()


@pytest.fixture(autouse=True)
def _strip_file_handlers():
    """Remove file handlers from root logger so tests never write to logs/."""
    root = logging.getLogger()
    saved = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
    for h in saved:
        root.removeHandler(h)
    yield
    for h in list(root.handlers):
        if isinstance(h, logging.FileHandler):
            root.removeHandler(h)
    for h in saved:
        root.addHandler(h)


@pytest.fixture
async def async_engine():
    """In-memory async SQLite engine with all tables."""
    from gatekeeper.models.base import Base

    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite, one connection per session.

    Needed where sessions run concurrently: the in-memory engine shares a
    single connection between sessions.
    """
    from gatekeeper.models.base import Base

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'gatekeeper.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def identity_repo(session_factory):
    from gatekeeper.infrastructure.repositories import SqlAlchemyIdentityRepository

    return SqlAlchemyIdentityRepository(session_factory)


@pytest.fixture
def job_repo(session_factory):
    from gatekeeper.infrastructure.repositories import SqlAlchemyJobRepository

    return SqlAlchemyJobRepository(session_factory)


@pytest.fixture
def notifier():
    """ApprovalNotifier double that hands out increasing message ids."""
    from gatekeeper.domain.ports import NotificationRef

    mock = Mock()
    counter = {"next": 500}

    async def _send(request):
        counter["next"] += 1
        return NotificationRef(chat_id=request.target_chat_id, message_id=counter["next"])

    async def _send_text(chat_id, text, parse_mode="HTML"):
        counter["next"] += 1
        return NotificationRef(chat_id=str(chat_id), message_id=counter["next"])

    mock.send_approval_request = AsyncMock(side_effect=_send)
    mock.edit_notification = AsyncMock(return_value=None)
    mock.send_text = AsyncMock(side_effect=_send_text)
    return mock
