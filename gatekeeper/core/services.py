"""
Service wiring.

Builds every application service with its dependencies. The bot stores
the result in ``application.bot_data["services"]``; handlers fetch it
with ``get_services(context)``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..domain.ports import ApprovalNotifier
from ..infrastructure.repositories import (
    SqlAlchemyIdentityRepository,
    SqlAlchemyJobRepository,
)
from ..services.access_gate import AccessGate
from ..services.admin_session import AddIdentityFlow, AdminSessionStore
from ..services.approval_service import ApprovalService
from ..services.discovery_service import DiscoveryService
from ..services.identity_admin_service import IdentityAdminService
from ..services.job_executors import ExecutorRegistry, build_default_registry
from ..services.job_queue_service import JobQueueService
from ..services.scheduler import JobScheduler
from .config import Settings, get_settings

logger = logging.getLogger(__name__)

SERVICES_KEY = "services"


@dataclass
class Services:
    gate: AccessGate
    discovery: DiscoveryService
    approvals: ApprovalService
    identity_admin: IdentityAdminService
    sessions: AdminSessionStore
    add_identity: AddIdentityFlow
    executors: ExecutorRegistry
    jobs: JobQueueService
    scheduler: JobScheduler


def build_services(
    notifier: ApprovalNotifier,
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> Services:
    """Create all services over SQLAlchemy repositories.

    Args:
        notifier: Outbound operator messaging (Telegram adapter in production)
        settings: Defaults to get_settings()
        session_factory: Defaults to the global database session factory
    """
    settings = settings or get_settings()

    identities = SqlAlchemyIdentityRepository(session_factory)
    job_store = SqlAlchemyJobRepository(session_factory)

    identity_admin = IdentityAdminService(identities)
    sessions = AdminSessionStore(settings.admin_session_timeout_seconds)
    executors = build_default_registry(notifier)

    services = Services(
        gate=AccessGate(identities, gate_members=settings.gate_group_members),
        discovery=DiscoveryService(
            identities, notifier, settings.bot_admin_telegram_id.strip()
        ),
        approvals=ApprovalService(identities, notifier),
        identity_admin=identity_admin,
        sessions=sessions,
        add_identity=AddIdentityFlow(sessions, identity_admin),
        executors=executors,
        jobs=JobQueueService(job_store, executors),
        scheduler=JobScheduler(
            job_store,
            executors,
            interval_seconds=settings.scheduler_poll_interval_seconds,
            first_delay_seconds=settings.scheduler_first_delay_seconds,
        ),
    )
    logger.info("Services initialized (job types: %s)", ", ".join(executors.descriptions()))
    return services


def get_services(context: Any) -> Services:
    """Fetch the Services from a python-telegram-bot callback context."""
    services = context.bot_data.get(SERVICES_KEY)
    if services is None:
        raise RuntimeError("Services not initialized on this Application")
    return services
