"""
Admin input sessions - multi-step text dialogues with the operator.

A session is keyed by operator id and lives from flow start until it is
completed, cancelled, abandoned by an unrelated command, or times out.
The only flow today is "add identity": the operator sends the Telegram id,
then the display name, and the identity is created as allowed.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, Optional

from ..domain.errors import IdentityConflict
from ..models.identity import IdentityKind, IdentityStatus
from .identity_admin_service import IdentityAdminService

logger = logging.getLogger(__name__)


class AdminFlow(enum.Enum):
    ADD_IDENTITY = "add_identity"


class AdminStep(enum.Enum):
    EXTERNAL_ID = "external_id"
    DISPLAY_NAME = "display_name"


@dataclass
class AdminSession:
    """In-progress dialogue with one operator."""

    operator_id: str
    flow: AdminFlow
    step: AdminStep
    collected: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def age_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()


class AdminSessionStore:
    """Process-local session map with its own lock."""

    def __init__(self, timeout_seconds: int = 600) -> None:
        self._sessions: Dict[str, AdminSession] = {}
        self._lock = asyncio.Lock()
        self._timeout_seconds = timeout_seconds

    async def start(self, operator_id: str, flow: AdminFlow, step: AdminStep) -> AdminSession:
        """Start a flow, replacing any session the operator already had."""
        async with self._lock:
            if operator_id in self._sessions:
                logger.info("Replacing admin session for operator %s", operator_id)
            session = AdminSession(operator_id=operator_id, flow=flow, step=step)
            self._sessions[operator_id] = session
            logger.info("Started admin session %s for operator %s", flow.value, operator_id)
            return session

    async def get(self, operator_id: str) -> Optional[AdminSession]:
        """Return the live session, dropping it if it timed out."""
        async with self._lock:
            session = self._sessions.get(operator_id)
            if session and session.age_seconds >= self._timeout_seconds:
                logger.info("Admin session for operator %s timed out", operator_id)
                del self._sessions[operator_id]
                return None
            return session

    async def advance(
        self, operator_id: str, step: AdminStep, **collected: Any
    ) -> Optional[AdminSession]:
        """Move the session to *step*, merging newly collected fields."""
        async with self._lock:
            session = self._sessions.get(operator_id)
            if session is None:
                return None
            session.step = step
            session.collected.update(collected)
            return session

    async def end(self, operator_id: str) -> Optional[AdminSession]:
        """Clear and return the operator's session (completion or cancel)."""
        async with self._lock:
            session = self._sessions.pop(operator_id, None)
            if session:
                logger.info(
                    "Ended admin session %s for operator %s",
                    session.flow.value,
                    operator_id,
                )
            return session

    async def active_count(self) -> int:
        async with self._lock:
            return len(self._sessions)


@dataclass(frozen=True)
class FlowReply:
    """What to tell the operator after a dialogue step."""

    text: str
    finished: bool
    offer_cancel: bool = False


def infer_kind(external_id: str) -> IdentityKind:
    """Telegram group chat ids are negative; user ids are positive."""
    return IdentityKind.GROUP if external_id.startswith("-") else IdentityKind.USER


class AddIdentityFlow:
    """Drives the two-step "add identity" dialogue."""

    ASK_EXTERNAL_ID = "➕ <b>Add identity</b>\n\nSend the Telegram id of the user or group:"
    ASK_DISPLAY_NAME = "Send the display name:"

    def __init__(self, store: AdminSessionStore, admin_service: IdentityAdminService) -> None:
        self._store = store
        self._admin = admin_service

    async def begin(self, operator_id: str) -> FlowReply:
        await self._store.start(operator_id, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)
        return FlowReply(self.ASK_EXTERNAL_ID, finished=False, offer_cancel=True)

    async def cancel(self, operator_id: str) -> bool:
        return await self._store.end(operator_id) is not None

    async def handle_text(self, operator_id: str, text: str) -> Optional[FlowReply]:
        """Feed one operator message into the flow.

        Returns None when the operator has no live session (the message is
        not part of a dialogue). A command abandons the session.
        """
        session = await self._store.get(operator_id)
        if session is None or session.flow != AdminFlow.ADD_IDENTITY:
            return None

        text = (text or "").strip()
        if text.startswith("/"):
            await self._store.end(operator_id)
            return None

        if session.step == AdminStep.EXTERNAL_ID:
            if not text.lstrip("-").isdigit():
                return FlowReply(
                    "❌ The id must be numeric. Send the Telegram id again:",
                    finished=False,
                    offer_cancel=True,
                )
            await self._store.advance(
                operator_id, AdminStep.DISPLAY_NAME, external_id=text
            )
            return FlowReply(self.ASK_DISPLAY_NAME, finished=False, offer_cancel=True)

        external_id = session.collected.get("external_id")
        await self._store.end(operator_id)
        if not external_id:
            return FlowReply("❌ Error: Telegram id missing, start again with /add.", finished=True)
        if not text:
            return FlowReply("❌ The name cannot be empty, start again with /add.", finished=True)

        kind = infer_kind(external_id)
        try:
            await self._admin.create_identity(
                kind=kind,
                external_id=external_id,
                display_name=text,
                status=IdentityStatus.ALLOWED,
            )
        except IdentityConflict:
            return FlowReply(
                f"❌ A {kind.value} with id <code>{external_id}</code> already exists.",
                finished=True,
            )

        return FlowReply(
            f"✅ {kind.value.capitalize()} added:\n\n"
            f"🆔 <code>{external_id}</code>\n👤 {escape(text)}",
            finished=True,
        )
