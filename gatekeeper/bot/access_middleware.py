"""
Gate middleware: runs the access gate before any other handler.

Registered as a TypeHandler in a negative group so it sees every update
first. Updates that are not forwarded stop handler dispatch with
ApplicationHandlerStop; unknown identities are handed to discovery.
"""

import logging
from typing import Optional

from telegram import Update
from telegram.constants import ChatType
from telegram.ext import ApplicationHandlerStop, ContextTypes

from ..core.services import get_services
from ..services.access_gate import ChannelKind, GateDecision, InboundEvent

logger = logging.getLogger(__name__)

_GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)


def event_from_update(update: Update) -> Optional[InboundEvent]:
    """Build the gate's view of *update*; None if it has no usable chat."""
    chat = update.effective_chat
    if chat is None:
        return None

    if chat.type == ChatType.PRIVATE:
        channel_kind = ChannelKind.PRIVATE
    elif chat.type in _GROUP_CHAT_TYPES:
        channel_kind = ChannelKind.GROUP
    else:
        return None

    user = update.effective_user
    sender_id = None
    display_name = "Unknown"
    username = None
    if user is not None and not user.is_bot:
        sender_id = str(user.id)
        display_name = user.full_name or user.first_name or "Unknown"
        username = user.username

    return InboundEvent(
        channel_kind=channel_kind,
        sender_external_id=sender_id,
        channel_external_id=str(chat.id),
        display_name=display_name,
        channel_title=chat.title,
        username=username,
    )


async def access_gate_middleware(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Let the update through, or stop dispatch for it."""
    event = event_from_update(update)
    if event is None:
        logger.debug("Dropping update %s without a private or group chat", update.update_id)
        raise ApplicationHandlerStop

    services = get_services(context)
    result = await services.gate.admit(event)
    if result.forwarded:
        return

    if result.decision == GateDecision.NEEDS_DISCOVERY:
        for candidate in result.candidates:
            try:
                await services.discovery.discover(candidate)
            except Exception as e:
                logger.error(
                    "Discovery failed for %s %s: %s",
                    candidate.kind.value,
                    candidate.external_id,
                    e,
                )
    else:
        logger.debug(
            "Dropped update %s from chat %s (%s)",
            update.update_id,
            event.channel_external_id,
            result.reason,
        )
    raise ApplicationHandlerStop
