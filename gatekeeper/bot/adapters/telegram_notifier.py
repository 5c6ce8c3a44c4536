"""Telegram ApprovalNotifier adapter.

Wraps telegram.Bot to implement the ApprovalNotifier protocol.
"""

import logging
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from ...domain.errors import NotificationFailure
from ...domain.ports import ApprovalRequest, NotificationRef
from ...models.identity import IdentityKind
from ..keyboards import approval_request_rows
from .telegram_keyboards import inline_keyboard_from_rows

logger = logging.getLogger(__name__)

_NOT_MODIFIED = "message is not modified"


class TelegramApprovalNotifier:
    """Adapter: telegram.Bot -> ApprovalNotifier protocol."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_approval_request(self, request: ApprovalRequest) -> NotificationRef:
        markup = inline_keyboard_from_rows(
            approval_request_rows(IdentityKind(request.kind), request.external_id)
        )
        try:
            message = await self._bot.send_message(
                chat_id=request.target_chat_id,
                text=request.text,
                parse_mode=ParseMode.HTML,
                reply_markup=markup,
            )
        except TelegramError as e:
            raise NotificationFailure(f"send to {request.target_chat_id} failed: {e}") from e
        return NotificationRef(chat_id=str(message.chat_id), message_id=message.message_id)

    async def edit_notification(self, ref: NotificationRef, text: str) -> None:
        # Omitting reply_markup drops the inline keyboard
        try:
            await self._bot.edit_message_text(
                chat_id=ref.chat_id,
                message_id=ref.message_id,
                text=text,
                parse_mode=ParseMode.HTML,
            )
        except BadRequest as e:
            if _NOT_MODIFIED in str(e).lower():
                logger.debug("Message %s already up to date", ref)
                return
            raise NotificationFailure(f"edit of {ref} failed: {e}") from e
        except TelegramError as e:
            raise NotificationFailure(f"edit of {ref} failed: {e}") from e

    async def send_text(
        self, chat_id: str, text: str, parse_mode: Optional[str] = ParseMode.HTML
    ) -> NotificationRef:
        try:
            message = await self._bot.send_message(
                chat_id=chat_id, text=text, parse_mode=parse_mode
            )
        except TelegramError as e:
            raise NotificationFailure(f"send to {chat_id} failed: {e}") from e
        return NotificationRef(chat_id=str(message.chat_id), message_id=message.message_id)
