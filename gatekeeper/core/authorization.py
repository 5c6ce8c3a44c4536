"""
Operator authorization for privileged commands and callbacks.

There is exactly one privileged principal, the operator configured by
BOT_ADMIN_TELEGRAM_ID. The access gate lets private chats through, so
every privileged handler re-checks the operator here on its own.
"""

import functools
import logging
from typing import Callable, Optional, Union

from .config import get_settings

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "⛔ Unauthorized. This command is only for the operator."


def get_operator_id() -> str:
    """Return the configured operator's Telegram user id as a string."""
    return (get_settings().bot_admin_telegram_id or "").strip()


def is_operator(user_id: Optional[Union[int, str]]) -> bool:
    """True if *user_id* is the designated operator.

    Fails closed: with no operator configured nobody is privileged.
    """
    operator_id = get_operator_id()
    if not operator_id or user_id is None:
        return False
    return str(user_id) == operator_id


def require_operator(func: Callable) -> Callable:
    """
    Decorator that restricts a command handler to the operator in a
    private chat.

    Usage::

        @require_operator
        async def identities_command(update, context):
            ...

    Group chats are ignored silently. A non-operator in a private chat
    gets a denial message and the handler is not called.

    Works with python-telegram-bot handler signature ``(update, context)``.
    """

    @functools.wraps(func)
    async def wrapper(update, context, *args, **kwargs):
        user = getattr(update, "effective_user", None)
        chat = getattr(update, "effective_chat", None)

        if user is None or chat is None:
            return
        if chat.type != "private":
            return

        if is_operator(user.id):
            return await func(update, context, *args, **kwargs)

        logger.info(
            "Authorization denied: user %s is not the operator for %s",
            user.id,
            func.__name__,
        )

        message = getattr(update, "message", None)
        if message is not None:
            await message.reply_text(UNAUTHORIZED_MESSAGE)

    return wrapper
