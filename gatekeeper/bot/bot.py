import html
import logging
from typing import Optional

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from ..core.authorization import get_operator_id
from ..core.config import Settings, get_settings
from ..core.services import SERVICES_KEY, Services, build_services
from ..services.scheduler import JobQueueBackend
from ..utils.keyed_lock import KeyedLock
from .access_middleware import access_gate_middleware
from .adapters.telegram_notifier import TelegramApprovalNotifier
from .admin_commands import (
    abandon_admin_session,
    add_command,
    admin_command,
    admin_text_handler,
    cancel_command,
    identities_command,
    jobs_command,
    rediscover_command,
    remind_command,
    retry_command,
    start_command,
    token_command,
)
from .callback_handlers import handle_callback_query

logger = logging.getLogger(__name__)

# Handler groups: the gate sees every update first
GATE_GROUP = -2
SESSION_GROUP = -1


class TelegramBot:
    """Telegram bot application wrapper"""

    def __init__(self, token: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.token = token or self.settings.telegram_bot_token
        if not self.token:
            raise ValueError("Telegram bot token is required")

        self.application: Optional[Application] = None
        self.services: Optional[Services] = None
        # Updates from one sender are dispatched one at a time, in arrival order
        self._sender_locks = KeyedLock()
        self._setup_application()

    def _setup_application(self) -> None:
        """Setup the telegram application with handlers"""
        self.application = Application.builder().token(self.token).updater(None).build()

        notifier = TelegramApprovalNotifier(self.application.bot)
        self.services = build_services(notifier, self.settings)
        self.application.bot_data[SERVICES_KEY] = self.services

        self.application.add_handler(TypeHandler(Update, access_gate_middleware), group=GATE_GROUP)
        self.application.add_handler(
            MessageHandler(filters.COMMAND & filters.ChatType.PRIVATE, abandon_admin_session),
            group=SESSION_GROUP,
        )

        self.application.add_handler(CommandHandler("start", start_command))
        self.application.add_handler(CommandHandler("admin", admin_command))
        self.application.add_handler(CommandHandler("identities", identities_command))
        self.application.add_handler(CommandHandler("add", add_command))
        self.application.add_handler(CommandHandler("cancel", cancel_command))
        self.application.add_handler(CommandHandler("rediscover", rediscover_command))
        self.application.add_handler(CommandHandler("jobs", jobs_command))
        self.application.add_handler(CommandHandler("retry", retry_command))
        self.application.add_handler(CommandHandler("remind", remind_command))
        self.application.add_handler(CommandHandler("token", token_command))

        self.application.add_handler(CallbackQueryHandler(handle_callback_query))
        self.application.add_handler(
            MessageHandler(
                filters.TEXT & ~filters.COMMAND & filters.ChatType.PRIVATE,
                admin_text_handler,
            )
        )

        self.application.add_error_handler(error_handler)
        logger.info("Telegram bot application configured")

    async def process_update(self, update_data: dict) -> bool:
        """Process a webhook update"""
        try:
            update = Update.de_json(update_data, self.application.bot)
            if update:
                async with self._sender_locks.hold(dispatch_key(update)):
                    await self.application.process_update(update)
                return True
            else:
                logger.warning("Failed to parse update from webhook data")
                return False

        except Exception as e:
            logger.error(f"Error processing update: {e}")
            return False

    async def set_webhook(
        self, webhook_url: str, secret_token: Optional[str] = None
    ) -> bool:
        """Set the webhook URL for the bot"""
        try:
            await self.application.bot.set_webhook(
                url=webhook_url,
                secret_token=secret_token or None,
                allowed_updates=Update.ALL_TYPES,
            )
            logger.info(f"Webhook set to: {webhook_url}")
            return True
        except Exception as e:
            logger.error(f"Error setting webhook: {e}")
            return False

    async def start(self) -> None:
        """Initialize the application and start the job scheduler."""
        await self.application.initialize()
        # Application.start() also starts the JobQueue
        await self.application.start()
        self.services.scheduler.start(JobQueueBackend(self.application))
        logger.info("Bot application started")

    async def stop(self) -> None:
        """Stop the scheduler (waiting for a running tick), then the application."""
        try:
            await self.services.scheduler.stop()
        except Exception as e:
            logger.error(f"Error stopping job scheduler: {e}")
        try:
            if self.application.running:
                await self.application.stop()
            await self.application.shutdown()
            logger.info("Bot application shutdown")
        except Exception as e:
            logger.error(f"Error shutting down bot: {e}")


def dispatch_key(update: Update) -> str:
    """Serialization key for an update: its sender, else its chat."""
    if update.effective_user is not None:
        return f"user:{update.effective_user.id}"
    if update.effective_chat is not None:
        return f"chat:{update.effective_chat.id}"
    return f"update:{update.update_id}"


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log handler errors and tell the operator."""
    logger.error("Unhandled error while processing update", exc_info=context.error)

    operator_id = get_operator_id()
    if not operator_id:
        return
    update_id = update.update_id if isinstance(update, Update) else None
    try:
        await context.bot.send_message(
            chat_id=operator_id,
            text=(
                f"⚠️ <b>Bot error</b> (update {update_id})\n"
                f"<code>{html.escape(type(context.error).__name__)}: "
                f"{html.escape(str(context.error))[:500]}</code>"
            ),
            parse_mode=ParseMode.HTML,
        )
    except Exception as e:
        logger.error(f"Could not notify operator about error: {e}")


# Global bot instance
_bot_instance: Optional[TelegramBot] = None


def get_bot() -> TelegramBot:
    """Get the global bot instance"""
    global _bot_instance
    if _bot_instance is None:
        _bot_instance = TelegramBot()
    return _bot_instance


async def initialize_bot() -> TelegramBot:
    """Create (if needed) and start the global bot."""
    bot = get_bot()
    await bot.start()
    return bot


async def shutdown_bot() -> None:
    global _bot_instance
    if _bot_instance is not None:
        await _bot_instance.stop()
        _bot_instance = None
