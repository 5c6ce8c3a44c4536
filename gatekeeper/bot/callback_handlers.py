import logging
from typing import Optional

from telegram import CallbackQuery, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from ..core.authorization import is_operator
from ..core.services import Services, get_services
from ..domain.errors import IdentityNotFound, Unauthorized
from ..domain.ports import NotificationRef
from ..models.identity import IdentityStatus
from ..services.approval_service import ApprovalAction
from .adapters.telegram_keyboards import inline_keyboard_from_rows
from .admin_commands import ADMIN_MENU_TEXT, render_identity_list, render_jobs
from .callback_data import AdminCallback, DiscoveryCallback, parse_callback_data
from .keyboards import admin_menu_rows, cancel_rows

logger = logging.getLogger(__name__)

UNAUTHORIZED_ALERT = "⛔ Only the operator can do this."

_ACTION_TOASTS = {
    (ApprovalAction.APPROVE, True): "✅ Approved",
    (ApprovalAction.APPROVE, False): "Already approved",
    (ApprovalAction.REJECT, True): "❌ Rejected",
    (ApprovalAction.REJECT, False): "Already rejected",
    (ApprovalAction.REMOVE, True): "🗑 Removed",
    (ApprovalAction.REMOVE, False): "Already removed",
}


async def handle_callback_query(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle all callback queries from inline keyboards"""
    query = update.callback_query
    if not query:
        return

    user = update.effective_user
    parsed = parse_callback_data(query.data)
    if user is None or parsed is None:
        await query.answer()
        return

    logger.info(f"Callback query from user {user.id}: {query.data}")
    services = get_services(context)

    if isinstance(parsed, DiscoveryCallback):
        await _handle_discovery_callback(query, services, parsed, user.id)
    else:
        await _handle_admin_callback(query, services, parsed, user.id)


async def _handle_discovery_callback(
    query: CallbackQuery, services: Services, data: DiscoveryCallback, user_id: int
) -> None:
    fallback_ref: Optional[NotificationRef] = None
    if query.message is not None:
        fallback_ref = NotificationRef(
            chat_id=str(query.message.chat_id), message_id=query.message.message_id
        )

    try:
        resolution = await services.approvals.resolve(
            data.action, data.kind, data.external_id, user_id, fallback_ref=fallback_ref
        )
    except Unauthorized:
        await query.answer(UNAUTHORIZED_ALERT, show_alert=True)
        return
    except IdentityNotFound:
        await query.answer(
            f"This {data.kind.value} no longer exists. Use /add to register it.",
            show_alert=True,
        )
        return
    except Exception as e:
        logger.error(f"Error resolving {query.data}: {e}", exc_info=True)
        await query.answer("⚠️ Could not apply the decision, try again.", show_alert=True)
        return

    await query.answer(_ACTION_TOASTS[(resolution.action, resolution.changed)])


async def _handle_admin_callback(
    query: CallbackQuery, services: Services, data: AdminCallback, user_id: int
) -> None:
    if not is_operator(user_id):
        await query.answer(UNAUTHORIZED_ALERT, show_alert=True)
        return

    if data.action == "menu":
        await query.answer()
        await _edit_panel(
            query, ADMIN_MENU_TEXT, inline_keyboard_from_rows(admin_menu_rows())
        )
    elif data.action == "list":
        await query.answer()
        status = IdentityStatus.PENDING if data.target == "pending" else None
        text, markup = await render_identity_list(services, status=status)
        await _edit_panel(query, text, markup)
    elif data.action == "jobs":
        await query.answer()
        await _edit_panel(
            query,
            await render_jobs(services),
            inline_keyboard_from_rows(admin_menu_rows()),
        )
    elif data.action == "add":
        await query.answer()
        reply = await services.add_identity.begin(str(user_id))
        await query.message.reply_text(
            reply.text,
            parse_mode=ParseMode.HTML,
            reply_markup=inline_keyboard_from_rows(cancel_rows()),
        )
    elif data.action == "cancel":
        cancelled = await services.add_identity.cancel(str(user_id))
        await query.answer("Cancelled" if cancelled else "Nothing to cancel")
        await _edit_panel(query, "✖️ Cancelled.", None)
    elif data.action in (a.value for a in ApprovalAction):
        await _apply_panel_action(query, services, ApprovalAction(data.action), data.target, user_id)
    else:
        await query.answer()


async def _apply_panel_action(
    query: CallbackQuery,
    services: Services,
    action: ApprovalAction,
    target: str,
    user_id: int,
) -> None:
    """Approve/reject/remove an identity from the list, then refresh the list."""
    if not target.isdigit():
        await query.answer()
        return

    try:
        identity = await services.identity_admin.get(int(target))
        resolution = await services.approvals.resolve(
            action, identity.kind, identity.external_id, user_id
        )
    except IdentityNotFound:
        await query.answer("Already removed")
    except Unauthorized:
        await query.answer(UNAUTHORIZED_ALERT, show_alert=True)
        return
    except Exception as e:
        logger.error(f"Admin panel {action.value} of {target} failed: {e}", exc_info=True)
        await query.answer("⚠️ Failed, try again.", show_alert=True)
        return
    else:
        await query.answer(_ACTION_TOASTS[(resolution.action, resolution.changed)])

    text, markup = await render_identity_list(services)
    await _edit_panel(query, text, markup)


async def _edit_panel(
    query: CallbackQuery, text: str, markup: Optional[InlineKeyboardMarkup]
) -> None:
    try:
        await query.edit_message_text(text, parse_mode=ParseMode.HTML, reply_markup=markup)
    except BadRequest as e:
        if "message is not modified" not in str(e).lower():
            raise
