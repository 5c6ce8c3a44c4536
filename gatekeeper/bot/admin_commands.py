"""
Operator commands.

All commands here are private-chat, operator-only (``require_operator``).
Rendering helpers are shared with the admin panel callbacks.
"""

import logging
from datetime import datetime, timedelta, timezone
from html import escape
from typing import List, Optional, Tuple

from telegram import InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from ..core.authorization import is_operator, require_operator
from ..core.services import Services, get_services
from ..domain.errors import IdentityNotFound, JobNotFound
from ..models.identity import IdentityKind, IdentityStatus
from ..models.job import JobStatus
from ..services.job_executors import SEND_MESSAGE
from ..services.job_queue_service import describe_job
from ..services.approval_messages import format_identity_list
from .adapters.telegram_keyboards import inline_keyboard_from_rows
from .keyboards import admin_menu_rows, cancel_rows, identity_rows

logger = logging.getLogger(__name__)

# Telegram rejects messages over 4096 characters
MAX_MESSAGE_LENGTH = 4000

# One year
MAX_REMIND_MINUTES = 525600

REMIND_USAGE = f"Usage: /remind <minutes 0-{MAX_REMIND_MINUTES}> <text>"
TOKEN_USAGE = "Usage: /token <group|user> <id> [value|clear]"

ADMIN_MENU_TEXT = (
    "🛠 <b>Admin panel</b>\n\n"
    "/identities [group|user] - list identities\n"
    "/add - add an identity by hand\n"
    "/rediscover &lt;kind&gt; &lt;id&gt; - re-send an approval request\n"
    "/jobs - pending and failed jobs\n"
    "/retry &lt;job_id&gt; - requeue a failed job\n"
    "/remind &lt;minutes&gt; &lt;text&gt; - schedule a reminder\n"
    "/token &lt;kind&gt; &lt;id&gt; [value|clear] - show or set a secret token\n"
    "/cancel - cancel the current dialogue"
)


def _truncate(text: str) -> str:
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 2] + "\n…"


def _parse_kind(value: str) -> Optional[IdentityKind]:
    try:
        return IdentityKind(value.lower())
    except ValueError:
        return None


async def render_identity_list(
    services: Services,
    kind: Optional[IdentityKind] = None,
    status: Optional[IdentityStatus] = None,
) -> Tuple[str, InlineKeyboardMarkup]:
    """Grouped identity listing plus per-identity action buttons."""
    grouped = await services.identity_admin.list_grouped_by_status(kind)
    if status is not None:
        grouped = {status: grouped.get(status, [])}

    title = "Identities"
    if kind is not None:
        title = f"{kind.value.capitalize()} identities"
    if status is not None:
        title = f"{title} ({status.value})"

    listed = [i for members in grouped.values() for i in members]
    text = _truncate(format_identity_list(grouped, title=title))
    return text, inline_keyboard_from_rows(identity_rows(listed))


async def render_jobs(services: Services) -> str:
    pending = await services.jobs.list_jobs(JobStatus.PENDING)
    failed = await services.jobs.list_jobs(JobStatus.FAILED)

    lines: List[str] = ["🗓 <b>Jobs</b>", ""]
    if pending:
        lines.append(f"⏳ <b>Pending ({len(pending)})</b>")
        lines.extend(escape(describe_job(job)) for job in pending)
        lines.append("")
    if failed:
        lines.append(f"❌ <b>Failed ({len(failed)})</b>")
        lines.extend(escape(describe_job(job)) for job in failed)
        lines.append("")
        lines.append("Use /retry &lt;job_id&gt; to requeue a failed job.")
    if not pending and not failed:
        lines.append("No jobs queued.")
    return _truncate("\n".join(lines))


@require_operator
async def admin_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /admin - show the admin menu."""
    await update.message.reply_text(
        ADMIN_MENU_TEXT,
        parse_mode=ParseMode.HTML,
        reply_markup=inline_keyboard_from_rows(admin_menu_rows()),
    )


@require_operator
async def identities_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /identities [group|user]."""
    kind = None
    if context.args:
        kind = _parse_kind(context.args[0])
        if kind is None:
            await update.message.reply_text("Usage: /identities [group|user]")
            return

    text, markup = await render_identity_list(get_services(context), kind=kind)
    await update.message.reply_text(text, parse_mode=ParseMode.HTML, reply_markup=markup)


@require_operator
async def add_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add - start the add-identity dialogue."""
    reply = await get_services(context).add_identity.begin(str(update.effective_user.id))
    await update.message.reply_text(
        reply.text,
        parse_mode=ParseMode.HTML,
        reply_markup=inline_keyboard_from_rows(cancel_rows()),
    )


@require_operator
async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel."""
    cancelled = await get_services(context).add_identity.cancel(
        str(update.effective_user.id)
    )
    await update.message.reply_text("✖️ Cancelled." if cancelled else "Nothing to cancel.")


@require_operator
async def rediscover_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /rediscover <kind> <external_id>."""
    args = context.args or []
    kind = _parse_kind(args[0]) if args else None
    if len(args) != 2 or kind is None:
        await update.message.reply_text("Usage: /rediscover <group|user> <id>")
        return

    external_id = args[1]
    try:
        ref = await get_services(context).discovery.resend_request(kind, external_id)
    except IdentityNotFound:
        await update.message.reply_text(f"❌ No {kind.value} with id {external_id}.")
        return
    except ValueError as e:
        await update.message.reply_text(f"ℹ️ {e}")
        return

    if ref is None:
        await update.message.reply_text("⚠️ Could not send the request, see logs.")


@require_operator
async def jobs_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /jobs."""
    text = await render_jobs(get_services(context))
    await update.message.reply_text(text, parse_mode=ParseMode.HTML)


@require_operator
async def retry_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /retry <job_id>."""
    args = context.args or []
    if len(args) != 1 or not args[0].isdigit():
        await update.message.reply_text("Usage: /retry <job_id>")
        return

    job_id = int(args[0])
    try:
        job = await get_services(context).jobs.requeue_failed(job_id)
    except JobNotFound:
        await update.message.reply_text(f"❌ Job #{job_id} not found.")
        return
    except ValueError as e:
        await update.message.reply_text(f"ℹ️ {e}")
        return

    await update.message.reply_text(f"🔁 Job #{job.id} requeued, it runs on the next tick.")


@require_operator
async def remind_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remind <minutes> <text> - queue a reminder to this chat."""
    args = context.args or []
    if len(args) < 2 or not args[0].isdecimal() or int(args[0]) > MAX_REMIND_MINUTES:
        await update.message.reply_text(REMIND_USAGE)
        return

    due_at = datetime.now(timezone.utc) + timedelta(minutes=int(args[0]))
    job = await get_services(context).jobs.enqueue(
        SEND_MESSAGE,
        due_at,
        payload={
            "chat_id": update.effective_chat.id,
            "text": "⏰ " + " ".join(args[1:]),
        },
    )
    await update.message.reply_text(
        f"⏰ Reminder #{job.id} set for {due_at.strftime('%Y-%m-%d %H:%M')} UTC."
    )


def _mask(token: str) -> str:
    return "•" * 4 + token[-4:] if len(token) > 8 else "•" * len(token)


@require_operator
async def token_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /token <kind> <id> [value|clear] - show, set or clear a secret token."""
    args = context.args or []
    kind = _parse_kind(args[0]) if args else None
    if len(args) not in (2, 3) or kind is None:
        await update.message.reply_text(TOKEN_USAGE)
        return

    external_id = args[1]
    admin = get_services(context).identity_admin
    try:
        if len(args) == 2:
            token = await admin.get_secret_token(kind, external_id)
            if token:
                masked = escape(_mask(token))
                await update.message.reply_text(
                    f"🔑 Token for {kind.value} {escape(external_id)}: <code>{masked}</code>",
                    parse_mode=ParseMode.HTML,
                )
            else:
                await update.message.reply_text(f"No token set for {kind.value} {external_id}.")
            return

        value = args[2]
        if value.lower() == "clear":
            await admin.set_secret_token(kind, external_id, None)
            await update.message.reply_text(f"🗑️ Token cleared for {kind.value} {external_id}.")
            return

        await admin.set_secret_token(kind, external_id, value)
    except IdentityNotFound:
        await update.message.reply_text(f"❌ No {kind.value} with id {external_id}.")
        return

    # The command message carries the token in clear text
    try:
        await update.message.delete()
    except Exception as e:
        logger.warning("Could not delete /token message: %s", e)
    await update.effective_chat.send_message(f"🔑 Token saved for {kind.value} {external_id}.")


async def admin_text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Feed operator text into an active admin dialogue."""
    user = update.effective_user
    if user is None or update.message is None or not is_operator(user.id):
        return

    reply = await get_services(context).add_identity.handle_text(
        str(user.id), update.message.text or ""
    )
    if reply is None:
        return

    markup = inline_keyboard_from_rows(cancel_rows()) if reply.offer_cancel else None
    await update.message.reply_text(reply.text, parse_mode=ParseMode.HTML, reply_markup=markup)


async def abandon_admin_session(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Any operator command other than /cancel ends an open dialogue."""
    user = update.effective_user
    message = update.message
    if user is None or message is None or not is_operator(user.id):
        return
    command = (message.text or "").split()[0].split("@")[0].lower()
    if command == "/cancel":
        return
    await get_services(context).add_identity.cancel(str(user.id))


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start."""
    user = update.effective_user
    if user is not None and is_operator(user.id):
        await update.message.reply_text("👋 Welcome back. Use /admin to manage access.")
        return
    await update.message.reply_text("👋 Hi! Access to this bot is managed by its operator.")
