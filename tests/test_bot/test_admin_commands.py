"""Tests for operator commands and the add-identity dialogue handlers."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from gatekeeper.bot.admin_commands import (
    MAX_MESSAGE_LENGTH,
    MAX_REMIND_MINUTES,
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
from gatekeeper.core.authorization import UNAUTHORIZED_MESSAGE
from gatekeeper.core.services import build_services
from gatekeeper.models.identity import IdentityKind, IdentityStatus
from gatekeeper.models.job import JobStatus
from gatekeeper.services.job_executors import SEND_MESSAGE
from gatekeeper.utils.encryption import is_encrypted

OPERATOR = 1001
STRANGER = 2002


@pytest.fixture
def services(notifier, session_factory):
    return build_services(notifier, session_factory=session_factory)


def make_context(services, args=None):
    context = MagicMock()
    context.bot_data = {"services": services}
    context.args = args or []
    return context


def make_update(text="/admin", user_id=OPERATOR, chat_type="private"):
    update = Mock()
    update.effective_user = Mock(id=user_id)
    update.effective_chat = Mock(id=user_id, type=chat_type)
    update.message = Mock(text=text)
    update.message.reply_text = AsyncMock()
    return update


def reply_text(update):
    return update.message.reply_text.await_args.args[0]


# =============================================================================
# Access
# =============================================================================


class TestOperatorOnly:
    async def test_stranger_denied(self, services):
        update = make_update(user_id=STRANGER)

        await admin_command(update, make_context(services))

        assert reply_text(update) == UNAUTHORIZED_MESSAGE

    async def test_group_chat_ignored(self, services):
        update = make_update(chat_type="group")

        await identities_command(update, make_context(services))

        update.message.reply_text.assert_not_awaited()

    async def test_admin_menu(self, services):
        update = make_update()

        await admin_command(update, make_context(services))

        assert "Admin panel" in reply_text(update)
        assert update.message.reply_text.await_args.kwargs["reply_markup"] is not None

    async def test_start_for_everyone(self, services):
        stranger = make_update("/start", user_id=STRANGER)
        operator = make_update("/start")

        await start_command(stranger, make_context(services))
        await start_command(operator, make_context(services))

        assert "managed by its operator" in reply_text(stranger)
        assert "/admin" in reply_text(operator)


# =============================================================================
# /identities
# =============================================================================


class TestIdentitiesCommand:
    async def test_lists_grouped(self, services):
        await services.identity_admin.create_identity(IdentityKind.GROUP, "-100", "Team")
        await services.identity_admin.create_identity(
            IdentityKind.USER, "42", "Alice", status=IdentityStatus.PENDING
        )
        update = make_update("/identities")

        await identities_command(update, make_context(services))

        text = reply_text(update)
        assert text.index("Allowed") < text.index("Pending")
        assert "Team" in text and "Alice" in text

    async def test_filter_by_kind(self, services):
        await services.identity_admin.create_identity(IdentityKind.GROUP, "-100", "Team")
        await services.identity_admin.create_identity(IdentityKind.USER, "42", "Alice")
        update = make_update("/identities user")

        await identities_command(update, make_context(services, ["user"]))

        text = reply_text(update)
        assert "Alice" in text
        assert "Team" not in text

    async def test_bad_kind(self, services):
        update = make_update("/identities robots")

        await identities_command(update, make_context(services, ["robots"]))

        assert reply_text(update).startswith("Usage")

    async def test_long_listing_truncated(self, services):
        for i in range(120):
            await services.identity_admin.create_identity(
                IdentityKind.USER, str(10_000 + i), "A very long display name " * 2
            )
        update = make_update("/identities")

        await identities_command(update, make_context(services))

        assert len(reply_text(update)) <= MAX_MESSAGE_LENGTH


# =============================================================================
# Add-identity dialogue
# =============================================================================


class TestAddDialogue:
    async def test_full_flow(self, services, identity_repo):
        context = make_context(services)
        await add_command(make_update("/add"), context)

        ask_name = make_update("-100777")
        await admin_text_handler(ask_name, context)
        done = make_update("Book club")
        await admin_text_handler(done, context)

        assert "added" in reply_text(done)
        stored = await identity_repo.get_by_external_id(IdentityKind.GROUP, "-100777")
        assert stored.status == IdentityStatus.ALLOWED
        assert stored.display_name == "Book club"

    async def test_text_without_session_ignored(self, services):
        update = make_update("hello")

        await admin_text_handler(update, make_context(services))

        update.message.reply_text.assert_not_awaited()

    async def test_text_from_stranger_ignored(self, services):
        await services.add_identity.begin(str(OPERATOR))
        update = make_update("42", user_id=STRANGER)

        await admin_text_handler(update, make_context(services))

        update.message.reply_text.assert_not_awaited()

    async def test_cancel_command(self, services):
        await services.add_identity.begin(str(OPERATOR))
        update = make_update("/cancel")

        await cancel_command(update, make_context(services))

        assert reply_text(update) == "✖️ Cancelled."
        assert await services.sessions.get(str(OPERATOR)) is None

    async def test_unrelated_command_abandons_session(self, services):
        await services.add_identity.begin(str(OPERATOR))

        await abandon_admin_session(make_update("/jobs"), make_context(services))

        assert await services.sessions.get(str(OPERATOR)) is None

    async def test_cancel_command_does_not_abandon_first(self, services):
        await services.add_identity.begin(str(OPERATOR))

        await abandon_admin_session(make_update("/cancel@gatekeeper_bot"), make_context(services))

        assert await services.sessions.get(str(OPERATOR)) is not None


# =============================================================================
# /rediscover
# =============================================================================


class TestRediscoverCommand:
    async def test_resends_for_pending(self, services, notifier):
        await services.identity_admin.create_identity(
            IdentityKind.USER, "42", "Alice", status=IdentityStatus.PENDING
        )
        update = make_update("/rediscover user 42")

        await rediscover_command(update, make_context(services, ["user", "42"]))

        notifier.send_approval_request.assert_awaited_once()
        update.message.reply_text.assert_not_awaited()

    async def test_unknown_identity(self, services):
        update = make_update("/rediscover user 42")

        await rediscover_command(update, make_context(services, ["user", "42"]))

        assert "No user" in reply_text(update)

    async def test_usage(self, services):
        update = make_update("/rediscover")

        await rediscover_command(update, make_context(services, []))

        assert reply_text(update).startswith("Usage")


# =============================================================================
# Jobs
# =============================================================================


class TestJobCommands:
    async def test_jobs_lists_pending_and_failed(self, services, job_repo):
        now = datetime.now(timezone.utc)
        await services.jobs.enqueue(SEND_MESSAGE, now + timedelta(hours=1), {"chat_id": 1, "text": "a"})
        failed = await services.jobs.enqueue(SEND_MESSAGE, now, {"chat_id": 1, "text": "b"})
        await job_repo.finalize(failed.id, JobStatus.FAILED, now, "chat not found")
        update = make_update("/jobs")

        await jobs_command(update, make_context(services))

        text = reply_text(update)
        assert "Pending (1)" in text
        assert "Failed (1)" in text
        assert "chat not found" in text

    async def test_retry_failed_job(self, services, job_repo):
        now = datetime.now(timezone.utc)
        job = await services.jobs.enqueue(SEND_MESSAGE, now, {"chat_id": 1, "text": "b"})
        await job_repo.finalize(job.id, JobStatus.FAILED, now, "boom")
        update = make_update(f"/retry {job.id}")

        await retry_command(update, make_context(services, [str(job.id)]))

        assert "requeued" in reply_text(update)
        assert (await job_repo.get_by_id(job.id)).status == JobStatus.PENDING

    async def test_retry_pending_job_refused(self, services):
        job = await services.jobs.enqueue(
            SEND_MESSAGE, datetime.now(timezone.utc), {"chat_id": 1, "text": "b"}
        )
        update = make_update(f"/retry {job.id}")

        await retry_command(update, make_context(services, [str(job.id)]))

        assert "only failed jobs" in reply_text(update)

    async def test_retry_missing_job(self, services):
        update = make_update("/retry 99")

        await retry_command(update, make_context(services, ["99"]))

        assert "not found" in reply_text(update)

    async def test_remind_queues_message(self, services, job_repo):
        update = make_update("/remind 15 water the plants")

        await remind_command(update, make_context(services, ["15", "water", "the", "plants"]))

        jobs = await job_repo.list_by_status(JobStatus.PENDING)
        assert len(jobs) == 1
        assert jobs[0].description == SEND_MESSAGE
        assert json.loads(jobs[0].payload) == {
            "chat_id": OPERATOR,
            "text": "⏰ water the plants",
        }
        assert "Reminder" in reply_text(update)

    async def test_remind_usage(self, services):
        update = make_update("/remind soon")

        await remind_command(update, make_context(services, ["soon"]))

        assert reply_text(update).startswith("Usage")

    @pytest.mark.parametrize("minutes", ["99999999999", str(MAX_REMIND_MINUTES + 1), "²"])
    async def test_remind_out_of_range(self, services, job_repo, minutes):
        update = make_update(f"/remind {minutes} x")

        await remind_command(update, make_context(services, [minutes, "x"]))

        assert reply_text(update).startswith("Usage")
        assert await job_repo.list_by_status(JobStatus.PENDING) == []

    async def test_remind_longest_delay_accepted(self, services, job_repo):
        update = make_update()

        await remind_command(update, make_context(services, [str(MAX_REMIND_MINUTES), "x"]))

        jobs = await job_repo.list_by_status(JobStatus.PENDING)
        assert len(jobs) == 1


# =============================================================================
# /token
# =============================================================================


class TestTokenCommand:
    @pytest.fixture
    async def alice(self, identity_repo):
        return await identity_repo.create(
            IdentityKind.USER, "42", "Alice", status=IdentityStatus.ALLOWED
        )

    def make_token_update(self, text):
        update = make_update(text)
        update.message.delete = AsyncMock()
        update.effective_chat.send_message = AsyncMock()
        return update

    async def test_set_stores_encrypted_and_deletes_message(
        self, services, identity_repo, alice
    ):
        update = self.make_token_update("/token user 42 ghp_secretvalue")

        await token_command(update, make_context(services, ["user", "42", "ghp_secretvalue"]))

        stored = await identity_repo.get_by_external_id(IdentityKind.USER, "42")
        assert is_encrypted(stored.secret_token)
        assert "ghp_secretvalue" not in stored.secret_token
        assert await services.identity_admin.get_secret_token(
            IdentityKind.USER, "42"
        ) == "ghp_secretvalue"
        update.message.delete.assert_awaited_once()
        assert "Token saved" in update.effective_chat.send_message.await_args.args[0]

    async def test_set_survives_delete_failure(self, services, alice):
        update = self.make_token_update("/token user 42 ghp_secretvalue")
        update.message.delete.side_effect = RuntimeError("too old")

        await token_command(update, make_context(services, ["user", "42", "ghp_secretvalue"]))

        update.effective_chat.send_message.assert_awaited_once()

    async def test_show_is_masked(self, services, alice):
        await services.identity_admin.set_secret_token(IdentityKind.USER, "42", "ghp_secretvalue")
        update = self.make_token_update("/token user 42")

        await token_command(update, make_context(services, ["user", "42"]))

        text = reply_text(update)
        assert "ghp_secretvalue" not in text
        assert "alue" in text

    async def test_show_unset(self, services, alice):
        update = self.make_token_update("/token user 42")

        await token_command(update, make_context(services, ["user", "42"]))

        assert "No token set" in reply_text(update)

    async def test_clear(self, services, alice):
        await services.identity_admin.set_secret_token(IdentityKind.USER, "42", "ghp_secretvalue")
        update = self.make_token_update("/token user 42 clear")

        await token_command(update, make_context(services, ["user", "42", "clear"]))

        assert "cleared" in reply_text(update)
        assert await services.identity_admin.get_secret_token(IdentityKind.USER, "42") is None

    async def test_unknown_identity(self, services):
        update = self.make_token_update("/token group -5 abc")

        await token_command(update, make_context(services, ["group", "-5", "abc"]))

        assert "No group" in reply_text(update)
        update.message.delete.assert_not_awaited()

    @pytest.mark.parametrize("args", [[], ["user"], ["robot", "1"], ["user", "1", "a", "b"]])
    async def test_usage(self, services, args):
        update = self.make_token_update("/token")

        await token_command(update, make_context(services, args))

        assert reply_text(update).startswith("Usage")

    async def test_stranger_denied(self, services, alice):
        update = self.make_token_update("/token user 42")
        update.effective_user = Mock(id=STRANGER)
        update.effective_chat.id = STRANGER

        await token_command(update, make_context(services, ["user", "42"]))

        assert reply_text(update) == UNAUTHORIZED_MESSAGE
