"""Tests for TelegramBot wiring, the error handler and the JobQueue timer backend."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from telegram import Update
from telegram.ext import CallbackQueryHandler, CommandHandler, TypeHandler

from gatekeeper.bot.bot import (
    GATE_GROUP,
    SESSION_GROUP,
    TelegramBot,
    dispatch_key,
    error_handler,
)
from gatekeeper.core.services import SERVICES_KEY, Services
from gatekeeper.services.scheduler import JobQueueBackend, PeriodicTask
from gatekeeper.services.scheduler.job_scheduler import TICK_TASK_NAME


@pytest.fixture
def telegram_bot():
    return TelegramBot(token="123456:TEST-TOKEN")


# =============================================================================
# Application wiring
# =============================================================================


class TestTelegramBotSetup:
    def test_requires_token(self):
        settings = Mock(telegram_bot_token="")
        with pytest.raises(ValueError):
            TelegramBot(settings=settings)

    def test_services_in_bot_data(self, telegram_bot):
        assert isinstance(telegram_bot.application.bot_data[SERVICES_KEY], Services)

    def test_gate_runs_first(self, telegram_bot):
        handlers = telegram_bot.application.handlers

        assert min(handlers) == GATE_GROUP
        assert isinstance(handlers[GATE_GROUP][0], TypeHandler)
        assert SESSION_GROUP in handlers

    def test_commands_registered(self, telegram_bot):
        commands = set()
        for handler in telegram_bot.application.handlers[0]:
            if isinstance(handler, CommandHandler):
                commands |= set(handler.commands)

        assert commands == {
            "start",
            "admin",
            "identities",
            "add",
            "cancel",
            "rediscover",
            "jobs",
            "retry",
            "remind",
            "token",
        }

    def test_callback_handler_registered(self, telegram_bot):
        assert any(
            isinstance(h, CallbackQueryHandler) for h in telegram_bot.application.handlers[0]
        )

    async def test_process_update_failure_reported(self, telegram_bot):
        telegram_bot.application = MagicMock()
        telegram_bot.application.process_update = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("gatekeeper.bot.bot.Update.de_json", return_value=Mock(spec=Update)):
            assert await telegram_bot.process_update({"update_id": 1}) is False

    async def test_start_and_stop_drive_scheduler(self, telegram_bot):
        telegram_bot.application = MagicMock()
        telegram_bot.application.initialize = AsyncMock()
        telegram_bot.application.start = AsyncMock()
        telegram_bot.application.stop = AsyncMock()
        telegram_bot.application.shutdown = AsyncMock()
        telegram_bot.application.running = True
        job_queue = telegram_bot.application.job_queue

        await telegram_bot.start()

        job_queue.run_repeating.assert_called_once()
        assert job_queue.run_repeating.call_args.kwargs["name"] == TICK_TASK_NAME

        await telegram_bot.stop()

        telegram_bot.application.stop.assert_awaited_once()
        telegram_bot.application.shutdown.assert_awaited_once()


# =============================================================================
# Per-sender ordering
# =============================================================================


def sender_update(update_id, user_id):
    update = Mock(spec=Update, update_id=update_id)
    update.effective_user = Mock(id=user_id)
    update.effective_chat = Mock(id=user_id)
    return update


class TestSenderOrdering:
    async def _run(self, telegram_bot, updates):
        events = []

        async def dispatch(update):
            events.append(("start", update.update_id))
            # The first update is still being handled when the second arrives
            await asyncio.sleep(0.03 if update.update_id == 1 else 0)
            events.append(("end", update.update_id))

        telegram_bot.application = MagicMock()
        telegram_bot.application.process_update = AsyncMock(side_effect=dispatch)
        parsed = {u.update_id: u for u in updates}

        with patch(
            "gatekeeper.bot.bot.Update.de_json",
            side_effect=lambda data, bot: parsed[data["update_id"]],
        ):
            results = await asyncio.gather(
                *(telegram_bot.process_update({"update_id": u.update_id}) for u in updates)
            )

        assert all(results)
        return events

    async def test_same_sender_handled_one_at_a_time(self, telegram_bot):
        events = await self._run(telegram_bot, [sender_update(1, 77), sender_update(2, 77)])

        assert events == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]
        assert len(telegram_bot._sender_locks) == 0

    async def test_different_senders_overlap(self, telegram_bot):
        events = await self._run(telegram_bot, [sender_update(1, 77), sender_update(2, 88)])

        assert events[:2] == [("start", 1), ("start", 2)]

    def test_dispatch_key_falls_back_to_chat(self):
        update = Mock(spec=Update, update_id=9)
        update.effective_user = None
        update.effective_chat = Mock(id=-100)

        assert dispatch_key(sender_update(1, 77)) == "user:77"
        assert dispatch_key(update) == "chat:-100"

        update.effective_chat = None
        assert dispatch_key(update) == "update:9"


# =============================================================================
# Error handler
# =============================================================================


class TestErrorHandler:
    async def test_operator_notified(self):
        context = MagicMock()
        context.error = ValueError("<bad>")
        context.bot.send_message = AsyncMock()

        await error_handler(Mock(spec=Update, update_id=5), context)

        kwargs = context.bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == "1001"
        assert "update 5" in kwargs["text"]
        assert "&lt;bad&gt;" in kwargs["text"]

    async def test_send_failure_swallowed(self):
        context = MagicMock()
        context.error = ValueError("x")
        context.bot.send_message = AsyncMock(side_effect=RuntimeError("offline"))

        await error_handler(None, context)


# =============================================================================
# JobQueueBackend
# =============================================================================


class TestJobQueueBackend:
    async def _noop(self, context=None):
        return None

    def test_schedule_uses_run_repeating(self):
        application = MagicMock()
        backend = JobQueueBackend(application)

        backend.schedule(PeriodicTask("tick", self._noop, 60, first_delay_seconds=5))

        application.job_queue.run_repeating.assert_called_once_with(
            self._noop, interval=60, first=5, name="tick"
        )
        assert backend.list_tasks() == ["tick"]

    def test_reschedule_replaces(self):
        application = MagicMock()
        old_job = MagicMock()
        application.job_queue.get_jobs_by_name.return_value = [old_job]
        backend = JobQueueBackend(application)

        backend.schedule(PeriodicTask("tick", self._noop, 60))
        backend.schedule(PeriodicTask("tick", self._noop, 30))

        old_job.schedule_removal.assert_called_once()
        assert application.job_queue.run_repeating.call_count == 2
        assert backend.list_tasks() == ["tick"]

    def test_cancel_unknown(self):
        assert JobQueueBackend(MagicMock()).cancel("missing") is False

    def test_missing_job_queue(self):
        application = MagicMock()
        application.job_queue = None

        with pytest.raises(RuntimeError, match="job-queue"):
            JobQueueBackend(application).schedule(PeriodicTask("tick", self._noop, 60))


class TestPeriodicTask:
    async def _noop(self, context=None):
        return None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "interval_seconds": 60},
            {"name": "tick", "interval_seconds": 0},
            {"name": "tick", "interval_seconds": 60, "first_delay_seconds": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            PeriodicTask(callback=self._noop, **kwargs)
