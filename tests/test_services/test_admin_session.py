"""
Tests for admin input sessions and the add-identity dialogue.

Tests cover:
- AdminSessionStore lifecycle (start, get, advance, end)
- Session timeout handling
- AddIdentityFlow steps, validation and kind inference
- Abandonment by commands
"""

from datetime import datetime, timedelta, timezone

import pytest

from gatekeeper.models.identity import IdentityKind, IdentityStatus
from gatekeeper.services.admin_session import (
    AddIdentityFlow,
    AdminFlow,
    AdminSessionStore,
    AdminStep,
    infer_kind,
)
from gatekeeper.services.identity_admin_service import IdentityAdminService

OPERATOR = "1001"


@pytest.fixture
def store():
    return AdminSessionStore(timeout_seconds=600)


@pytest.fixture
def flow(store, identity_repo):
    return AddIdentityFlow(store, IdentityAdminService(identity_repo))


# =============================================================================
# AdminSessionStore
# =============================================================================


class TestAdminSessionStore:
    async def test_start_and_get(self, store):
        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)

        session = await store.get(OPERATOR)

        assert session.flow == AdminFlow.ADD_IDENTITY
        assert session.step == AdminStep.EXTERNAL_ID
        assert session.collected == {}
        assert await store.active_count() == 1

    async def test_start_replaces_existing(self, store):
        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)
        await store.advance(OPERATOR, AdminStep.DISPLAY_NAME, external_id="42")

        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)

        session = await store.get(OPERATOR)
        assert session.step == AdminStep.EXTERNAL_ID
        assert session.collected == {}

    async def test_advance_merges_fields(self, store):
        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)

        session = await store.advance(OPERATOR, AdminStep.DISPLAY_NAME, external_id="42")

        assert session.step == AdminStep.DISPLAY_NAME
        assert session.collected == {"external_id": "42"}

    async def test_advance_without_session(self, store):
        assert await store.advance(OPERATOR, AdminStep.DISPLAY_NAME) is None

    async def test_end(self, store):
        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)

        assert await store.end(OPERATOR) is not None
        assert await store.end(OPERATOR) is None
        assert await store.get(OPERATOR) is None

    async def test_timeout(self, store):
        session = await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)
        session.started_at = datetime.now(timezone.utc) - timedelta(seconds=601)

        assert await store.get(OPERATOR) is None
        assert await store.active_count() == 0

    async def test_zero_timeout_expires_immediately(self):
        store = AdminSessionStore(timeout_seconds=0)
        await store.start(OPERATOR, AdminFlow.ADD_IDENTITY, AdminStep.EXTERNAL_ID)
        assert await store.get(OPERATOR) is None


# =============================================================================
# AddIdentityFlow
# =============================================================================


class TestInferKind:
    def test_negative_is_group(self):
        assert infer_kind("-1001234") == IdentityKind.GROUP

    def test_positive_is_user(self):
        assert infer_kind("1234") == IdentityKind.USER


class TestAddIdentityFlow:
    async def test_full_dialogue_creates_allowed_user(self, flow, identity_repo, store):
        begin = await flow.begin(OPERATOR)
        assert begin.finished is False
        assert begin.offer_cancel is True

        step1 = await flow.handle_text(OPERATOR, "42")
        assert step1.text == AddIdentityFlow.ASK_DISPLAY_NAME

        done = await flow.handle_text(OPERATOR, "Alice <admin>")
        assert done.finished is True
        assert "User added" in done.text
        assert "Alice &lt;admin&gt;" in done.text

        identity = await identity_repo.get_by_external_id(IdentityKind.USER, "42")
        assert identity.status == IdentityStatus.ALLOWED
        assert identity.display_name == "Alice <admin>"
        assert await store.get(OPERATOR) is None

    async def test_negative_id_creates_group(self, flow, identity_repo):
        await flow.begin(OPERATOR)
        await flow.handle_text(OPERATOR, "-100123")
        done = await flow.handle_text(OPERATOR, "Team")

        assert "Group added" in done.text
        assert await identity_repo.get_by_external_id(IdentityKind.GROUP, "-100123")

    async def test_non_numeric_id_is_asked_again(self, flow, store):
        await flow.begin(OPERATOR)

        reply = await flow.handle_text(OPERATOR, "alice")

        assert reply.finished is False
        assert "numeric" in reply.text
        assert (await store.get(OPERATOR)).step == AdminStep.EXTERNAL_ID

    async def test_duplicate_reports_conflict(self, flow, identity_repo):
        await identity_repo.create(IdentityKind.USER, "42", "Alice")
        await flow.begin(OPERATOR)
        await flow.handle_text(OPERATOR, "42")

        reply = await flow.handle_text(OPERATOR, "Alice")

        assert reply.finished is True
        assert "already exists" in reply.text

    async def test_text_without_session_is_ignored(self, flow):
        assert await flow.handle_text(OPERATOR, "42") is None

    async def test_command_abandons_session(self, flow, store):
        await flow.begin(OPERATOR)

        assert await flow.handle_text(OPERATOR, "/identities") is None
        assert await store.get(OPERATOR) is None

    async def test_cancel(self, flow):
        await flow.begin(OPERATOR)

        assert await flow.cancel(OPERATOR) is True
        assert await flow.cancel(OPERATOR) is False
        assert await flow.handle_text(OPERATOR, "42") is None

    async def test_sessions_are_per_operator(self, flow):
        await flow.begin(OPERATOR)
        assert await flow.handle_text("2002", "42") is None
