"""
Keyboard layouts as plain row data.

Each function returns rows of ``{"text", "callback_data"}`` dicts; the
Telegram adapter turns them into InlineKeyboardMarkup.
"""

from typing import Dict, Iterable, List

from ..models.identity import IdentityKind, IdentityStatus, ManagedIdentity
from ..services.approval_service import ApprovalAction
from .callback_data import admin_callback_data, discovery_callback_data

Rows = List[List[Dict[str, str]]]

# Telegram caps inline keyboards at 100 buttons
MAX_IDENTITY_ROWS = 25


def approval_request_rows(kind: IdentityKind, external_id: str) -> Rows:
    return [
        [
            {
                "text": "✅ Approve",
                "callback_data": discovery_callback_data(
                    ApprovalAction.APPROVE, kind, external_id
                ),
            },
            {
                "text": "❌ Reject",
                "callback_data": discovery_callback_data(
                    ApprovalAction.REJECT, kind, external_id
                ),
            },
        ]
    ]


def admin_menu_rows() -> Rows:
    return [
        [
            {"text": "👥 Identities", "callback_data": admin_callback_data("list", "all")},
            {"text": "⏳ Pending", "callback_data": admin_callback_data("list", "pending")},
        ],
        [
            {"text": "➕ Add identity", "callback_data": admin_callback_data("add")},
            {"text": "🗓 Jobs", "callback_data": admin_callback_data("jobs")},
        ],
    ]


def identity_rows(identities: Iterable[ManagedIdentity]) -> Rows:
    """One row per identity: its name, then the actions that would change it."""
    rows: Rows = []
    for identity in identities:
        if len(rows) >= MAX_IDENTITY_ROWS:
            break
        row = []
        if identity.status != IdentityStatus.ALLOWED:
            row.append(
                {"text": "✅", "callback_data": admin_callback_data("approve", identity.id)}
            )
        if identity.status != IdentityStatus.REJECTED:
            row.append(
                {"text": "❌", "callback_data": admin_callback_data("reject", identity.id)}
            )
        row.append({"text": "🗑", "callback_data": admin_callback_data("remove", identity.id)})
        label = identity.display_name
        if len(label) > 24:
            label = label[:23] + "…"
        rows.append(
            [{"text": label, "callback_data": admin_callback_data("noop", identity.id)}]
            + row
        )
    rows.append([{"text": "« Menu", "callback_data": admin_callback_data("menu")}])
    return rows


def cancel_rows() -> Rows:
    return [[{"text": "✖️ Cancel", "callback_data": admin_callback_data("cancel")}]]
