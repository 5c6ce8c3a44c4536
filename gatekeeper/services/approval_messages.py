"""HTML texts for approval requests and their resolutions.

Texts are a pure function of the identity and its status, so re-editing a
resolved request always produces the same content.
"""

from html import escape
from typing import Dict, List, Optional

from ..models.identity import IdentityKind, IdentityStatus, ManagedIdentity

_KIND_LABELS = {
    IdentityKind.GROUP: ("Group", "Group ID"),
    IdentityKind.USER: ("User", "User ID"),
}

_STATUS_HEADERS = {
    IdentityStatus.ALLOWED: "✅ <b>{label} Approved</b>",
    IdentityStatus.REJECTED: "❌ <b>{label} Rejected</b>",
    IdentityStatus.PENDING: "⏳ <b>{label} Pending</b>",
}

_STATUS_FOOTERS = {
    IdentityStatus.ALLOWED: "The {noun} is now allowed to use the bot.",
    IdentityStatus.REJECTED: "The {noun} has been rejected and cannot use the bot.",
    IdentityStatus.PENDING: "Waiting for a decision.",
}

_STATUS_EMOJI = {
    IdentityStatus.ALLOWED: "✅",
    IdentityStatus.PENDING: "⏳",
    IdentityStatus.REJECTED: "❌",
}


def _identity_lines(kind: IdentityKind, external_id: str, name: str) -> str:
    label, id_label = _KIND_LABELS[kind]
    return (
        f"{'📍' if kind == IdentityKind.GROUP else '👤'} <b>{label}:</b> {escape(name)}\n"
        f"🆔 <b>{id_label}:</b> <code>{escape(external_id)}</code>"
    )


def format_approval_request(
    kind: IdentityKind, external_id: str, display_name: str, username: Optional[str] = None
) -> str:
    """Text of the operator notification for a newly discovered identity."""
    label, _ = _KIND_LABELS[kind]
    name = f"{display_name} (@{username})" if username else display_name
    return f"🔔 <b>New {label} Request</b>\n\n" + _identity_lines(
        kind, external_id, name
    )


def format_resolution(identity: ManagedIdentity) -> str:
    """Terminal text for a resolved request."""
    label, _ = _KIND_LABELS[identity.kind]
    header = _STATUS_HEADERS[identity.status].format(label=label)
    footer = _STATUS_FOOTERS[identity.status].format(noun=label.lower())
    return (
        f"{header}\n\n"
        f"{_identity_lines(identity.kind, identity.external_id, identity.get_display_name())}"
        f"\n\n{footer}"
    )


def format_removal(identity: ManagedIdentity) -> str:
    label, _ = _KIND_LABELS[identity.kind]
    return f"🗑️ <b>{label} Removed</b>\n\n" + _identity_lines(
        identity.kind, identity.external_id, identity.get_display_name()
    )


def format_identity_list(
    grouped: Dict[IdentityStatus, List[ManagedIdentity]], title: str = "Identities"
) -> str:
    """Operator listing of identities, allowed first, then pending, then rejected."""
    sections = [
        (IdentityStatus.ALLOWED, "Allowed"),
        (IdentityStatus.PENDING, "Pending"),
        (IdentityStatus.REJECTED, "Rejected"),
    ]
    message = f"👥 <b>{escape(title)}</b>\n\n"
    empty = True
    for status, heading in sections:
        members = grouped.get(status, [])
        if not members:
            continue
        empty = False
        message += f"{_STATUS_EMOJI[status]} <b>{heading}</b>\n"
        for identity in members:
            message += (
                f"• {escape(identity.get_display_name())} [{identity.kind.value}] "
                f"(ID: <code>{escape(identity.external_id)}</code>)\n"
            )
        message += "\n"
    if empty:
        message += "No identities found."
    return message


def status_emoji(status: IdentityStatus) -> str:
    return _STATUS_EMOJI[status]
