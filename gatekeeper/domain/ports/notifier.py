"""ApprovalNotifier port -- abstracts operator notifications."""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class NotificationRef:
    """Coordinates of a sent message, enough to edit it later."""

    chat_id: str
    message_id: int


@dataclass(frozen=True)
class ApprovalRequest:
    """An approval prompt for one identity, with approve/reject actions."""

    kind: str
    external_id: str
    text: str
    target_chat_id: str


@runtime_checkable
class ApprovalNotifier(Protocol):
    """Sends and edits operator-facing messages on the chat platform."""

    async def send_approval_request(self, request: ApprovalRequest) -> NotificationRef:
        """Send *request* with Approve/Reject controls; return where it landed."""
        ...

    async def edit_notification(self, ref: NotificationRef, text: str) -> None:
        """Replace the text of *ref* and remove its action controls.

        Editing to identical content must succeed silently.
        """
        ...

    async def send_text(
        self, chat_id: str, text: str, parse_mode: Optional[str] = "HTML"
    ) -> NotificationRef:
        """Send a plain message without controls."""
        ...
