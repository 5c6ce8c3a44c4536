"""
Approval resolution: operator decisions on discovered identities.

Approve and reject are conditional writes, so replaying a decision (a
double click, a redelivered callback) is a successful no-op. The original
request message is re-rendered from the identity's current state and its
buttons are removed, so a repeat edit carries identical content.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..core.authorization import is_operator
from ..domain.errors import IdentityNotFound, Unauthorized
from ..domain.ports import ApprovalNotifier, NotificationRef
from ..domain.repositories import IdentityRepository
from ..models.identity import IdentityKind, IdentityStatus, ManagedIdentity
from ..utils.keyed_lock import KeyedLock
from ..utils.logging import log_operator_action
from .approval_messages import format_removal, format_resolution

logger = logging.getLogger(__name__)


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REMOVE = "remove"


_TARGET_STATUS = {
    ApprovalAction.APPROVE: IdentityStatus.ALLOWED,
    ApprovalAction.REJECT: IdentityStatus.REJECTED,
}


@dataclass
class Resolution:
    """Outcome of a resolve() call."""

    action: ApprovalAction
    kind: IdentityKind
    external_id: str
    changed: bool
    identity: Optional[ManagedIdentity] = None
    text: Optional[str] = None
    notification_edited: bool = False


class ApprovalService:
    """Applies operator approve/reject/remove decisions idempotently."""

    def __init__(self, identities: IdentityRepository, notifier: ApprovalNotifier) -> None:
        self._identities = identities
        self._notifier = notifier
        # Write, re-read and edit for one identity happen as a unit
        self._identity_locks = KeyedLock()

    async def resolve(
        self,
        action: ApprovalAction,
        kind: IdentityKind,
        external_id: str,
        requester_id: Optional[Union[int, str]],
        fallback_ref: Optional[NotificationRef] = None,
    ) -> Resolution:
        """Apply *action* to the identity (kind, external_id).

        Args:
            fallback_ref: Message to edit when the identity has no stored
                request coordinates (e.g. the button message itself).

        Raises:
            Unauthorized: If *requester_id* is not the operator.
            IdentityNotFound: For approve/reject of a missing identity.
        """
        if not is_operator(requester_id):
            logger.warning(
                "[Approval] Unauthorized %s of %s:%s by %s",
                action.value,
                kind.value,
                external_id,
                requester_id,
            )
            raise Unauthorized(None if requester_id is None else str(requester_id))

        async with self._identity_locks.hold((kind, external_id)):
            if action == ApprovalAction.REMOVE:
                return await self._remove(kind, external_id, requester_id, fallback_ref)
            return await self._set_status(action, kind, external_id, requester_id, fallback_ref)

    async def _set_status(
        self,
        action: ApprovalAction,
        kind: IdentityKind,
        external_id: str,
        requester_id: Union[int, str],
        fallback_ref: Optional[NotificationRef],
    ) -> Resolution:
        identity = await self._identities.get_by_external_id(kind, external_id)
        if identity is None:
            raise IdentityNotFound(f"{kind.value}:{external_id}")

        target = _TARGET_STATUS[action]
        changed = await self._identities.update_status(identity.id, target)
        # Render from the stored row, not from what this call meant to write
        identity = await self._identities.get_by_id(identity.id) or identity

        if changed:
            logger.info(
                "[Approval] %s %s (%s) %s",
                kind.value.capitalize(),
                identity.display_name,
                external_id,
                target.value,
            )
        else:
            logger.info(
                "[Approval] %s %s already %s, nothing to do",
                kind.value,
                external_id,
                target.value,
            )
        log_operator_action(
            action.value,
            f"{kind.value}:{external_id}",
            str(requester_id),
            changed=changed,
        )

        text = format_resolution(identity)
        ref = self._request_ref(identity) or fallback_ref
        edited = await self._edit(ref, text)
        return Resolution(
            action=action,
            kind=kind,
            external_id=external_id,
            changed=changed,
            identity=identity,
            text=text,
            notification_edited=edited,
        )

    async def _remove(
        self,
        kind: IdentityKind,
        external_id: str,
        requester_id: Union[int, str],
        fallback_ref: Optional[NotificationRef],
    ) -> Resolution:
        identity = await self._identities.get_by_external_id(kind, external_id)
        if identity is None:
            logger.info("[Approval] %s %s already absent", kind.value, external_id)
            return Resolution(
                action=ApprovalAction.REMOVE,
                kind=kind,
                external_id=external_id,
                changed=False,
            )

        deleted = await self._identities.delete(identity.id)
        log_operator_action(
            ApprovalAction.REMOVE.value,
            f"{kind.value}:{external_id}",
            str(requester_id),
            changed=deleted,
        )
        text = format_removal(identity)
        ref = self._request_ref(identity) or fallback_ref
        edited = await self._edit(ref, text)
        logger.info("[Approval] %s %s (%s) removed", kind.value, identity.display_name, external_id)
        return Resolution(
            action=ApprovalAction.REMOVE,
            kind=kind,
            external_id=external_id,
            changed=deleted,
            identity=identity,
            text=text,
            notification_edited=edited,
        )

    @staticmethod
    def _request_ref(identity: ManagedIdentity) -> Optional[NotificationRef]:
        if identity.notification_chat_id and identity.notification_message_id:
            return NotificationRef(
                chat_id=identity.notification_chat_id,
                message_id=identity.notification_message_id,
            )
        return None

    async def _edit(self, ref: Optional[NotificationRef], text: str) -> bool:
        if ref is None:
            return False
        try:
            await self._notifier.edit_notification(ref, text)
            return True
        except Exception as e:
            # Status change stands even if the edit fails
            logger.error("[Approval] Failed to edit request message %s: %s", ref, e)
            return False
