"""
Discovery: first-contact registration of unknown identities.

An unknown group or user is inserted as pending and the operator gets one
approval request for it. The database uniqueness constraint decides who
wins when several events from the same new sender race; only the winner
notifies. Delivery failures leave the identity pending without a live
request, and the operator can resend it with ``resend_request``.
"""

import logging
from typing import Optional

from ..domain.errors import IdentityConflict, IdentityNotFound
from ..domain.ports import ApprovalNotifier, ApprovalRequest, NotificationRef
from ..domain.repositories import IdentityRepository
from ..models.identity import IdentityKind, IdentityStatus, ManagedIdentity
from .access_gate import DiscoveryCandidate
from .approval_messages import format_approval_request

logger = logging.getLogger(__name__)


class DiscoveryService:
    """Registers new identities as pending and notifies the operator once."""

    def __init__(
        self,
        identities: IdentityRepository,
        notifier: ApprovalNotifier,
        operator_chat_id: str,
    ) -> None:
        if not operator_chat_id:
            raise ValueError("operator_chat_id is required for discovery")
        self._identities = identities
        self._notifier = notifier
        self._operator_chat_id = operator_chat_id

    async def discover(self, candidate: DiscoveryCandidate) -> bool:
        """Register *candidate* and send its approval request.

        Returns:
            True if this call created the identity and delivered the
            notification; False if another event already registered it or
            delivery failed.
        """
        try:
            identity = await self._identities.create(
                kind=candidate.kind,
                external_id=candidate.external_id,
                display_name=candidate.display_name,
                status=IdentityStatus.PENDING,
                username=candidate.username,
            )
        except IdentityConflict:
            logger.debug(
                "[Discovery] %s %s already registered, not notifying again",
                candidate.kind.value,
                candidate.external_id,
            )
            return False

        logger.info(
            "[Discovery] New %s %s (%s) added as pending",
            identity.kind.value,
            identity.display_name,
            identity.external_id,
        )
        return await self._notify(identity) is not None

    async def resend_request(
        self, kind: IdentityKind, external_id: str
    ) -> Optional[NotificationRef]:
        """Send a fresh approval request for an identity still pending.

        Raises:
            IdentityNotFound: If no such identity exists.
            ValueError: If the identity has already been resolved.
        """
        identity = await self._identities.get_by_external_id(kind, external_id)
        if identity is None:
            raise IdentityNotFound(f"{kind.value}:{external_id}")
        if identity.status != IdentityStatus.PENDING:
            raise ValueError(
                f"{kind.value} {external_id} is already {identity.status.value}"
            )

        if identity.has_live_request():
            # Retire the old message so only one request stays actionable
            try:
                await self._notifier.edit_notification(
                    NotificationRef(
                        identity.notification_chat_id,
                        identity.notification_message_id,
                    ),
                    "♻️ This request was re-sent below.",
                )
            except Exception as e:
                logger.warning(
                    "[Discovery] Could not retire old request for %s: %s",
                    external_id,
                    e,
                )

        return await self._notify(identity)

    async def _notify(self, identity: ManagedIdentity) -> Optional[NotificationRef]:
        request = ApprovalRequest(
            kind=identity.kind.value,
            external_id=identity.external_id,
            text=format_approval_request(
                identity.kind,
                identity.external_id,
                identity.display_name,
                identity.username,
            ),
            target_chat_id=self._operator_chat_id,
        )
        try:
            ref = await self._notifier.send_approval_request(request)
        except Exception as e:
            logger.error(
                "[Discovery] Failed to notify operator about %s %s: %s",
                identity.kind.value,
                identity.external_id,
                e,
            )
            return None

        try:
            await self._identities.update_fields(
                identity.id,
                notification_chat_id=ref.chat_id,
                notification_message_id=ref.message_id,
            )
        except Exception as e:
            # Resolution falls back to the callback message coordinates
            logger.warning(
                "[Discovery] Could not store request coordinates for %s: %s",
                identity.external_id,
                e,
            )
        return ref
