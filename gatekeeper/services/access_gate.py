"""
Access gate: decides, per inbound event, whether it reaches the handlers.

Private chats always pass (privileged handlers check the operator
themselves). Group chats pass when the group is registered and allowed;
with member gating on, the sending user must be allowed too. Unknown
identities are handed to discovery and the event is dropped; any store
failure drops the event.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.repositories import IdentityRepository
from ..models.identity import IdentityKind

logger = logging.getLogger(__name__)


class ChannelKind(str, enum.Enum):
    PRIVATE = "private"
    GROUP = "group"


class GateDecision(str, enum.Enum):
    FORWARD = "forward"
    DROP = "drop"
    NEEDS_DISCOVERY = "needs_discovery"


@dataclass(frozen=True)
class InboundEvent:
    """The slice of an inbound update the gate needs."""

    channel_kind: ChannelKind
    sender_external_id: Optional[str]
    channel_external_id: str
    display_name: str = "Unknown"
    channel_title: Optional[str] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class DiscoveryCandidate:
    """An identity seen for the first time."""

    kind: IdentityKind
    external_id: str
    display_name: str
    username: Optional[str] = None


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    candidates: List[DiscoveryCandidate] = field(default_factory=list)
    reason: str = ""

    @property
    def forwarded(self) -> bool:
        return self.decision == GateDecision.FORWARD


class AccessGate:
    """Classifies inbound events against the identity store."""

    def __init__(self, identities: IdentityRepository, gate_members: bool = False) -> None:
        self._identities = identities
        self._gate_members = gate_members

    async def admit(self, event: InboundEvent) -> GateResult:
        """Return FORWARD, DROP or NEEDS_DISCOVERY for *event*. Never raises."""
        if event.channel_kind == ChannelKind.PRIVATE:
            return GateResult(GateDecision.FORWARD, reason="private")

        try:
            return await self._admit_group_event(event)
        except Exception as e:
            logger.error(
                "Access gate lookup failed for chat %s, dropping event: %s",
                event.channel_external_id,
                e,
            )
            return GateResult(GateDecision.DROP, reason="lookup_failed")

    async def _admit_group_event(self, event: InboundEvent) -> GateResult:
        candidates: List[DiscoveryCandidate] = []

        group = await self._identities.get_by_external_id(
            IdentityKind.GROUP, event.channel_external_id
        )
        if group is None:
            candidates.append(
                DiscoveryCandidate(
                    kind=IdentityKind.GROUP,
                    external_id=event.channel_external_id,
                    display_name=event.channel_title or "Unknown Group",
                )
            )
        elif not group.is_allowed():
            return GateResult(GateDecision.DROP, reason=f"group_{group.status.value}")

        # Anonymous admins and channel posts carry no sender
        if self._gate_members and event.sender_external_id:
            user = await self._identities.get_by_external_id(
                IdentityKind.USER, event.sender_external_id
            )
            if user is None:
                candidates.append(
                    DiscoveryCandidate(
                        kind=IdentityKind.USER,
                        external_id=event.sender_external_id,
                        display_name=event.display_name or "Unknown",
                        username=event.username,
                    )
                )
            elif not user.is_allowed() and not candidates:
                return GateResult(
                    GateDecision.DROP, reason=f"user_{user.status.value}"
                )

        if candidates:
            return GateResult(
                GateDecision.NEEDS_DISCOVERY, candidates=candidates, reason="unknown"
            )
        return GateResult(GateDecision.FORWARD, reason="allowed")
