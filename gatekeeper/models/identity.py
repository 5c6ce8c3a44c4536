"""
Managed identity model: a Telegram group or user with an approval status.
"""

import enum
from typing import Optional

from sqlalchemy import Enum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class IdentityKind(str, enum.Enum):
    """What an identity's external id refers to."""

    GROUP = "group"
    USER = "user"


class IdentityStatus(str, enum.Enum):
    """Approval status. Only the operator moves an identity between these."""

    PENDING = "pending"
    ALLOWED = "allowed"
    REJECTED = "rejected"


class ManagedIdentity(Base, TimestampMixin):
    __tablename__ = "managed_identities"
    __table_args__ = (
        UniqueConstraint("kind", "external_id", name="uq_identity_kind_external_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[IdentityKind] = mapped_column(
        Enum(IdentityKind, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[IdentityStatus] = mapped_column(
        Enum(IdentityStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=IdentityStatus.PENDING,
    )

    # Encrypted with utils.encryption; never stored in plaintext
    secret_token: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Where the live approval request was sent, so it can be edited in place
    notification_chat_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    notification_message_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )

    # --- Domain behavior ---

    def is_allowed(self) -> bool:
        return self.status == IdentityStatus.ALLOWED

    def has_live_request(self) -> bool:
        """True while an unresolved approval message can still be edited."""
        return (
            self.status == IdentityStatus.PENDING
            and self.notification_chat_id is not None
            and self.notification_message_id is not None
        )

    def get_display_name(self) -> str:
        """Display name with the @username appended when known."""
        if self.username:
            return f"{self.display_name} (@{self.username})"
        return self.display_name

    def __repr__(self) -> str:
        return (
            f"<ManagedIdentity(id={self.id}, kind={self.kind.value}, "
            f"external_id={self.external_id}, status={self.status.value})>"
        )
