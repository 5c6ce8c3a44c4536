"""
Identity administration: the primitives behind the operator's commands.

List identities grouped by status, add one by hand, and manage its
encrypted secret token. Status changes and removal go through
ApprovalService. Authorization is the caller's job (``require_operator`` /
``is_operator``).
"""

import logging
from typing import Dict, List, Optional

from ..domain.errors import IdentityNotFound
from ..domain.repositories import IdentityRepository
from ..models.identity import IdentityKind, IdentityStatus, ManagedIdentity
from ..utils.encryption import decrypt_field, encrypt_field

logger = logging.getLogger(__name__)


class IdentityAdminService:
    """Operator-facing identity management."""

    def __init__(self, identities: IdentityRepository) -> None:
        self._identities = identities

    async def list_grouped_by_status(
        self, kind: Optional[IdentityKind] = None
    ) -> Dict[IdentityStatus, List[ManagedIdentity]]:
        """All identities (optionally of one kind) bucketed by status."""
        return await self._identities.list_grouped_by_status(kind)

    async def get(self, identity_id: int) -> ManagedIdentity:
        """Fetch one identity by internal id.

        Raises:
            IdentityNotFound: If it does not exist.
        """
        identity = await self._identities.get_by_id(identity_id)
        if identity is None:
            raise IdentityNotFound(str(identity_id))
        return identity

    async def create_identity(
        self,
        kind: IdentityKind,
        external_id: str,
        display_name: str,
        status: IdentityStatus = IdentityStatus.ALLOWED,
        username: Optional[str] = None,
    ) -> ManagedIdentity:
        """Register an identity by hand.

        Raises:
            IdentityConflict: If it already exists.
            ValueError: If external_id or display_name is blank.
        """
        external_id = (external_id or "").strip()
        display_name = (display_name or "").strip()
        if not external_id:
            raise ValueError("external_id is required")
        if not display_name:
            raise ValueError("display_name is required")

        identity = await self._identities.create(
            kind=kind,
            external_id=external_id,
            display_name=display_name,
            status=status,
            username=username,
        )
        logger.info(
            "[Admin] %s %s (%s) created as %s",
            kind.value,
            display_name,
            external_id,
            status.value,
        )
        return identity

    async def set_secret_token(
        self, kind: IdentityKind, external_id: str, token: Optional[str]
    ) -> None:
        """Store (or clear, with None) an identity's secret token, encrypted."""
        identity = await self._identities.get_by_external_id(kind, external_id)
        if identity is None:
            raise IdentityNotFound(f"{kind.value}:{external_id}")
        await self._identities.update_fields(
            identity.id, secret_token=encrypt_field(token) if token else None
        )
        logger.info("[Admin] Secret token updated for %s %s", kind.value, external_id)

    async def get_secret_token(
        self, kind: IdentityKind, external_id: str
    ) -> Optional[str]:
        """Return the decrypted secret token, or None if unset."""
        identity = await self._identities.get_by_external_id(kind, external_id)
        if identity is None:
            raise IdentityNotFound(f"{kind.value}:{external_id}")
        return decrypt_field(identity.secret_token)
