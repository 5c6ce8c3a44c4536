"""IdentityRepository protocol: defines the identity store contract."""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from gatekeeper.models.identity import IdentityKind, IdentityStatus, ManagedIdentity


@runtime_checkable
class IdentityRepository(Protocol):
    """Repository interface for ManagedIdentity access.

    Every method is a single-row, single-statement operation. Implementations
    raise ``IdentityConflict`` on a (kind, external_id) uniqueness violation
    and ``StoreUnavailable`` on transient persistence failures.
    """

    async def get_by_external_id(
        self, kind: IdentityKind, external_id: str
    ) -> Optional[ManagedIdentity]:
        """Look up an identity by kind and Telegram id, or None if not found."""
        ...

    async def get_by_id(self, identity_id: int) -> Optional[ManagedIdentity]:
        """Look up an identity by internal database ID, or None if not found."""
        ...

    async def create(
        self,
        kind: IdentityKind,
        external_id: str,
        display_name: str,
        status: IdentityStatus = IdentityStatus.PENDING,
        username: Optional[str] = None,
    ) -> ManagedIdentity:
        """Insert a new identity.

        Raises:
            IdentityConflict: If the (kind, external_id) pair already exists.
        """
        ...

    async def update_status(self, identity_id: int, status: IdentityStatus) -> bool:
        """Conditionally set the status.

        Returns:
            True if the row changed, False if it was already in *status*
            (or does not exist).
        """
        ...

    async def update_fields(self, identity_id: int, **fields: Any) -> bool:
        """Update arbitrary columns. Returns True if a row was updated."""
        ...

    async def delete(self, identity_id: int) -> bool:
        """Delete an identity. Returns True if a row was deleted."""
        ...

    async def list_grouped_by_status(
        self, kind: Optional[IdentityKind] = None
    ) -> Dict[IdentityStatus, List[ManagedIdentity]]:
        """Return all identities bucketed by status (every status key present)."""
        ...
