"""
Inline button callback data.

Discovery buttons carry the identity they resolve:
``approve:<kind>:<external_id>`` / ``reject:<kind>:<external_id>``.
Admin panel buttons use ``admin:<action>:<target>``. Telegram limits
callback data to 64 bytes; both formats stay well below that.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..models.identity import IdentityKind
from ..services.approval_service import ApprovalAction

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "admin"
MAX_CALLBACK_DATA_BYTES = 64


@dataclass(frozen=True)
class DiscoveryCallback:
    action: ApprovalAction
    kind: IdentityKind
    external_id: str


@dataclass(frozen=True)
class AdminCallback:
    action: str
    target: str = "0"


def discovery_callback_data(
    action: ApprovalAction, kind: IdentityKind, external_id: str
) -> str:
    data = f"{action.value}:{kind.value}:{external_id}"
    if len(data.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
        raise ValueError(f"Callback data too long: {data}")
    return data


def admin_callback_data(action: str, target: Union[int, str] = 0) -> str:
    return f"{ADMIN_PREFIX}:{action}:{target}"


def parse_callback_data(
    data: Optional[str],
) -> Optional[Union[DiscoveryCallback, AdminCallback]]:
    """Parse button data; None for anything malformed or foreign."""
    if not data:
        return None

    parts = data.split(":", 2)
    if len(parts) != 3 or not parts[2]:
        logger.debug("Ignoring malformed callback data: %s", data)
        return None

    prefix, middle, rest = parts
    if prefix == ADMIN_PREFIX:
        return AdminCallback(action=middle, target=rest)

    try:
        action = ApprovalAction(prefix)
        kind = IdentityKind(middle)
    except ValueError:
        logger.debug("Ignoring unknown callback data: %s", data)
        return None
    if action == ApprovalAction.REMOVE:
        return None
    return DiscoveryCallback(action=action, kind=kind, external_id=rest)
