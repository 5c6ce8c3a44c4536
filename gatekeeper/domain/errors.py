"""
Typed domain errors for the gatekeeper.

Callers distinguish specific failure modes (unauthorized operator action,
missing identity, lost discovery race, unavailable store) and map each to
the appropriate behaviour: an operator-facing message, a silent no-op, or
a fail-closed drop.
"""

from typing import Optional


class DomainError(Exception):
    """Base class for all domain-specific errors."""


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class Unauthorized(DomainError):
    """A non-operator attempted a privileged action."""

    def __init__(self, requester_id: Optional[str]) -> None:
        self.requester_id = requester_id
        super().__init__(f"User {requester_id} is not the operator")


# ---------------------------------------------------------------------------
# Identity domain
# ---------------------------------------------------------------------------


class IdentityNotFound(DomainError):
    """No identity exists for the given reference."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Identity {reference} not found")


class IdentityConflict(DomainError):
    """An identity with the same (kind, external id) already exists.

    Raised by the store when a concurrent or repeated create loses the
    uniqueness race. Discovery treats it as "already registered".
    """

    def __init__(self, kind: str, external_id: str) -> None:
        self.kind = kind
        self.external_id = external_id
        super().__init__(f"Identity {kind}:{external_id} already exists")


class NotificationFailure(DomainError):
    """Sending or editing an operator notification failed."""


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class StoreUnavailable(DomainError):
    """Transient persistence failure; safe to retry on the next event/tick."""


# ---------------------------------------------------------------------------
# Job domain
# ---------------------------------------------------------------------------


class JobNotFound(DomainError):
    """Job with the given ID does not exist."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class UnknownJobType(DomainError):
    """No executor is registered for a job's description."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"No executor registered for job type '{description}'")


class ExecutorFailure(DomainError):
    """A job's executor raised; the job is marked failed."""

    def __init__(self, job_id: int, cause: BaseException) -> None:
        self.job_id = job_id
        self.cause = cause
        super().__init__(f"Job {job_id} failed: {type(cause).__name__}: {cause}")
