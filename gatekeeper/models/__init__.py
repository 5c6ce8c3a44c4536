from .base import Base, TimestampMixin
from .identity import IdentityKind, IdentityStatus, ManagedIdentity
from .job import Job, JobStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "IdentityKind",
    "IdentityStatus",
    "ManagedIdentity",
    "Job",
    "JobStatus",
]
