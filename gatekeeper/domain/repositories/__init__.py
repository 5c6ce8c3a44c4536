from .identity_repository import IdentityRepository
from .job_repository import JobRepository

__all__ = ["IdentityRepository", "JobRepository"]
