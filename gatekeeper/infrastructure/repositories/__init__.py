from .sqlalchemy_identity_repository import SqlAlchemyIdentityRepository
from .sqlalchemy_job_repository import SqlAlchemyJobRepository

__all__ = [
    "SqlAlchemyIdentityRepository",
    "SqlAlchemyJobRepository",
]
