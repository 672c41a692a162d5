"""
BaseService -- abstract base for session-backed services.

Responsibility:
    Common constructor and session-handling contract for every service
    that talks to the database.  Subclasses receive a SQLAlchemy
    ``Session`` and use ``session.flush()``, never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  The SQL
    repositories in ``sql_repositories`` extend this class.

Failure modes:
    - A subclass that commits on its own breaks the caller's ability to
      save a job and its category changes atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fieldwork_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-backed services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; the caller controls transaction
          boundaries (see ``fieldwork_kernel.db.engine.session_scope``).
    """

    def __init__(self, session: Session):
        self.session = session
