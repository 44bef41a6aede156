"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write.  A service receives a SQLAlchemy ``Session`` that
    it uses via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  The ConcurrencyController (or
    the test harness) owns commit/rollback, one transaction per attempt.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide reporting queries -- those belong in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
