"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain snapshots.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush().
    - DTO return convention: selectors return frozen snapshots or small
      dataclasses, never ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
