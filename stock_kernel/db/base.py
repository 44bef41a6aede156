"""
Module: stock_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TimestampedBase mixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: type_annotation_map maps Decimal to Numeric(19, 4).
    - Timestamps: datetime maps to UTCDateTime (always timezone-aware).

Failure modes:
    - IntegrityError if a model attempts to INSERT a duplicate UUID.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from stock_kernel.db.types import UTCDateTime


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert UUID to string when storing."""
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        """Convert string back to UUID when loading."""
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(19, 4).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(19, 4),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TimestampedBase(Base):
    """
    Abstract base with creation / last-update timestamps.

    Contract:
        Timestamps are written explicitly from the injected Clock by the
        store, never from the database server clock, so deterministic
        tests and replays see exactly the times the kernel decided on.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)


# Re-export UUID for convenience
UUID = PyUUID
