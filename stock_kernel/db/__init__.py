"""Database layer - engine, base classes, types."""

from stock_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
)
from stock_kernel.db.types import UTCDateTime

__all__ = [
    "get_engine",
    "get_session_factory",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "UTCDateTime",
]
