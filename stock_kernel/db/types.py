"""
Module: stock_kernel.db.types
Responsibility: Column type decorators shared by every stock ledger model.
    Centralizes timestamp handling so that every backend returns identical
    values.
Architecture position: Kernel > DB.  May be imported by models/ and services/.
    MUST NOT import from any of those layers.

Invariants enforced:
    - Timezone-aware timestamps: UTCDateTime normalises to UTC on write and
      re-attaches UTC on read, so backends that drop tzinfo (SQLite) still
      hand back aware datetimes.

Failure modes:
    - ValueError on a naive datetime bound to a UTCDateTime column.
"""

from datetime import UTC

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    Contract:
        Accepts aware datetimes only; stores them normalised to UTC and
        returns aware UTC datetimes regardless of backend tz support.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

