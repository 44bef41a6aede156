"""
Module: stock_kernel.models.stock_record
Responsibility: ORM persistence for one stock record per SKU: physical and
    reserved quantities, their derived availability and valuation, the
    low-stock / restock thresholds, and the version counter that the
    conditional write compares against.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    RESERVED_WITHIN_ON_HAND -- ck_stock_reserved_within_on_hand backs the
        domain check, so a faulty write path still cannot persist
        reserved > on_hand.
    AVAILABLE_DERIVED -- ck_stock_available_derived pins the stored
        ``available`` to on_hand - reserved.
    VERSION_MONOTONIC -- ``version`` is only ever written by
        StockRecordStore.compare_and_swap as ``expected + 1``.

Failure modes:
    - IntegrityError on duplicate sku_code (uq_stock_records_sku_code).
    - IntegrityError if a CHECK constraint is violated.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TimestampedBase


class StockRecordModel(TimestampedBase):
    """
    Persistent stock record for a single SKU.

    Contract:
        ``available`` and ``total_value`` are stored for querying but are
        always written together with the quantities they derive from, in the
        same UPDATE statement.

    Non-goals:
        - This model does NOT bump ``version`` itself (no ORM version_id_col);
          the store issues the conditional UPDATE explicitly.
    """

    __tablename__ = "stock_records"

    __table_args__ = (
        UniqueConstraint("sku_code", name="uq_stock_records_sku_code"),
        CheckConstraint("on_hand >= 0", name="ck_stock_on_hand_non_negative"),
        CheckConstraint(
            "reserved >= 0 AND reserved <= on_hand",
            name="ck_stock_reserved_within_on_hand",
        ),
        CheckConstraint(
            "available = on_hand - reserved",
            name="ck_stock_available_derived",
        ),
        CheckConstraint("version >= 1", name="ck_stock_version_positive"),
        Index("idx_stock_records_product", "product_id"),
        Index("idx_stock_records_active", "is_active"),
    )

    product_id: Mapped[UUID] = mapped_column(nullable=False)

    sku_code: Mapped[str] = mapped_column(String(64), nullable=False)

    # Quantities
    on_hand: Mapped[int] = mapped_column(nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(nullable=False, default=0)
    available: Mapped[int] = mapped_column(nullable=False, default=0)

    # Thresholds
    low_stock_threshold: Mapped[int] = mapped_column(nullable=False)
    restock_threshold: Mapped[int] = mapped_column(nullable=False)

    # Valuation
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Location
    location_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bin_location: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Restock schedule
    last_restocked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_restock_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<StockRecord {self.sku_code} on_hand={self.on_hand} "
            f"reserved={self.reserved} v{self.version}>"
        )
