"""
Module: stock_kernel.models.reservation
Responsibility: ORM persistence for reservations (holds) against a stock
    record.  A reservation is identified by the caller-supplied
    reservation_id, which is single-use per record.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    SINGLE_SETTLEMENT -- state moves HELD -> CONSUMED | RELEASED once;
        uq_stock_reservations_record_reservation keeps an id from being
        reused on the same SKU after it settles.
    held + consumed + released == quantity (ck_stock_reservations_balanced).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class StockReservationModel(Base):
    """Persistent reservation of units on one stock record."""

    __tablename__ = "stock_reservations"

    __table_args__ = (
        UniqueConstraint(
            "record_id",
            "reservation_id",
            name="uq_stock_reservations_record_reservation",
        ),
        CheckConstraint(
            "state IN ('held', 'consumed', 'released')",
            name="ck_stock_reservations_valid_state",
        ),
        CheckConstraint("quantity > 0", name="ck_stock_reservations_quantity_positive"),
        CheckConstraint(
            "held_quantity + consumed_quantity + released_quantity = quantity",
            name="ck_stock_reservations_balanced",
        ),
        Index("idx_stock_reservations_expiry", "state", "expires_at"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_records.id"),
        nullable=False,
    )
    sku_code: Mapped[str] = mapped_column(String(64), nullable=False)
    reservation_id: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)
    held_quantity: Mapped[int] = mapped_column(nullable=False)
    consumed_quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    released_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="held")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<StockReservation {self.sku_code}/{self.reservation_id} {self.state}>"
