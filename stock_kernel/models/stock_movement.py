"""
Module: stock_kernel.models.stock_movement
Responsibility: Append-only journal of committed stock mutations.  Each row
    records what changed (type, signed quantity, reservation, reason,
    reference) and the record's resulting quantities and version.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    Exactly one movement row per committed version of a record
    (uq_stock_movements_record_version).  Movements are written in the same
    transaction as the conditional update, so a lost race leaves no row.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class StockMovementModel(Base):
    """One committed stock mutation."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("record_id", "version", name="uq_stock_movements_record_version"),
        Index("idx_stock_movements_sku", "sku_code", "version"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_records.id"),
        nullable=False,
    )
    sku_code: Mapped[str] = mapped_column(String(64), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed: negative for units leaving physical stock
    quantity: Mapped[int] = mapped_column(nullable=False)

    reservation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    on_hand_after: Mapped[int] = mapped_column(nullable=False)
    reserved_after: Mapped[int] = mapped_column(nullable=False)
    available_after: Mapped[int] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.sku_code} v{self.version} "
            f"{self.movement_type} {self.quantity:+d}>"
        )
