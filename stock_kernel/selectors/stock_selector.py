"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only stock queries for the threshold monitor and for
    reporting: low-stock and needs-restock listings, restock schedule,
    expired holds, the movement journal and lookups by product.
Architecture position: Kernel > Selectors.

Consistency:
    Listings are not a consistent snapshot across SKUs.  Each row is correct
    as of the version it was read at; the threshold predicates are
    re-evaluated here from the committed quantities rather than trusted
    from any stored flag.

Failure modes:
    - Returns empty results when nothing matches.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.stock import ReservationSnapshot, ReservationState, StockSnapshot
from stock_kernel.models.reservation import StockReservationModel
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.models.stock_record import StockRecordModel
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MovementEntry:
    """A single line of the movement journal."""

    sku_code: str
    version: int
    movement_type: str
    quantity: int
    on_hand_after: int
    reserved_after: int
    available_after: int
    occurred_at: datetime
    reservation_id: str | None = None
    reason: str | None = None
    reference_id: str | None = None


class StockSelector(BaseSelector[StockRecordModel]):
    """
    Selector for stock records, reservations and movements.

    Guarantees:
        - Inactive records are excluded from low-stock and restock listings.
        - Listings are ordered by sku_code for stable output.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _active_records(self) -> Iterator[StockSnapshot]:
        models = self.session.execute(
            select(StockRecordModel)
            .where(StockRecordModel.is_active.is_(True))
            .order_by(StockRecordModel.sku_code)
        ).scalars()
        for model in models:
            yield StockSnapshot.from_model(model)

    def get(self, sku_code: str) -> StockSnapshot | None:
        model = self.session.execute(
            select(StockRecordModel).where(StockRecordModel.sku_code == sku_code)
        ).scalar_one_or_none()
        return StockSnapshot.from_model(model) if model is not None else None

    def iter_low_stock(self) -> Iterator[StockSnapshot]:
        """Active records whose available quantity is at or below their low-stock threshold."""
        for record in self._active_records():
            if record.is_low_stock:
                yield record

    def iter_needing_restock(self) -> Iterator[StockSnapshot]:
        """Active records whose available quantity is at or below their restock threshold."""
        for record in self._active_records():
            if record.needs_restock:
                yield record

    def iter_due_for_restock(self, now: datetime) -> Iterator[StockSnapshot]:
        """Active records whose scheduled next restock is at or before ``now``."""
        models = self.session.execute(
            select(StockRecordModel)
            .where(
                StockRecordModel.is_active.is_(True),
                StockRecordModel.next_restock_at.is_not(None),
                StockRecordModel.next_restock_at <= now,
            )
            .order_by(StockRecordModel.next_restock_at, StockRecordModel.sku_code)
        ).scalars()
        for model in models:
            yield StockSnapshot.from_model(model)

    def iter_expired_holds(self, now: datetime) -> Iterator[ReservationSnapshot]:
        """Held reservations whose deadline is at or before ``now``, oldest first."""
        models = self.session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.state == ReservationState.HELD.value,
                StockReservationModel.expires_at.is_not(None),
                StockReservationModel.expires_at <= now,
            )
            .order_by(StockReservationModel.expires_at, StockReservationModel.sku_code)
        ).scalars()
        for model in models:
            yield ReservationSnapshot.from_model(model)

    def list_reservations(self, sku_code: str) -> list[ReservationSnapshot]:
        models = self.session.execute(
            select(StockReservationModel)
            .where(StockReservationModel.sku_code == sku_code)
            .order_by(StockReservationModel.created_at, StockReservationModel.reservation_id)
        ).scalars()
        return [ReservationSnapshot.from_model(m) for m in models]

    def list_movements(self, sku_code: str) -> list[MovementEntry]:
        """The movement journal of one SKU in version order."""
        models = self.session.execute(
            select(StockMovementModel)
            .where(StockMovementModel.sku_code == sku_code)
            .order_by(StockMovementModel.version)
        ).scalars()
        return [
            MovementEntry(
                sku_code=m.sku_code,
                version=m.version,
                movement_type=m.movement_type,
                quantity=m.quantity,
                on_hand_after=m.on_hand_after,
                reserved_after=m.reserved_after,
                available_after=m.available_after,
                occurred_at=m.occurred_at,
                reservation_id=m.reservation_id,
                reason=m.reason,
                reference_id=m.reference_id,
            )
            for m in models
        ]

    def find_by_product_ids(self, product_ids: Iterable[UUID]) -> list[StockSnapshot]:
        ids = list(product_ids)
        if not ids:
            return []
        models = self.session.execute(
            select(StockRecordModel)
            .where(StockRecordModel.product_id.in_(ids))
            .order_by(StockRecordModel.sku_code)
        ).scalars()
        return [StockSnapshot.from_model(m) for m in models]
