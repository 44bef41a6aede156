"""
StockRecordStore -- durable storage with a conditional (versioned) write.

Responsibility:
    Loads stock records and reservations as immutable snapshots, inserts new
    records, and commits a candidate transition only if the record's version
    is still the one it was derived from.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the ConcurrencyController (writes) and the StockLedgerService
    (record creation and point reads).

Invariants enforced:
    VERSION_MONOTONIC -- ``compare_and_swap`` issues
        ``UPDATE stock_records SET ..., version = :expected + 1
          WHERE id = :id AND version = :expected``
        and treats zero affected rows as a lost race.  The version never
        skips and never repeats.
    AVAILABLE_DERIVED / TOTAL_VALUE_DERIVED -- the stored derived columns
        are written in the same statement as the quantities.
    Reservation and movement rows are flushed in the same transaction as
    the conditional UPDATE, so they commit (or vanish) together with it.

Failure modes:
    - StockRecordNotFoundError: no record for the SKU.
    - DuplicateSkuError: insert of an existing SKU.
    - OptimisticLockError: the conditional UPDATE matched no row.
"""

from dataclasses import replace
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.stock import (
    ReservationSnapshot,
    StockMovement,
    StockSnapshot,
    StockTransition,
)
from stock_kernel.exceptions import (
    DuplicateSkuError,
    OptimisticLockError,
    StockRecordNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.reservation import StockReservationModel
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.models.stock_record import StockRecordModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_store")


class StockRecordStore(BaseService[StockRecordModel]):
    """
    Flush-only persistence for stock records.

    Contract:
        Every read bypasses the identity map (``populate_existing``) so a
        retry inside a reused session still sees the latest committed row.

    Non-goals:
        - Does NOT retry; conflict handling is the controller's job.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def load(self, sku_code: str) -> StockSnapshot:
        """
        Read the current committed record for ``sku_code``.

        Raises:
            StockRecordNotFoundError: If no record exists.
        """
        model = self.session.execute(
            select(StockRecordModel)
            .where(StockRecordModel.sku_code == sku_code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise StockRecordNotFoundError(sku_code)
        return StockSnapshot.from_model(model)

    def load_reservation(
        self,
        record_id: UUID,
        reservation_id: str,
    ) -> ReservationSnapshot | None:
        """Read a reservation by its caller-supplied id, or None."""
        model = self.session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.record_id == record_id,
                StockReservationModel.reservation_id == reservation_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            return None
        return ReservationSnapshot.from_model(model)

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, transition: StockTransition) -> StockSnapshot:
        """
        Persist a new record (version 1) and its creation movement.

        Raises:
            DuplicateSkuError: If a record for the SKU already exists.  The
                caller must roll back the session afterwards.
        """
        record = transition.record
        existing = self.session.execute(
            select(StockRecordModel.id).where(StockRecordModel.sku_code == record.sku_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateSkuError(record.sku_code)

        self.session.add(
            StockRecordModel(
                id=record.id,
                product_id=record.product_id,
                sku_code=record.sku_code,
                version=record.version,
                created_at=record.created_at,
                **self._mutable_columns(record),
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Concurrent creator won between the existence check and the flush.
            raise DuplicateSkuError(record.sku_code) from exc

        self._append_movement(record, transition.movement, record.updated_at)
        self.session.flush()
        logger.debug(
            "stock_record_inserted",
            extra={"sku_code": record.sku_code, "record_id": str(record.id)},
        )
        return record

    def compare_and_swap(
        self,
        expected_version: int,
        transition: StockTransition,
    ) -> StockSnapshot:
        """
        Write ``transition`` iff the stored version is still ``expected_version``.

        Postconditions:
            - The record row carries version ``expected_version + 1``.
            - The reservation (if any) and one movement row are flushed.

        Returns:
            The committed snapshot (with its new version).

        Raises:
            OptimisticLockError: If another writer committed first.
        """
        record = transition.record
        new_version = expected_version + 1

        # INVARIANT: VERSION_MONOTONIC -- conditional write on the read version
        result = self.session.execute(
            update(StockRecordModel)
            .where(
                StockRecordModel.id == record.id,
                StockRecordModel.version == expected_version,
            )
            .values(version=new_version, **self._mutable_columns(record))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.debug(
                "stock_cas_missed",
                extra={"sku_code": record.sku_code, "expected_version": expected_version},
            )
            raise OptimisticLockError(record.sku_code, expected_version)

        committed = replace(record, version=new_version)
        if transition.reservation is not None:
            self._write_reservation(committed, transition.reservation)
        self._append_movement(committed, transition.movement, record.updated_at)
        self.session.flush()
        return committed

    # =========================================================================
    # Internal helpers
    # =========================================================================

    @staticmethod
    def _mutable_columns(record: StockSnapshot) -> dict:
        return {
            "on_hand": record.on_hand,
            "reserved": record.reserved,
            "available": record.available,
            "low_stock_threshold": record.low_stock_threshold,
            "restock_threshold": record.restock_threshold,
            "unit_cost": record.unit_cost,
            "total_value": record.total_value,
            "location_code": record.location_code,
            "bin_location": record.bin_location,
            "is_active": record.is_active,
            "last_restocked_at": record.last_restocked_at,
            "next_restock_at": record.next_restock_at,
            "updated_at": record.updated_at,
        }

    def _write_reservation(
        self,
        record: StockSnapshot,
        reservation: ReservationSnapshot,
    ) -> None:
        values = {
            "held_quantity": reservation.held_quantity,
            "consumed_quantity": reservation.consumed_quantity,
            "released_quantity": reservation.released_quantity,
            "state": reservation.state.value,
            "closed_at": reservation.closed_at,
        }
        if reservation.id is None:
            self.session.add(
                StockReservationModel(
                    record_id=record.id,
                    sku_code=record.sku_code,
                    reservation_id=reservation.reservation_id,
                    quantity=reservation.quantity,
                    notes=reservation.notes,
                    expires_at=reservation.expires_at,
                    created_at=reservation.created_at,
                    **values,
                )
            )
        else:
            self.session.execute(
                update(StockReservationModel)
                .where(StockReservationModel.id == reservation.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    def _append_movement(self, record, movement: StockMovement, occurred_at) -> None:
        self.session.add(
            StockMovementModel(
                record_id=record.id,
                sku_code=record.sku_code,
                movement_type=movement.movement_type.value,
                quantity=movement.quantity,
                reservation_id=movement.reservation_id,
                reason=movement.reason,
                reference_id=movement.reference_id,
                on_hand_after=record.on_hand,
                reserved_after=record.reserved,
                available_after=record.available,
                version=record.version,
                occurred_at=occurred_at,
            )
        )
