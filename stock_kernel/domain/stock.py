"""
Stock -- the reservation engine as pure transitions.

Responsibility:
    Defines the immutable snapshots that describe a stock record and its
    reservations, and the pure functions that validate and apply reserve,
    release, consume, adjust, restock, expire and deactivate operations.
    Each function maps ``(current snapshot, arguments, now)`` to a
    ``StockTransition`` or raises a typed ``StockKernelError``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies, database access and clocks (``now`` is an
    argument).  ``from_model()`` class methods exist as boundary converters
    but are only invoked from the service layer.

Invariants enforced:
    RESERVED_WITHIN_ON_HAND -- checked by every transition before it builds
        the new snapshot, and asserted again in ``StockSnapshot.__post_init__``.
    AVAILABLE_DERIVED / TOTAL_VALUE_DERIVED -- derived values are properties
        of the snapshot, so a snapshot cannot hold a stale ``available``.
    NO_OVERSELL -- ``reserve`` refuses any quantity above ``available``.
    SINGLE_SETTLEMENT -- only ``held`` reservations can be released,
        consumed or expired, and a partly settled hold can only be settled
        further in the same direction.

Failure modes:
    - Typed errors from ``stock_kernel.exceptions`` for business rejections.
    - ValueError from ``StockSnapshot`` when constructed inconsistently
      (a programming error, never a business outcome).

Data flow:
    StockRecordModel -> StockSnapshot -> (pure op) -> StockTransition
        -> StockRecordStore.compare_and_swap
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from stock_kernel.domain import thresholds
from stock_kernel.exceptions import (
    DuplicateReservationError,
    ExcessiveReleaseError,
    InactiveStockRecordError,
    InsufficientQuantityError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidReservationStateError,
    InvalidStockRecordError,
    PartialReservationNotAllowedError,
    ReservationNotFoundError,
)

if TYPE_CHECKING:
    from stock_kernel.models.reservation import StockReservationModel
    from stock_kernel.models.stock_record import StockRecordModel


class ReservationState(str, Enum):
    """Lifecycle of a reservation: HELD -> CONSUMED | RELEASED."""

    HELD = "held"
    CONSUMED = "consumed"
    RELEASED = "released"


class MovementType(str, Enum):
    """Kinds of committed mutation recorded in the movement journal."""

    CREATED = "created"
    RESERVED = "reserved"
    RELEASED = "released"
    CONSUMED = "consumed"
    ADJUSTED = "adjusted"
    RESTOCKED = "restocked"
    EXPIRED = "expired"
    DEACTIVATED = "deactivated"


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class StockSnapshot:
    """
    Immutable view of one stock record at one committed version.

    Contract:
        ``available``, ``total_value`` and the threshold flags are derived
        on access from ``on_hand``, ``reserved``, ``unit_cost`` and the
        thresholds.  They are never stored on the snapshot independently.
    """

    id: UUID
    product_id: UUID
    sku_code: str
    on_hand: int
    reserved: int
    low_stock_threshold: int
    restock_threshold: int
    version: int
    unit_cost: Decimal | None = None
    is_active: bool = True
    location_code: str | None = None
    bin_location: str | None = None
    last_restocked_at: datetime | None = None
    next_restock_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.on_hand < 0:
            raise ValueError(f"on_hand cannot be negative: {self.on_hand}")
        if self.reserved < 0 or self.reserved > self.on_hand:
            raise ValueError(
                f"reserved must be within [0, on_hand]: "
                f"reserved={self.reserved}, on_hand={self.on_hand}"
            )

    @property
    def available(self) -> int:
        return max(0, self.on_hand - self.reserved)

    @property
    def total_value(self) -> Decimal | None:
        if self.unit_cost is None:
            return None
        return self.unit_cost * self.on_hand

    @property
    def is_low_stock(self) -> bool:
        return thresholds.is_low_stock(self.available, self.low_stock_threshold)

    @property
    def needs_restock(self) -> bool:
        return thresholds.needs_restock(self.available, self.restock_threshold)

    def can_fulfill(self, quantity: int) -> bool:
        return thresholds.can_fulfill(self.available, quantity)

    @classmethod
    def from_model(cls, model: StockRecordModel) -> StockSnapshot:
        """Boundary converter from the ORM row (service layer only)."""
        return cls(
            id=model.id,
            product_id=model.product_id,
            sku_code=model.sku_code,
            on_hand=model.on_hand,
            reserved=model.reserved,
            low_stock_threshold=model.low_stock_threshold,
            restock_threshold=model.restock_threshold,
            version=model.version,
            unit_cost=model.unit_cost,
            is_active=model.is_active,
            location_code=model.location_code,
            bin_location=model.bin_location,
            last_restocked_at=model.last_restocked_at,
            next_restock_at=model.next_restock_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class ReservationSnapshot:
    """
    Immutable view of one reservation against one SKU.

    ``quantity`` is what was originally held; ``held_quantity`` is what is
    still held.  ``id`` is None until the reservation has been persisted.
    """

    reservation_id: str
    sku_code: str
    quantity: int
    held_quantity: int
    state: ReservationState
    consumed_quantity: int = 0
    released_quantity: int = 0
    notes: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None
    id: UUID | None = None

    @property
    def is_held(self) -> bool:
        return self.state == ReservationState.HELD

    def is_expired(self, now: datetime) -> bool:
        return self.is_held and self.expires_at is not None and self.expires_at <= now

    @classmethod
    def from_model(cls, model: StockReservationModel) -> ReservationSnapshot:
        return cls(
            id=model.id,
            reservation_id=model.reservation_id,
            sku_code=model.sku_code,
            quantity=model.quantity,
            held_quantity=model.held_quantity,
            state=ReservationState(model.state),
            consumed_quantity=model.consumed_quantity,
            released_quantity=model.released_quantity,
            notes=model.notes,
            expires_at=model.expires_at,
            created_at=model.created_at,
            closed_at=model.closed_at,
        )


@dataclass(frozen=True)
class StockMovement:
    """One journal line describing what a committed transition did."""

    movement_type: MovementType
    quantity: int
    reservation_id: str | None = None
    reason: str | None = None
    reference_id: str | None = None


@dataclass(frozen=True)
class StockTransition:
    """
    Candidate outcome of an operation, not yet committed.

    ``record`` still carries the version it was derived from; the store
    bumps it when the conditional write succeeds.
    """

    record: StockSnapshot
    movement: StockMovement
    reservation: ReservationSnapshot | None = None


# =============================================================================
# Internal helpers
# =============================================================================


def _evolve(record: StockSnapshot, now: datetime, **changes) -> StockSnapshot:
    """Single update path: every transition builds its new record here."""
    return replace(record, updated_at=now, **changes)


def _require_positive(record: StockSnapshot, quantity: int, operation: str) -> None:
    if quantity <= 0:
        raise InvalidQuantityError(record.sku_code, quantity, operation)


def _require_held(
    record: StockSnapshot,
    reservation: ReservationSnapshot | None,
    reservation_id: str,
    operation: str,
) -> ReservationSnapshot:
    if reservation is None:
        raise ReservationNotFoundError(record.sku_code, reservation_id, operation)
    if not reservation.is_held:
        raise InvalidReservationStateError(
            record.sku_code, reservation_id, reservation.state.value, operation
        )
    return reservation


def _require_single_direction(
    record: StockSnapshot,
    reservation: ReservationSnapshot,
    operation: str,
) -> None:
    # INVARIANT: SINGLE_SETTLEMENT -- a partly consumed hold cannot be
    # released and a partly released hold cannot be consumed
    if operation == "release":
        settled, kind = reservation.consumed_quantity, "consumed"
    else:
        settled, kind = reservation.released_quantity, "released"
    if settled > 0:
        raise InvalidReservationStateError(
            record.sku_code,
            reservation.reservation_id,
            f"held(partially {kind} {settled})",
            operation,
        )


def _require_full_settlement(
    record: StockSnapshot,
    reservation: ReservationSnapshot,
    quantity: int,
    allow_partial: bool,
    operation: str,
) -> None:
    if not allow_partial and quantity != reservation.held_quantity:
        raise PartialReservationNotAllowedError(
            record.sku_code,
            reservation.reservation_id,
            quantity,
            reservation.held_quantity,
            operation,
        )


def _settle(
    reservation: ReservationSnapshot,
    quantity: int,
    closing_state: ReservationState,
    now: datetime,
) -> ReservationSnapshot:
    """Take ``quantity`` off a held reservation; close it when nothing is left."""
    remaining = reservation.held_quantity - quantity
    if closing_state == ReservationState.CONSUMED:
        counters = {"consumed_quantity": reservation.consumed_quantity + quantity}
    else:
        counters = {"released_quantity": reservation.released_quantity + quantity}
    if remaining == 0:
        return replace(
            reservation,
            held_quantity=0,
            state=closing_state,
            closed_at=now,
            **counters,
        )
    return replace(reservation, held_quantity=remaining, **counters)


# =============================================================================
# Creation
# =============================================================================


def create_snapshot(
    *,
    product_id: UUID,
    sku_code: str,
    on_hand: int,
    reserved: int,
    low_stock_threshold: int,
    restock_threshold: int,
    now: datetime,
    unit_cost: Decimal | None = None,
    is_active: bool = True,
    location_code: str | None = None,
    bin_location: str | None = None,
    record_id: UUID | None = None,
) -> StockTransition:
    """
    Validate and build the first snapshot (version 1) of a new record.

    Raises:
        InvalidStockRecordError: If quantities, thresholds or cost are
            out of range.
    """
    if not sku_code or not sku_code.strip():
        raise InvalidStockRecordError(sku_code, "sku_code is required")
    if on_hand < 0:
        raise InvalidStockRecordError(sku_code, f"on_hand cannot be negative ({on_hand})")
    if reserved < 0 or reserved > on_hand:
        raise InvalidStockRecordError(
            sku_code, f"reserved must be within [0, on_hand] ({reserved}/{on_hand})"
        )
    if low_stock_threshold < 0 or restock_threshold < 0:
        raise InvalidStockRecordError(sku_code, "thresholds cannot be negative")
    if unit_cost is not None and unit_cost < 0:
        raise InvalidStockRecordError(sku_code, f"unit_cost cannot be negative ({unit_cost})")

    record = StockSnapshot(
        id=record_id or uuid4(),
        product_id=product_id,
        sku_code=sku_code,
        on_hand=on_hand,
        reserved=reserved,
        low_stock_threshold=low_stock_threshold,
        restock_threshold=restock_threshold,
        version=1,
        unit_cost=unit_cost,
        is_active=is_active,
        location_code=location_code,
        bin_location=bin_location,
        created_at=now,
        updated_at=now,
    )
    return StockTransition(
        record=record,
        movement=StockMovement(MovementType.CREATED, quantity=on_hand),
    )


# =============================================================================
# Reservation engine
# =============================================================================


def reserve(
    record: StockSnapshot,
    existing: ReservationSnapshot | None,
    *,
    quantity: int,
    reservation_id: str,
    now: datetime,
    hold_ttl: timedelta | None = None,
    notes: str | None = None,
) -> StockTransition:
    """
    Hold ``quantity`` units of available stock for ``reservation_id``.

    Preconditions:
        quantity > 0; record is active; the reservation id has not been
        used for this SKU before; available >= quantity.

    Postconditions:
        reserved += quantity; on_hand unchanged; a new HELD reservation.

    Raises:
        InvalidQuantityError, InactiveStockRecordError,
        DuplicateReservationError, InsufficientStockError.
    """
    _require_positive(record, quantity, "reserve")
    if not record.is_active:
        raise InactiveStockRecordError(record.sku_code)
    if existing is not None:
        raise DuplicateReservationError(record.sku_code, reservation_id, existing.state.value)
    # INVARIANT: NO_OVERSELL -- all-or-nothing against available
    if not record.can_fulfill(quantity):
        raise InsufficientStockError(record.sku_code, quantity, record.available)

    reservation = ReservationSnapshot(
        reservation_id=reservation_id,
        sku_code=record.sku_code,
        quantity=quantity,
        held_quantity=quantity,
        state=ReservationState.HELD,
        notes=notes,
        expires_at=now + hold_ttl if hold_ttl is not None else None,
        created_at=now,
    )
    return StockTransition(
        record=_evolve(record, now, reserved=record.reserved + quantity),
        reservation=reservation,
        movement=StockMovement(
            MovementType.RESERVED,
            quantity=quantity,
            reservation_id=reservation_id,
            reason=notes,
        ),
    )


def release(
    record: StockSnapshot,
    reservation: ReservationSnapshot | None,
    *,
    quantity: int,
    reservation_id: str,
    now: datetime,
    allow_partial: bool = False,
    reason: str | None = None,
) -> StockTransition:
    """
    Return ``quantity`` held units of ``reservation_id`` to available stock.

    Postconditions:
        reserved -= quantity; the reservation is RELEASED once nothing of
        it is held any more.

    Raises:
        InvalidQuantityError, ReservationNotFoundError,
        InvalidReservationStateError, ExcessiveReleaseError,
        PartialReservationNotAllowedError.
    """
    _require_positive(record, quantity, "release")
    held = _require_held(record, reservation, reservation_id, "release")
    _require_single_direction(record, held, "release")
    if quantity > held.held_quantity or quantity > record.reserved:
        raise ExcessiveReleaseError(
            record.sku_code,
            reservation_id,
            quantity,
            min(held.held_quantity, record.reserved),
        )
    _require_full_settlement(record, held, quantity, allow_partial, "release")

    return StockTransition(
        record=_evolve(record, now, reserved=record.reserved - quantity),
        reservation=_settle(held, quantity, ReservationState.RELEASED, now),
        movement=StockMovement(
            MovementType.RELEASED,
            quantity=quantity,
            reservation_id=reservation_id,
            reason=reason,
        ),
    )


def consume_reserved(
    record: StockSnapshot,
    reservation: ReservationSnapshot | None,
    *,
    quantity: int,
    reservation_id: str,
    now: datetime,
    allow_partial: bool = False,
) -> StockTransition:
    """
    Ship ``quantity`` held units: they leave physical stock and their hold.

    Postconditions:
        on_hand -= quantity; reserved -= quantity; the reservation is
        CONSUMED once nothing of it is held any more.

    Raises:
        InvalidQuantityError, ReservationNotFoundError,
        InvalidReservationStateError, PartialReservationNotAllowedError.
    """
    _require_positive(record, quantity, "consume")
    held = _require_held(record, reservation, reservation_id, "consume")
    _require_single_direction(record, held, "consume")
    if quantity > held.held_quantity:
        raise InvalidReservationStateError(
            record.sku_code,
            reservation_id,
            f"held({held.held_quantity})",
            f"consume {quantity} units of",
        )
    _require_full_settlement(record, held, quantity, allow_partial, "consume")

    return StockTransition(
        record=_evolve(
            record,
            now,
            on_hand=record.on_hand - quantity,
            reserved=record.reserved - quantity,
        ),
        reservation=_settle(held, quantity, ReservationState.CONSUMED, now),
        movement=StockMovement(
            MovementType.CONSUMED,
            quantity=-quantity,
            reservation_id=reservation_id,
        ),
    )


def adjust_inventory(
    record: StockSnapshot,
    delta: int,
    *,
    now: datetime,
    reason: str | None = None,
    reference_id: str | None = None,
) -> StockTransition:
    """
    Add (restock, found) or remove (shrinkage, damage) physical units.

    ``reserved`` is untouched, so the adjusted ``on_hand`` may not fall
    below what is currently held.

    Raises:
        InvalidQuantityError: delta == 0.
        InsufficientQuantityError: on_hand + delta < max(0, reserved).
    """
    if delta == 0:
        raise InvalidQuantityError(record.sku_code, delta, "adjust")
    new_on_hand = record.on_hand + delta
    # INVARIANT: RESERVED_WITHIN_ON_HAND
    if new_on_hand < 0 or new_on_hand < record.reserved:
        raise InsufficientQuantityError(record.sku_code, record.on_hand, record.reserved, delta)

    return StockTransition(
        record=_evolve(record, now, on_hand=new_on_hand),
        movement=StockMovement(
            MovementType.ADJUSTED,
            quantity=delta,
            reason=reason,
            reference_id=reference_id,
        ),
    )


def restock(
    record: StockSnapshot,
    quantity: int,
    *,
    now: datetime,
    restock_interval: timedelta,
    reference_id: str | None = None,
) -> StockTransition:
    """Receive ``quantity`` units and schedule the next restock."""
    _require_positive(record, quantity, "restock")
    return StockTransition(
        record=_evolve(
            record,
            now,
            on_hand=record.on_hand + quantity,
            last_restocked_at=now,
            next_restock_at=now + restock_interval,
        ),
        movement=StockMovement(
            MovementType.RESTOCKED,
            quantity=quantity,
            reference_id=reference_id,
        ),
    )


def expire_hold(
    record: StockSnapshot,
    reservation: ReservationSnapshot | None,
    *,
    reservation_id: str,
    now: datetime,
) -> StockTransition:
    """
    Release whatever is still held by a reservation past its deadline.

    This includes the remainder of a partly consumed hold, so an
    abandoned remainder never locks stock.

    Raises:
        ReservationNotFoundError, InvalidReservationStateError: the
            reservation was settled (or never existed) since it was found
            expired, or it is not yet due.
    """
    held = _require_held(record, reservation, reservation_id, "expire")
    if not held.is_expired(now):
        raise InvalidReservationStateError(
            record.sku_code, reservation_id, "held(not yet due)", "expire"
        )
    quantity = held.held_quantity
    return StockTransition(
        record=_evolve(record, now, reserved=record.reserved - quantity),
        reservation=_settle(held, quantity, ReservationState.RELEASED, now),
        movement=StockMovement(
            MovementType.EXPIRED,
            quantity=quantity,
            reservation_id=reservation_id,
            reason="hold_expired",
        ),
    )


def deactivate(
    record: StockSnapshot,
    *,
    now: datetime,
    reason: str | None = None,
) -> StockTransition:
    """Take a record out of fulfillment. Terminal; idempotence is not offered."""
    if not record.is_active:
        raise InactiveStockRecordError(record.sku_code)
    return StockTransition(
        record=_evolve(record, now, is_active=False),
        movement=StockMovement(MovementType.DEACTIVATED, quantity=0, reason=reason),
    )
