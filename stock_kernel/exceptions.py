"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (order workflows, restock jobs, admin tooling) must react to stock
failures precisely. Parsing messages like "Insufficient available quantity"
is fragile, so:
  1. Every failure has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (sku_code, quantities, reservation id)

Example:
    try:
        ledger.reserve_stock("TSHIRT-BLK-M", 3, reservation_id=order_id)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- StockRecordError
    |   +-- StockRecordNotFoundError
    |   +-- DuplicateSkuError
    |   +-- InactiveStockRecordError
    |   +-- InvalidStockRecordError
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |   +-- InsufficientStockError
    |   +-- InsufficientQuantityError
    |
    +-- ReservationError
    |   +-- DuplicateReservationError
    |   +-- ExcessiveReleaseError
    |   +-- InvalidReservationStateError
    |       +-- ReservationNotFoundError
    |       +-- PartialReservationNotAllowedError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError
        +-- ConcurrencyConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|-------------------------------------
Record          | STOCK_RECORD_NOT_FOUND          | Unknown SKU
                | DUPLICATE_SKU                   | SKU already stocked
                | STOCK_RECORD_INACTIVE           | Reserve against deactivated SKU
                | INVALID_STOCK_RECORD            | Bad initial quantities/thresholds
----------------|---------------------------------|-------------------------------------
Quantity        | INVALID_QUANTITY                | Non-positive quantity / zero delta
                | INSUFFICIENT_STOCK              | Reserve exceeds available
                | INSUFFICIENT_QUANTITY           | Adjustment drives on-hand negative
----------------|---------------------------------|-------------------------------------
Reservation     | DUPLICATE_RESERVATION           | Reservation id already used for SKU
                | EXCESSIVE_RELEASE               | Release exceeds what is held
                | INVALID_RESERVATION_STATE       | Settle a non-held reservation
                | RESERVATION_NOT_FOUND           | Unknown reservation id for SKU
                | PARTIAL_RESERVATION_NOT_ALLOWED | Partial settle while disabled
----------------|---------------------------------|-------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT        | CAS lost (internal, retried)
                | CONCURRENCY_CONFLICT            | Retry budget exhausted

Only OPTIMISTIC_LOCK_CONFLICT is retried by the kernel. Callers may retry
CONCURRENCY_CONFLICT themselves with fresh backoff; everything else is a
deterministic business rejection and retrying it yields the same answer.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Stock record exceptions


class StockRecordError(StockKernelError):
    """Base exception for stock record errors."""

    code: str = "STOCK_RECORD_ERROR"


class StockRecordNotFoundError(StockRecordError):
    """No stock record exists for the SKU."""

    code: str = "STOCK_RECORD_NOT_FOUND"

    def __init__(self, sku_code: str):
        self.sku_code = sku_code
        super().__init__(f"Stock record not found for SKU: {sku_code}")


class DuplicateSkuError(StockRecordError):
    """A stock record already exists for the SKU."""

    code: str = "DUPLICATE_SKU"

    def __init__(self, sku_code: str):
        self.sku_code = sku_code
        super().__init__(f"Stock record already exists for SKU: {sku_code}")


class InactiveStockRecordError(StockRecordError):
    """The stock record is deactivated and excluded from fulfillment."""

    code: str = "STOCK_RECORD_INACTIVE"

    def __init__(self, sku_code: str):
        self.sku_code = sku_code
        super().__init__(f"Stock record for SKU {sku_code} is inactive")


class InvalidStockRecordError(StockRecordError):
    """Initial record values violate a stock invariant."""

    code: str = "INVALID_STOCK_RECORD"

    def __init__(self, sku_code: str, reason: str):
        self.sku_code = sku_code
        self.reason = reason
        super().__init__(f"Invalid stock record for SKU {sku_code}: {reason}")


# Quantity exceptions


class QuantityError(StockKernelError):
    """Base exception for quantity errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """Quantity argument is not acceptable for the operation."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, sku_code: str, quantity: int, operation: str):
        self.sku_code = sku_code
        self.quantity = quantity
        self.operation = operation
        super().__init__(
            f"Invalid quantity {quantity} for {operation} on SKU {sku_code}"
        )


class InsufficientStockError(QuantityError):
    """Requested reservation exceeds available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, sku_code: str, requested: int, available: int):
        self.sku_code = sku_code
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for SKU {sku_code}: "
            f"{available} available, {requested} requested"
        )


class InsufficientQuantityError(QuantityError):
    """Adjustment would leave on-hand negative or below the reserved amount."""

    code: str = "INSUFFICIENT_QUANTITY"

    def __init__(self, sku_code: str, on_hand: int, reserved: int, delta: int):
        self.sku_code = sku_code
        self.on_hand = on_hand
        self.reserved = reserved
        self.delta = delta
        super().__init__(
            f"Insufficient quantity for adjustment of {delta} on SKU {sku_code}: "
            f"on_hand={on_hand}, reserved={reserved}"
        )


# Reservation exceptions


class ReservationError(StockKernelError):
    """Base exception for reservation errors."""

    code: str = "RESERVATION_ERROR"


class DuplicateReservationError(ReservationError):
    """The reservation id has already been used for this SKU."""

    code: str = "DUPLICATE_RESERVATION"

    def __init__(self, sku_code: str, reservation_id: str, state: str):
        self.sku_code = sku_code
        self.reservation_id = reservation_id
        self.state = state
        super().__init__(
            f"Reservation {reservation_id} already exists for SKU {sku_code} "
            f"(state: {state})"
        )


class ExcessiveReleaseError(ReservationError):
    """Release quantity exceeds what is held."""

    code: str = "EXCESSIVE_RELEASE"

    def __init__(self, sku_code: str, reservation_id: str, requested: int, held: int):
        self.sku_code = sku_code
        self.reservation_id = reservation_id
        self.requested = requested
        self.held = held
        super().__init__(
            f"Cannot release {requested} units of SKU {sku_code} for reservation "
            f"{reservation_id}: only {held} held"
        )


class InvalidReservationStateError(ReservationError):
    """Reservation is not in a state that permits the transition."""

    code: str = "INVALID_RESERVATION_STATE"

    def __init__(self, sku_code: str, reservation_id: str, state: str, operation: str):
        self.sku_code = sku_code
        self.reservation_id = reservation_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} reservation {reservation_id} on SKU {sku_code} "
            f"in state {state}"
        )


class ReservationNotFoundError(InvalidReservationStateError):
    """No reservation with this id exists for the SKU."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, sku_code: str, reservation_id: str, operation: str):
        super().__init__(sku_code, reservation_id, "missing", operation)


class PartialReservationNotAllowedError(InvalidReservationStateError):
    """Partial settlement requested while partial settlement is disabled."""

    code: str = "PARTIAL_RESERVATION_NOT_ALLOWED"

    def __init__(
        self,
        sku_code: str,
        reservation_id: str,
        requested: int,
        held: int,
        operation: str,
    ):
        self.requested = requested
        self.held = held
        super().__init__(sku_code, reservation_id, "held", operation)
        self.args = (
            f"Cannot {operation} {requested} of {held} held units for reservation "
            f"{reservation_id} on SKU {sku_code}: partial settlement is disabled",
        )


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Conditional write lost: the record version moved since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, sku_code: str, expected_version: int):
        self.sku_code = sku_code
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic lock conflict on SKU {sku_code}: "
            f"version {expected_version} was modified by another transaction"
        )


class ConcurrencyConflictError(ConcurrencyError):
    """Retry budget exhausted without a successful conditional commit."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, sku_code: str, operation: str, attempts: int, reason: str = "max_attempts"):
        self.sku_code = sku_code
        self.operation = operation
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Could not commit {operation} on SKU {sku_code} after "
            f"{attempts} attempt(s) ({reason})"
        )
