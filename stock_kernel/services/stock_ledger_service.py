"""
StockLedgerService -- the external interface of the stock ledger.

Responsibility:
    Transport-agnostic façade over the store, the concurrency controller,
    the pure reservation engine and the threshold monitor.  Every mutation
    of an existing record runs through ``ConcurrencyController.execute`` with
    a pure operation from ``stock_kernel.domain.stock``; reads open a short
    session of their own.

Architecture position:
    Kernel > Services -- imperative shell, the outermost kernel component.
    Called by any transport (the CLI script, an HTTP handler, a consumer).

Invariants enforced:
    All of them, by delegation: the pure engine validates, the store writes
    conditionally, the controller retries lost races against fresh state.

Failure modes:
    - The typed StockKernelError subclasses documented per operation.
    - ConcurrencyConflictError when the retry budget is exhausted.

Audit relevance:
    Every committed mutation is logged with its SKU, quantities and new
    version, and is recorded as one row of the movement journal.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from functools import partial
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.domain import stock as engine
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.policies import (
    ReservationPolicy,
    RestockPolicy,
    RetryPolicy,
    ThresholdDefaults,
)
from stock_kernel.domain.stock import ReservationSnapshot, StockSnapshot
from stock_kernel.domain.thresholds import (
    LowStockEntry,
    StockStatusReport,
    low_stock_entry,
    status_report,
)
from stock_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidReservationStateError,
    ReservationNotFoundError,
    StockRecordNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.stock_selector import MovementEntry, StockSelector
from stock_kernel.services.concurrency_controller import (
    ConcurrencyController,
    StockCommit,
)
from stock_kernel.services.stock_store import StockRecordStore

logger = get_logger("services.stock_ledger")


class StockLedgerService:
    """
    Inventory stock ledger: create, reserve, release, consume, adjust, query.

    Contract:
        Mutations return the committed ``StockSnapshot`` (with its new
        version).  A rejected call changes nothing.

    Guarantees:
        - No oversell: a reserve either holds the full quantity against the
          latest committed state or fails with InsufficientStockError.
        - Reservations that are never settled are returned to available
          stock by ``expire_reservations()`` once their hold TTL passes.

    Non-goals:
        - Does NOT publish events; the movement journal is the record of
          what happened.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        retry_policy: RetryPolicy | None = None,
        reservation_policy: ReservationPolicy | None = None,
        threshold_defaults: ThresholdDefaults | None = None,
        restock_policy: RestockPolicy | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self._session_factory = session_factory
        self._reservation_policy = reservation_policy or ReservationPolicy()
        self._threshold_defaults = threshold_defaults or ThresholdDefaults()
        self._restock_policy = restock_policy or RestockPolicy()
        self._clock = clock or SystemClock()
        self._controller = ConcurrencyController(
            session_factory,
            retry_policy or RetryPolicy(),
            sleep=sleep,
            rng=rng,
        )

    @property
    def controller(self) -> ConcurrencyController:
        return self._controller

    @contextmanager
    def _read_session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def _after_commit(self, event: str, commit: StockCommit, **fields) -> StockSnapshot:
        record = commit.record
        logger.info(
            event,
            extra={
                "sku_code": record.sku_code,
                "on_hand": record.on_hand,
                "reserved": record.reserved,
                "available": record.available,
                "version": record.version,
                "attempts": commit.attempts,
                **fields,
            },
        )
        if record.is_active and record.is_low_stock:
            logger.info(
                "low_stock_detected",
                extra={
                    "sku_code": record.sku_code,
                    "available": record.available,
                    "low_stock_threshold": record.low_stock_threshold,
                },
            )
        return record

    # =========================================================================
    # Record lifecycle
    # =========================================================================

    def create_item(
        self,
        product_id: UUID,
        sku_code: str,
        initial_on_hand: int = 0,
        *,
        initial_reserved: int = 0,
        low_stock_threshold: int | None = None,
        restock_threshold: int | None = None,
        unit_cost: Decimal | None = None,
        location_code: str | None = None,
        bin_location: str | None = None,
        is_active: bool = True,
    ) -> StockSnapshot:
        """
        Create the stock record for a new SKU at version 1.

        Raises:
            InvalidStockRecordError: Quantities, thresholds or cost invalid.
            DuplicateSkuError: A record for ``sku_code`` already exists.
        """
        transition = engine.create_snapshot(
            product_id=product_id,
            sku_code=sku_code,
            on_hand=initial_on_hand,
            reserved=initial_reserved,
            low_stock_threshold=(
                self._threshold_defaults.low_stock
                if low_stock_threshold is None
                else low_stock_threshold
            ),
            restock_threshold=(
                self._threshold_defaults.restock
                if restock_threshold is None
                else restock_threshold
            ),
            unit_cost=unit_cost,
            is_active=is_active,
            location_code=location_code,
            bin_location=bin_location,
            now=self._clock.now(),
        )

        with LogContext.bind(sku_code=sku_code, operation="create"):
            session = self._session_factory()
            try:
                record = StockRecordStore(session).insert(transition)
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

            logger.info(
                "stock_item_created",
                extra={
                    "product_id": str(product_id),
                    "on_hand": record.on_hand,
                    "reserved": record.reserved,
                    "version": record.version,
                },
            )
        return record

    def deactivate_item(self, sku_code: str, reason: str | None = None) -> StockSnapshot:
        """
        Exclude a SKU from fulfillment.  Outstanding holds may still be
        released or consumed.

        Raises:
            StockRecordNotFoundError, InactiveStockRecordError.
        """
        now = self._clock.now()
        commit = self._controller.execute(
            sku_code,
            "deactivate",
            lambda record, store: engine.deactivate(record, now=now, reason=reason),
        )
        return self._after_commit("stock_item_deactivated", commit, reason=reason)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_by_sku_code(self, sku_code: str) -> StockSnapshot:
        """Raises StockRecordNotFoundError."""
        with self._read_session() as session:
            return StockRecordStore(session).load(sku_code)

    def get_reservation(self, sku_code: str, reservation_id: str) -> ReservationSnapshot:
        """Raises StockRecordNotFoundError or ReservationNotFoundError."""
        with self._read_session() as session:
            store = StockRecordStore(session)
            record = store.load(sku_code)
            reservation = store.load_reservation(record.id, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(sku_code, reservation_id, "get")
        return reservation

    def check_status(self, sku_code: str) -> StockStatusReport:
        """Availability flags for one SKU as of its latest committed version."""
        return status_report(self.get_by_sku_code(sku_code))

    def can_fulfill(self, sku_code: str, quantity: int) -> bool:
        return self.get_by_sku_code(sku_code).can_fulfill(quantity)

    def list_low_stock(self) -> list[LowStockEntry]:
        """Active SKUs with available <= low_stock_threshold."""
        with self._read_session() as session:
            return [
                low_stock_entry(record, record.low_stock_threshold)
                for record in StockSelector(session).iter_low_stock()
            ]

    def list_needing_restock(self) -> list[LowStockEntry]:
        """Active SKUs with available <= restock_threshold."""
        with self._read_session() as session:
            return [
                low_stock_entry(record, record.restock_threshold)
                for record in StockSelector(session).iter_needing_restock()
            ]

    def list_due_for_restock(self) -> list[StockSnapshot]:
        with self._read_session() as session:
            return list(StockSelector(session).iter_due_for_restock(self._clock.now()))

    def list_movements(self, sku_code: str) -> list[MovementEntry]:
        with self._read_session() as session:
            selector = StockSelector(session)
            if selector.get(sku_code) is None:
                raise StockRecordNotFoundError(sku_code)
            return selector.list_movements(sku_code)

    def list_reservations(self, sku_code: str) -> list[ReservationSnapshot]:
        """Every reservation ever made against the SKU, oldest first."""
        with self._read_session() as session:
            selector = StockSelector(session)
            if selector.get(sku_code) is None:
                raise StockRecordNotFoundError(sku_code)
            return selector.list_reservations(sku_code)

    def find_by_product_ids(self, product_ids: Iterable[UUID]) -> list[StockSnapshot]:
        with self._read_session() as session:
            return StockSelector(session).find_by_product_ids(product_ids)

    # =========================================================================
    # Mutations
    # =========================================================================

    def adjust_stock(
        self,
        sku_code: str,
        delta: int,
        reason: str | None = None,
        reference_id: str | None = None,
    ) -> StockSnapshot:
        """
        Add or remove physical units.

        Raises:
            StockRecordNotFoundError, InvalidQuantityError,
            InsufficientQuantityError, ConcurrencyConflictError.
        """
        now = self._clock.now()
        commit = self._controller.execute(
            sku_code,
            "adjust",
            lambda record, store: engine.adjust_inventory(
                record, delta, now=now, reason=reason, reference_id=reference_id
            ),
        )
        return self._after_commit(
            "stock_adjusted", commit, delta=delta, reason=reason, reference_id=reference_id
        )

    def process_restock(
        self,
        sku_code: str,
        quantity: int,
        reference_id: str | None = None,
    ) -> StockSnapshot:
        """Receive units and schedule the next restock one interval from now."""
        now = self._clock.now()
        commit = self._controller.execute(
            sku_code,
            "restock",
            lambda record, store: engine.restock(
                record,
                quantity,
                now=now,
                restock_interval=self._restock_policy.interval,
                reference_id=reference_id,
            ),
        )
        return self._after_commit(
            "stock_restocked",
            commit,
            quantity=quantity,
            next_restock_at=commit.record.next_restock_at,
        )

    def reserve_stock(
        self,
        sku_code: str,
        quantity: int,
        reservation_id: str,
        notes: str | None = None,
    ) -> StockSnapshot:
        """
        Hold ``quantity`` units for ``reservation_id`` (all or nothing).

        Raises:
            StockRecordNotFoundError, InvalidQuantityError,
            InactiveStockRecordError, DuplicateReservationError,
            InsufficientStockError, ConcurrencyConflictError.
        """
        now = self._clock.now()

        def operation(record: StockSnapshot, store: StockRecordStore):
            return engine.reserve(
                record,
                store.load_reservation(record.id, reservation_id),
                quantity=quantity,
                reservation_id=reservation_id,
                now=now,
                hold_ttl=self._reservation_policy.hold_ttl,
                notes=notes,
            )

        with LogContext.bind(reservation_id=reservation_id):
            commit = self._controller.execute(sku_code, "reserve", operation)
            return self._after_commit("stock_reserved", commit, quantity=quantity)

    def release_stock(
        self,
        sku_code: str,
        quantity: int,
        reservation_id: str,
        reason: str | None = None,
    ) -> StockSnapshot:
        """
        Return held units to available stock.

        Raises:
            StockRecordNotFoundError, InvalidQuantityError,
            ReservationNotFoundError, InvalidReservationStateError,
            ExcessiveReleaseError, PartialReservationNotAllowedError,
            ConcurrencyConflictError.
        """
        now = self._clock.now()

        def operation(record: StockSnapshot, store: StockRecordStore):
            return engine.release(
                record,
                store.load_reservation(record.id, reservation_id),
                quantity=quantity,
                reservation_id=reservation_id,
                now=now,
                allow_partial=self._reservation_policy.allow_partial,
                reason=reason,
            )

        with LogContext.bind(reservation_id=reservation_id):
            commit = self._controller.execute(sku_code, "release", operation)
            return self._after_commit(
                "stock_released", commit, quantity=quantity, reason=reason
            )

    def consume_reserved(
        self,
        sku_code: str,
        quantity: int,
        reservation_id: str,
    ) -> StockSnapshot:
        """
        Ship held units: they leave both on-hand and reserved.

        Raises:
            StockRecordNotFoundError, InvalidQuantityError,
            ReservationNotFoundError, InvalidReservationStateError,
            PartialReservationNotAllowedError, ConcurrencyConflictError.
        """
        now = self._clock.now()

        def operation(record: StockSnapshot, store: StockRecordStore):
            return engine.consume_reserved(
                record,
                store.load_reservation(record.id, reservation_id),
                quantity=quantity,
                reservation_id=reservation_id,
                now=now,
                allow_partial=self._reservation_policy.allow_partial,
            )

        with LogContext.bind(reservation_id=reservation_id):
            commit = self._controller.execute(sku_code, "consume", operation)
            return self._after_commit("reserved_stock_consumed", commit, quantity=quantity)

    # =========================================================================
    # Hold expiry
    # =========================================================================

    def expire_reservations(self) -> list[ReservationSnapshot]:
        """
        Release every held reservation whose hold TTL has passed.

        Each expiry is its own conditional commit on its SKU.  A hold that
        was settled between the scan and its commit is skipped, and a hold
        whose SKU stays contended past the retry budget is left for the
        next sweep without stopping this one.

        Returns:
            The reservations this sweep released, in expiry order.
        """
        now = self._clock.now()
        with self._read_session() as session:
            candidates = list(StockSelector(session).iter_expired_holds(now))

        expired: list[ReservationSnapshot] = []
        for candidate in candidates:
            with LogContext.bind(reservation_id=candidate.reservation_id):
                try:
                    commit = self._controller.execute(
                        candidate.sku_code,
                        "expire",
                        partial(self._expire_one, candidate.reservation_id, now),
                    )
                except InvalidReservationStateError as exc:
                    logger.info(
                        "reservation_expiry_skipped",
                        extra={"state": exc.state},
                    )
                    continue
                except ConcurrencyConflictError as exc:
                    # Left held; the next sweep picks it up again.
                    logger.warning(
                        "reservation_expiry_conflict",
                        extra={
                            "sku_code": candidate.sku_code,
                            "attempts": exc.attempts,
                            "reason": exc.reason,
                        },
                    )
                    continue
                self._after_commit(
                    "reservation_expired",
                    commit,
                    quantity=commit.movement.quantity,
                )
            expired.append(commit.reservation)
        return expired

    @staticmethod
    def _expire_one(reservation_id, now, record: StockSnapshot, store: StockRecordStore):
        return engine.expire_hold(
            record,
            store.load_reservation(record.id, reservation_id),
            reservation_id=reservation_id,
            now=now,
        )
