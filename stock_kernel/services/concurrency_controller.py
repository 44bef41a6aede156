"""
ConcurrencyController -- optimistic read / validate / conditional-commit loop.

Responsibility:
    Runs one stock mutation as: load the record (version V), compute the
    candidate transition with a pure function, conditionally commit on V.
    A lost race is retried against freshly read state after a jittered
    backoff; business rejections propagate unchanged.

Architecture position:
    Kernel > Services -- imperative shell.  The only component that commits.
    Called by StockLedgerService for every mutation of an existing record.

Invariants enforced:
    NO_OVERSELL -- every decision is re-made against the state committed
        by the winner of the previous race; a stale decision can never be
        committed because the CAS rejects it.
    Each attempt uses its own session and transaction, so nothing from a
    losing attempt survives into the next one.

Failure modes:
    - StockKernelError subclasses from the pure operation: rolled back and
      raised immediately, never retried.
    - ConcurrencyConflictError: ``max_attempts`` conditional commits lost,
      or ``timeout_seconds`` elapsed.  No state was changed by the call.
    - Any other exception (driver, connectivity): rolled back and raised.
"""

import random
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.domain.policies import RetryPolicy
from stock_kernel.domain.stock import (
    ReservationSnapshot,
    StockMovement,
    StockSnapshot,
    StockTransition,
)
from stock_kernel.exceptions import ConcurrencyConflictError, OptimisticLockError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.stock_store import StockRecordStore

logger = get_logger("services.concurrency")

StockOperation = Callable[[StockSnapshot, StockRecordStore], StockTransition]


@dataclass(frozen=True)
class StockCommit:
    """Outcome of a committed operation."""

    record: StockSnapshot
    movement: StockMovement
    reservation: ReservationSnapshot | None
    attempts: int


class ConcurrencyController:
    """
    Bounded optimistic-concurrency executor for a single SKU.

    Contract:
        ``execute(sku_code, operation_name, operation)`` calls
        ``operation(record, store)`` with the freshly loaded snapshot and a
        store bound to the attempt's session.  The operation must be pure
        apart from reads through ``store``.

    Guarantees:
        - At most ``retry_policy.max_attempts`` attempts.
        - Callers on different SKUs never contend with each other.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng
        self._monotonic = monotonic

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def execute(
        self,
        sku_code: str,
        operation_name: str,
        operation: StockOperation,
    ) -> StockCommit:
        """
        Run ``operation`` until it commits, is rejected, or the budget runs out.

        Returns:
            StockCommit with the committed snapshot (new version).

        Raises:
            StockKernelError: Business rejection from ``operation``.
            ConcurrencyConflictError: Retry budget exhausted.
        """
        policy = self._retry_policy
        started = self._monotonic()
        attempt = 0

        with LogContext.bind(sku_code=sku_code, operation=operation_name):
            while True:
                attempt += 1
                try:
                    commit = self._attempt(sku_code, operation, attempt)
                except OptimisticLockError as exc:
                    logger.warning(
                        "stock_commit_conflict",
                        extra={
                            "attempt": attempt,
                            "expected_version": exc.expected_version,
                        },
                    )
                    reason = None
                    delay = 0.0
                    if attempt >= policy.max_attempts:
                        reason = "max_attempts"
                    else:
                        delay = policy.backoff_delay(attempt, self._rng)
                        if policy.timeout_seconds is not None:
                            elapsed = self._monotonic() - started
                            if elapsed + delay >= policy.timeout_seconds:
                                reason = "timeout"
                    if reason is not None:
                        logger.error(
                            "stock_commit_retry_exhausted",
                            extra={"attempts": attempt, "reason": reason},
                        )
                        raise ConcurrencyConflictError(
                            sku_code, operation_name, attempt, reason
                        ) from exc
                    self._sleep(delay)
                    continue

                if attempt > 1:
                    logger.info(
                        "stock_commit_retried",
                        extra={"attempts": attempt, "version": commit.record.version},
                    )
                return commit

    def _attempt(
        self,
        sku_code: str,
        operation: StockOperation,
        attempt: int,
    ) -> StockCommit:
        session = self._session_factory()
        try:
            store = StockRecordStore(session)
            current = store.load(sku_code)
            transition = operation(current, store)
            committed = store.compare_and_swap(current.version, transition)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        return StockCommit(
            record=committed,
            movement=transition.movement,
            reservation=transition.reservation,
            attempts=attempt,
        )
