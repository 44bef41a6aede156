"""
ConcurrencyController tests.

Conflicts are produced deterministically by an operation that commits a
competing write from a second session after the controller has read the
record, so the controller's conditional write is guaranteed to miss.

- a lost race is retried against the NEW state (never the stale read)
- business errors are never retried
- the retry budget is bounded and exhaustion changes nothing
- backoff pauses follow the jittered exponential curve
"""

import random
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from stock_kernel.domain.policies import RetryPolicy
from stock_kernel.domain.stock import adjust_inventory, create_snapshot, reserve
from stock_kernel.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    StockRecordNotFoundError,
)
from stock_kernel.services.concurrency_controller import ConcurrencyController
from stock_kernel.services.stock_store import StockRecordStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def seeded(session_factory):
    """One record SKU-C with on_hand=10."""
    with session_factory() as session:
        StockRecordStore(session).insert(
            create_snapshot(
                product_id=uuid4(),
                sku_code="SKU-C",
                on_hand=10,
                reserved=0,
                low_stock_threshold=2,
                restock_threshold=4,
                now=NOW,
            )
        )
        session.commit()
    return "SKU-C"


def _competing_write(session_factory, sku_code, delta):
    """Commit an adjustment from an independent session."""
    with session_factory() as session:
        store = StockRecordStore(session)
        current = store.load(sku_code)
        store.compare_and_swap(current.version, adjust_inventory(current, delta, now=NOW))
        session.commit()


class TestRetryOnConflict:
    """A lost conditional write is retried on fresh state."""

    def test_retry_observes_the_winner_and_rejects_on_new_state(
        self, session_factory, seeded
    ):
        """
        Read available=10, competitor reserves-away 6 units (adjust -6) before
        our commit.  A 7-unit reserve must then fail on the retry because the
        retried decision sees available=4, not the stale 10.
        """
        pauses = []
        controller = ConcurrencyController(
            session_factory, RetryPolicy(), sleep=pauses.append, rng=random.Random(1)
        )
        interfered = []

        def operation(record, store):
            if not interfered:
                interfered.append(True)
                _competing_write(session_factory, seeded, -6)
            return reserve(record, None, quantity=7, reservation_id="R-7", now=NOW)

        with pytest.raises(InsufficientStockError) as exc_info:
            controller.execute(seeded, "reserve", operation)

        assert exc_info.value.available == 4
        assert len(pauses) == 1
        with session_factory() as session:
            record = StockRecordStore(session).load(seeded)
        assert (record.on_hand, record.reserved, record.version) == (4, 0, 2)

    def test_retry_succeeds_when_new_state_still_allows_it(self, session_factory, seeded):
        controller = ConcurrencyController(session_factory, RetryPolicy(), sleep=lambda s: None)
        calls = []

        def operation(record, store):
            calls.append(record.version)
            if len(calls) == 1:
                _competing_write(session_factory, seeded, -2)
            return reserve(record, None, quantity=3, reservation_id="R-3", now=NOW)

        commit = controller.execute(seeded, "reserve", operation)

        assert calls == [1, 2]
        assert commit.attempts == 2
        assert commit.record.version == 3
        assert (commit.record.on_hand, commit.record.reserved) == (8, 3)

    def test_conflict_and_retry_are_logged(self, session_factory, seeded, captured_logs):
        controller = ConcurrencyController(session_factory, RetryPolicy(), sleep=lambda s: None)
        calls = []

        def operation(record, store):
            calls.append(1)
            if len(calls) == 1:
                _competing_write(session_factory, seeded, 1)
            return adjust_inventory(record, 1, now=NOW)

        controller.execute(seeded, "adjust", operation)

        logs = captured_logs()
        conflicts = [r for r in logs if r["message"] == "stock_commit_conflict"]
        assert len(conflicts) == 1
        assert conflicts[0]["level"] == "WARNING"
        assert conflicts[0]["sku_code"] == seeded
        assert conflicts[0]["operation"] == "adjust"


class TestBoundedRetry:
    """The retry budget is finite and exhaustion is side-effect free."""

    def test_exhaustion_raises_conflict_and_changes_nothing_of_ours(
        self, session_factory, seeded, captured_logs
    ):
        pauses = []
        controller = ConcurrencyController(
            session_factory,
            RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.04),
            sleep=pauses.append,
            rng=random.Random(3),
        )

        def always_interfere(record, store):
            _competing_write(session_factory, seeded, 1)
            return reserve(record, None, quantity=1, reservation_id="R-X", now=NOW)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            controller.execute(seeded, "reserve", always_interfere)

        assert exc_info.value.attempts == 3
        assert exc_info.value.reason == "max_attempts"
        assert len(pauses) == 2
        assert 0 <= pauses[0] <= 0.01
        assert 0 <= pauses[1] <= 0.02

        with session_factory() as session:
            store = StockRecordStore(session)
            record = store.load(seeded)
            assert record.reserved == 0
            assert store.load_reservation(record.id, "R-X") is None
        # Only the three competing writes landed
        assert record.on_hand == 13
        assert record.version == 4
        assert any(r["message"] == "stock_commit_retry_exhausted" for r in captured_logs())

    def test_timeout_stops_retrying(self, session_factory, seeded):
        ticks = iter([0.0, 0.0, 5.0, 10.0])
        controller = ConcurrencyController(
            session_factory,
            RetryPolicy(max_attempts=50, timeout_seconds=1.0),
            sleep=lambda s: None,
            monotonic=lambda: next(ticks),
        )

        def always_interfere(record, store):
            _competing_write(session_factory, seeded, 1)
            return adjust_inventory(record, 1, now=NOW)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            controller.execute(seeded, "adjust", always_interfere)
        assert exc_info.value.reason == "timeout"
        assert exc_info.value.attempts == 2


class TestNoRetryForBusinessErrors:
    """Deterministic rejections propagate on the first attempt."""

    def test_insufficient_stock_is_not_retried(self, session_factory, seeded):
        calls = []
        controller = ConcurrencyController(session_factory, RetryPolicy(), sleep=lambda s: None)

        def operation(record, store):
            calls.append(1)
            return reserve(record, None, quantity=11, reservation_id="R", now=NOW)

        with pytest.raises(InsufficientStockError):
            controller.execute(seeded, "reserve", operation)
        assert len(calls) == 1

    def test_missing_record_is_not_retried(self, session_factory, db_engine):
        controller = ConcurrencyController(session_factory, RetryPolicy(), sleep=lambda s: None)
        with pytest.raises(StockRecordNotFoundError):
            controller.execute("MISSING", "adjust", lambda r, s: adjust_inventory(r, 1, now=NOW))
