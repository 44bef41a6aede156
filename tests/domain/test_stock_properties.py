"""
Property-based tests for the pure reservation engine.

Random sequences of reserve / release / consume / adjust / restock are
applied to one snapshot.  Whatever Hypothesis generates, each step either
raises a StockKernelError (leaving state as it was) or yields a snapshot
where:
- 0 <= reserved <= on_hand
- available == on_hand - reserved
- reserved equals the sum of the held quantities of open reservations
- no reservation is both consumed and released

A positive adjustment followed by the matching negative one leaves the
quantities exactly where they started.
"""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.stock import (
    StockSnapshot,
    adjust_inventory,
    consume_reserved,
    release,
    reserve,
    restock,
)
from stock_kernel.exceptions import StockKernelError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
RESERVATION_IDS = [f"R-{n}" for n in range(6)]

step_strategy = st.one_of(
    st.tuples(st.just("reserve"), st.sampled_from(RESERVATION_IDS), st.integers(1, 40)),
    st.tuples(st.just("release"), st.sampled_from(RESERVATION_IDS), st.integers(1, 40)),
    st.tuples(st.just("consume"), st.sampled_from(RESERVATION_IDS), st.integers(1, 40)),
    st.tuples(st.just("adjust"), st.none(), st.integers(-50, 50)),
    st.tuples(st.just("restock"), st.none(), st.integers(1, 50)),
)


def _initial(on_hand: int) -> StockSnapshot:
    return StockSnapshot(
        id=uuid4(),
        product_id=uuid4(),
        sku_code="SKU-PROP",
        on_hand=on_hand,
        reserved=0,
        low_stock_threshold=10,
        restock_threshold=20,
        version=1,
        created_at=NOW,
        updated_at=NOW,
    )


def _apply(record, reservations, step, allow_partial):
    kind, reservation_id, amount = step
    if kind == "reserve":
        return reserve(
            record,
            reservations.get(reservation_id),
            quantity=amount,
            reservation_id=reservation_id,
            now=NOW,
            hold_ttl=timedelta(minutes=15),
        )
    if kind == "release":
        return release(
            record,
            reservations.get(reservation_id),
            quantity=amount,
            reservation_id=reservation_id,
            now=NOW,
            allow_partial=allow_partial,
        )
    if kind == "consume":
        return consume_reserved(
            record,
            reservations.get(reservation_id),
            quantity=amount,
            reservation_id=reservation_id,
            now=NOW,
            allow_partial=allow_partial,
        )
    if kind == "adjust":
        return adjust_inventory(record, amount, now=NOW)
    return restock(record, amount, now=NOW, restock_interval=timedelta(days=14))


class TestTransitionSequences:
    """Quantity invariants survive arbitrary operation sequences."""

    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    @given(
        on_hand=st.integers(0, 100),
        steps=st.lists(step_strategy, max_size=30),
        allow_partial=st.booleans(),
    )
    def test_invariants_hold_after_every_step(self, on_hand, steps, allow_partial):
        record = _initial(on_hand)
        reservations = {}

        for step in steps:
            before = record
            try:
                transition = _apply(record, reservations, step, allow_partial)
            except StockKernelError:
                assert record == before
                continue

            record = transition.record
            if transition.reservation is not None:
                reservations[transition.reservation.reservation_id] = transition.reservation

            assert 0 <= record.reserved <= record.on_hand
            assert record.available == record.on_hand - record.reserved
            held = sum(r.held_quantity for r in reservations.values() if r.is_held)
            assert record.reserved == held
            assert not any(
                r.consumed_quantity > 0 and r.released_quantity > 0
                for r in reservations.values()
            )

    @given(
        on_hand=st.integers(0, 100),
        quantity=st.integers(1, 150),
    )
    def test_reserve_never_oversells(self, on_hand, quantity):
        record = _initial(on_hand)
        try:
            transition = reserve(
                record, None, quantity=quantity, reservation_id="R-1", now=NOW
            )
        except StockKernelError:
            assert quantity > on_hand
            return
        assert quantity <= on_hand
        assert transition.record.reserved == quantity
        assert transition.record.on_hand == on_hand

    @given(
        on_hand=st.integers(0, 100),
        reserved_share=st.integers(0, 100),
        delta=st.integers(1, 500),
    )
    def test_adjust_round_trip_is_a_no_op(self, on_hand, reserved_share, delta):
        record = replace(_initial(on_hand), reserved=on_hand * reserved_share // 100)
        up = adjust_inventory(record, delta, now=NOW).record
        down = adjust_inventory(up, -delta, now=NOW).record
        assert (down.on_hand, down.reserved, down.available) == (
            record.on_hand,
            record.reserved,
            record.available,
        )
