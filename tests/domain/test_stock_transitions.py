"""
Pure reservation engine tests.

Every transition is a function of (snapshot, arguments, now), so these tests
need no database:
- reserve / release / consume keep 0 <= reserved <= on_hand
- available is always max(0, on_hand - reserved)
- reserve then release restores the exact quantities
- rejections leave the input snapshot untouched
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.stock import (
    MovementType,
    ReservationState,
    StockSnapshot,
    adjust_inventory,
    consume_reserved,
    create_snapshot,
    deactivate,
    expire_hold,
    release,
    reserve,
    restock,
)
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

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def _record(on_hand=100, reserved=0, unit_cost=None, is_active=True, **kwargs) -> StockSnapshot:
    return StockSnapshot(
        id=uuid4(),
        product_id=uuid4(),
        sku_code=kwargs.pop("sku_code", "SKU-1"),
        on_hand=on_hand,
        reserved=reserved,
        low_stock_threshold=kwargs.pop("low_stock_threshold", 10),
        restock_threshold=kwargs.pop("restock_threshold", 20),
        version=kwargs.pop("version", 1),
        unit_cost=unit_cost,
        is_active=is_active,
        created_at=NOW,
        updated_at=NOW,
    )


def _held(record, quantity, reservation_id="R-1", hold_ttl=None):
    """Reserve and return (new record, held reservation)."""
    t = reserve(
        record, None, quantity=quantity, reservation_id=reservation_id, now=NOW, hold_ttl=hold_ttl
    )
    return t.record, t.reservation


class TestSnapshotDerivedValues:
    """available / total_value are derived, never stored independently."""

    def test_available_is_on_hand_minus_reserved(self):
        assert _record(on_hand=100, reserved=30).available == 70

    def test_total_value_requires_unit_cost(self):
        assert _record(on_hand=4).total_value is None
        assert _record(on_hand=4, unit_cost=Decimal("2.50")).total_value == Decimal("10.00")

    def test_reserved_above_on_hand_is_rejected_at_construction(self):
        with pytest.raises(ValueError):
            _record(on_hand=5, reserved=6)

    def test_negative_on_hand_is_rejected_at_construction(self):
        with pytest.raises(ValueError):
            _record(on_hand=-1)


class TestCreateSnapshot:
    """Validation of brand-new records."""

    def _create(self, **overrides):
        args = dict(
            product_id=uuid4(),
            sku_code="SKU-NEW",
            on_hand=10,
            reserved=0,
            low_stock_threshold=10,
            restock_threshold=20,
            now=NOW,
        )
        args.update(overrides)
        return create_snapshot(**args)

    def test_new_record_starts_at_version_one(self):
        t = self._create()
        assert t.record.version == 1
        assert t.record.created_at == NOW
        assert t.movement.movement_type == MovementType.CREATED
        assert t.movement.quantity == 10

    @pytest.mark.parametrize(
        "overrides",
        [
            {"on_hand": -1},
            {"reserved": 11},
            {"reserved": -1},
            {"low_stock_threshold": -1},
            {"restock_threshold": -5},
            {"unit_cost": Decimal("-0.01")},
            {"sku_code": "  "},
        ],
    )
    def test_invalid_initial_values_are_rejected(self, overrides):
        with pytest.raises(InvalidStockRecordError):
            self._create(**overrides)


class TestReserve:
    """reserve(): all-or-nothing hold against available stock."""

    def test_worked_example_reserve_twenty_of_hundred(self):
        record = _record(on_hand=100)
        t = reserve(record, None, quantity=20, reservation_id="ORDER-1", now=NOW)

        assert (t.record.on_hand, t.record.reserved, t.record.available) == (100, 20, 80)
        assert t.reservation.state == ReservationState.HELD
        assert t.reservation.held_quantity == 20
        assert t.movement.movement_type == MovementType.RESERVED

    def test_reserve_exactly_available_succeeds(self):
        t = reserve(_record(on_hand=5), None, quantity=5, reservation_id="R", now=NOW)
        assert t.record.available == 0

    def test_reserve_more_than_available_is_rejected(self):
        record = _record(on_hand=10, reserved=6)
        with pytest.raises(InsufficientStockError) as exc_info:
            reserve(record, None, quantity=5, reservation_id="R", now=NOW)
        assert exc_info.value.available == 4
        assert exc_info.value.requested == 5
        assert record.reserved == 6

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity_is_rejected(self, quantity):
        with pytest.raises(InvalidQuantityError):
            reserve(_record(), None, quantity=quantity, reservation_id="R", now=NOW)

    def test_inactive_record_cannot_be_reserved(self):
        with pytest.raises(InactiveStockRecordError):
            reserve(_record(is_active=False), None, quantity=1, reservation_id="R", now=NOW)

    def test_reused_reservation_id_is_rejected(self):
        record, held = _held(_record(), 5)
        with pytest.raises(DuplicateReservationError) as exc_info:
            reserve(record, held, quantity=1, reservation_id="R-1", now=NOW)
        assert exc_info.value.state == "held"

    def test_hold_ttl_sets_expiry(self):
        _, held = _held(_record(), 5, hold_ttl=timedelta(minutes=15))
        assert held.expires_at == NOW + timedelta(minutes=15)

    def test_transition_does_not_bump_version(self):
        record, _ = _held(_record(version=7), 1)
        assert record.version == 7


class TestRelease:
    """release(): held units go back to available."""

    def test_reserve_then_release_restores_exact_state(self):
        original = _record(on_hand=100, reserved=0)
        record, held = _held(original, 20)
        t = release(record, held, quantity=20, reservation_id="R-1", now=NOW)

        assert (t.record.on_hand, t.record.reserved, t.record.available) == (
            original.on_hand,
            original.reserved,
            original.available,
        )
        assert t.reservation.state == ReservationState.RELEASED
        assert t.reservation.released_quantity == 20
        assert t.reservation.closed_at == NOW

    def test_release_more_than_held_is_excessive(self):
        record, held = _held(_record(), 5)
        with pytest.raises(ExcessiveReleaseError):
            release(record, held, quantity=6, reservation_id="R-1", now=NOW)

    def test_release_of_unknown_reservation(self):
        with pytest.raises(ReservationNotFoundError) as exc_info:
            release(_record(reserved=5), None, quantity=5, reservation_id="NOPE", now=NOW)
        assert isinstance(exc_info.value, InvalidReservationStateError)

    def test_partial_release_refused_by_default(self):
        record, held = _held(_record(), 10)
        with pytest.raises(PartialReservationNotAllowedError):
            release(record, held, quantity=4, reservation_id="R-1", now=NOW)

    def test_partial_release_when_allowed_keeps_hold_open(self):
        record, held = _held(_record(), 10)
        t = release(
            record, held, quantity=4, reservation_id="R-1", now=NOW, allow_partial=True
        )
        assert t.record.reserved == 6
        assert t.reservation.state == ReservationState.HELD
        assert t.reservation.held_quantity == 6

        t2 = release(
            t.record, t.reservation, quantity=6, reservation_id="R-1", now=NOW, allow_partial=True
        )
        assert t2.record.reserved == 0
        assert t2.reservation.state == ReservationState.RELEASED
        assert t2.reservation.released_quantity == 10

    def test_release_after_consume_is_invalid_state(self):
        record, held = _held(_record(), 5)
        consumed = consume_reserved(record, held, quantity=5, reservation_id="R-1", now=NOW)
        with pytest.raises(InvalidReservationStateError) as exc_info:
            release(
                consumed.record, consumed.reservation, quantity=5, reservation_id="R-1", now=NOW
            )
        assert exc_info.value.state == "consumed"

    def test_release_after_partial_consume_is_invalid_state(self):
        record, held = _held(_record(), 5)
        t = consume_reserved(
            record, held, quantity=2, reservation_id="R-1", now=NOW, allow_partial=True
        )
        with pytest.raises(InvalidReservationStateError) as exc_info:
            release(
                t.record, t.reservation, quantity=3, reservation_id="R-1", now=NOW,
                allow_partial=True,
            )
        assert exc_info.value.state == "held(partially consumed 2)"


class TestConsume:
    """consume_reserved(): held units leave on-hand and reserved together."""

    def test_worked_example_consume_twenty(self):
        record, held = _held(_record(on_hand=100), 20)
        t = consume_reserved(record, held, quantity=20, reservation_id="R-1", now=NOW)

        assert (t.record.on_hand, t.record.reserved, t.record.available) == (80, 0, 80)
        assert t.reservation.state == ReservationState.CONSUMED
        assert t.movement.quantity == -20

    def test_consume_more_than_held_is_invalid_state(self):
        record, held = _held(_record(), 5)
        with pytest.raises(InvalidReservationStateError):
            consume_reserved(record, held, quantity=6, reservation_id="R-1", now=NOW)

    def test_consume_twice_is_invalid_state(self):
        record, held = _held(_record(), 5)
        t = consume_reserved(record, held, quantity=5, reservation_id="R-1", now=NOW)
        with pytest.raises(InvalidReservationStateError):
            consume_reserved(t.record, t.reservation, quantity=5, reservation_id="R-1", now=NOW)

    def test_consume_updates_total_value(self):
        record, held = _held(_record(on_hand=10, unit_cost=Decimal("3.00")), 4)
        t = consume_reserved(record, held, quantity=4, reservation_id="R-1", now=NOW)
        assert t.record.total_value == Decimal("18.00")

    def test_consume_is_allowed_on_inactive_record(self):
        record, held = _held(_record(), 3)
        inactive = deactivate(record, now=NOW).record
        t = consume_reserved(inactive, held, quantity=3, reservation_id="R-1", now=NOW)
        assert t.record.on_hand == 97

    def test_consume_after_partial_release_is_invalid_state(self):
        record, held = _held(_record(), 5)
        t = release(
            record, held, quantity=1, reservation_id="R-1", now=NOW, allow_partial=True
        )
        with pytest.raises(InvalidReservationStateError):
            consume_reserved(
                t.record, t.reservation, quantity=4, reservation_id="R-1", now=NOW,
                allow_partial=True,
            )

    def test_partial_consumes_close_the_hold_as_consumed(self):
        record, held = _held(_record(), 5)
        t = consume_reserved(
            record, held, quantity=2, reservation_id="R-1", now=NOW, allow_partial=True
        )
        t2 = consume_reserved(
            t.record, t.reservation, quantity=3, reservation_id="R-1", now=NOW, allow_partial=True
        )
        assert t2.reservation.state == ReservationState.CONSUMED
        assert (t2.reservation.consumed_quantity, t2.reservation.released_quantity) == (5, 0)
        assert (t2.record.on_hand, t2.record.reserved) == (95, 0)


class TestAdjust:
    """adjust_inventory(): physical corrections."""

    def test_positive_adjustment(self):
        t = adjust_inventory(_record(on_hand=10), 5, now=NOW, reason="found")
        assert t.record.on_hand == 15
        assert t.movement.reason == "found"

    def test_adjust_to_exactly_zero(self):
        assert adjust_inventory(_record(on_hand=10), -10, now=NOW).record.on_hand == 0

    def test_adjust_below_zero_is_rejected(self):
        with pytest.raises(InsufficientQuantityError):
            adjust_inventory(_record(on_hand=10), -11, now=NOW)

    def test_adjust_below_reserved_is_rejected(self):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            adjust_inventory(_record(on_hand=10, reserved=8), -3, now=NOW)
        assert exc_info.value.reserved == 8

    def test_adjust_down_to_reserved_is_allowed(self):
        t = adjust_inventory(_record(on_hand=10, reserved=8), -2, now=NOW)
        assert (t.record.on_hand, t.record.available) == (8, 0)

    def test_zero_delta_is_rejected(self):
        with pytest.raises(InvalidQuantityError):
            adjust_inventory(_record(), 0, now=NOW)

    @pytest.mark.parametrize("delta", [1, 7, 60])
    def test_adjust_up_then_down_restores_on_hand(self, delta):
        start = _record(on_hand=40, reserved=15)
        up = adjust_inventory(start, delta, now=NOW).record
        down = adjust_inventory(up, -delta, now=NOW).record
        assert (down.on_hand, down.reserved, down.available) == (40, 15, 25)


class TestRestockExpireDeactivate:
    """Supplementary lifecycle transitions."""

    def test_restock_schedules_next_restock(self):
        t = restock(_record(on_hand=1), 49, now=NOW, restock_interval=timedelta(weeks=2))
        assert t.record.on_hand == 50
        assert t.record.last_restocked_at == NOW
        assert t.record.next_restock_at == NOW + timedelta(days=14)
        assert t.movement.movement_type == MovementType.RESTOCKED

    def test_expire_hold_after_deadline_releases_everything(self):
        record, held = _held(_record(), 7, hold_ttl=timedelta(minutes=15))
        later = NOW + timedelta(minutes=15)
        t = expire_hold(record, held, reservation_id="R-1", now=later)
        assert t.record.reserved == 0
        assert t.reservation.state == ReservationState.RELEASED
        assert t.movement.movement_type == MovementType.EXPIRED

    def test_expire_hold_before_deadline_is_refused(self):
        record, held = _held(_record(), 7, hold_ttl=timedelta(minutes=15))
        with pytest.raises(InvalidReservationStateError):
            expire_hold(record, held, reservation_id="R-1", now=NOW + timedelta(minutes=14))

    def test_expire_returns_remainder_of_partly_consumed_hold(self):
        record, held = _held(_record(), 7, hold_ttl=timedelta(minutes=15))
        t = consume_reserved(
            record, held, quantity=3, reservation_id="R-1", now=NOW, allow_partial=True
        )
        later = NOW + timedelta(minutes=15)
        expired = expire_hold(t.record, t.reservation, reservation_id="R-1", now=later)
        assert (expired.record.on_hand, expired.record.reserved) == (97, 0)
        assert expired.reservation.held_quantity == 0
        assert expired.movement.quantity == 4

    def test_deactivate_is_terminal(self):
        inactive = deactivate(_record(), now=NOW).record
        assert inactive.is_active is False
        with pytest.raises(InactiveStockRecordError):
            deactivate(inactive, now=NOW)


class TestInvariantUnderSequences:
    """0 <= reserved <= on_hand across an arbitrary accepted sequence."""

    def test_mixed_sequence_keeps_quantities_consistent(self):
        record = _record(on_hand=30)
        steps = [
            ("reserve", 10, "A"),
            ("reserve", 15, "B"),
            ("consume", 10, "A"),
            ("adjust", -5, None),
            ("release", 15, "B"),
            ("reserve", 15, "C"),
        ]
        reservations = {}
        for op, qty, rid in steps:
            if op == "reserve":
                t = reserve(record, None, quantity=qty, reservation_id=rid, now=NOW)
            elif op == "consume":
                t = consume_reserved(
                    record, reservations[rid], quantity=qty, reservation_id=rid, now=NOW
                )
            elif op == "release":
                t = release(record, reservations[rid], quantity=qty, reservation_id=rid, now=NOW)
            else:
                t = adjust_inventory(record, qty, now=NOW)
            record = t.record
            if t.reservation is not None:
                reservations[rid] = t.reservation
            assert 0 <= record.reserved <= record.on_hand
            assert record.available == record.on_hand - record.reserved

        assert (record.on_hand, record.reserved, record.available) == (15, 15, 0)
