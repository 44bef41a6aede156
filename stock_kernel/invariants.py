"""
Kernel Invariants Contract.

These invariants are structural law. They hold after every committed
mutation, never only "eventually". No configuration value may relax them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across the pure transitions in
``stock_kernel.domain.stock``, the conditional write in
``StockRecordStore.compare_and_swap`` and the table CHECK constraints.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    RESERVED_WITHIN_ON_HAND = "reserved_within_on_hand"
    """0 <= reserved <= on_hand. Enforced by every transition and by the
    ck_stock_reserved_within_on_hand constraint."""

    AVAILABLE_DERIVED = "available_derived"
    """available == max(0, on_hand - reserved). Recomputed in the single
    snapshot constructor and written in the same UPDATE."""

    VERSION_MONOTONIC = "version_monotonic"
    """Each committed mutation moves version from V to V + 1 and no two
    commits start from the same V. Enforced by the WHERE version = :V
    conditional write."""

    TOTAL_VALUE_DERIVED = "total_value_derived"
    """total_value == unit_cost * on_hand whenever unit_cost is present."""

    NO_OVERSELL = "no_oversell"
    """A reservation is granted only when available >= quantity at the
    version being committed."""

    SINGLE_SETTLEMENT = "single_settlement"
    """A caller never both consumes and releases one reservation.  The
    expiry sweep may still return the remainder of a partly consumed hold."""


# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_import_boundaries.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_config",
    "scripts",
)
