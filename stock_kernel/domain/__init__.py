"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (``now`` is always passed in)
- I/O

All domain objects are immutable and deterministic.
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.policies import (
    ReservationPolicy,
    RestockPolicy,
    RetryPolicy,
    ThresholdDefaults,
)
from stock_kernel.domain.thresholds import (
    LowStockEntry,
    StockStatus,
    StockStatusReport,
    can_fulfill,
    classify,
    is_low_stock,
    needs_restock,
    status_report,
)
from stock_kernel.domain.stock import (
    MovementType,
    ReservationSnapshot,
    ReservationState,
    StockMovement,
    StockSnapshot,
    StockTransition,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Policies
    "RetryPolicy",
    "ReservationPolicy",
    "ThresholdDefaults",
    "RestockPolicy",
    # Thresholds
    "StockStatus",
    "StockStatusReport",
    "LowStockEntry",
    "is_low_stock",
    "needs_restock",
    "can_fulfill",
    "classify",
    "status_report",
    # Stock
    "StockSnapshot",
    "ReservationSnapshot",
    "ReservationState",
    "StockMovement",
    "MovementType",
    "StockTransition",
]
