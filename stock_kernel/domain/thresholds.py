"""
Thresholds -- stateless low-stock / restock derivation.

Responsibility:
    Derives the low-stock, needs-restock and can-fulfill predicates and the
    coarse stock status from a record's current quantities.  Nothing here
    is cached: every read and every commit recomputes from the committed
    numbers, so a flag can never be staler than the record it describes.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - is_low_stock is true exactly when available <= low_stock_threshold
      (the boundary counts as low).
    - needs_restock is true exactly when available <= restock_threshold.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stock_kernel.domain.stock import StockSnapshot


class StockStatus(str, Enum):
    """Coarse availability classification, most severe first."""

    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    NEEDS_RESTOCK = "NEEDS_RESTOCK"
    IN_STOCK = "IN_STOCK"


def is_low_stock(available: int, low_stock_threshold: int) -> bool:
    return available <= low_stock_threshold


def needs_restock(available: int, restock_threshold: int) -> bool:
    return available <= restock_threshold


def can_fulfill(available: int, quantity: int) -> bool:
    return available >= quantity


def classify(available: int, low_stock_threshold: int, restock_threshold: int) -> StockStatus:
    """Map quantities to a StockStatus (out of stock wins over low stock)."""
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if is_low_stock(available, low_stock_threshold):
        return StockStatus.LOW_STOCK
    if needs_restock(available, restock_threshold):
        return StockStatus.NEEDS_RESTOCK
    return StockStatus.IN_STOCK


@dataclass(frozen=True)
class StockStatusReport:
    """Answer to a status check for one SKU."""

    sku_code: str
    available: int
    is_low_stock: bool
    needs_restock: bool
    in_stock: bool
    status: StockStatus
    version: int


@dataclass(frozen=True)
class LowStockEntry:
    """One row of a low-stock (or needs-restock) listing."""

    sku_code: str
    available: int
    threshold: int
    status: StockStatus


def status_report(record: StockSnapshot) -> StockStatusReport:
    """Build the status answer for a record as of its committed version."""
    available = record.available
    return StockStatusReport(
        sku_code=record.sku_code,
        available=available,
        is_low_stock=is_low_stock(available, record.low_stock_threshold),
        needs_restock=needs_restock(available, record.restock_threshold),
        in_stock=available > 0,
        status=classify(available, record.low_stock_threshold, record.restock_threshold),
        version=record.version,
    )


def low_stock_entry(record: StockSnapshot, threshold: int) -> LowStockEntry:
    return LowStockEntry(
        sku_code=record.sku_code,
        available=record.available,
        threshold=threshold,
        status=classify(record.available, record.low_stock_threshold, record.restock_threshold),
    )
