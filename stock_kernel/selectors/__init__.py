"""Read-only query selectors."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.stock_selector import MovementEntry, StockSelector

__all__ = [
    "BaseSelector",
    "StockSelector",
    "MovementEntry",
]
