"""
Kernel services -- the imperative shell around the pure stock engine.

StockRecordStore flushes, ConcurrencyController commits, and
StockLedgerService is the façade any transport calls.
"""

from stock_kernel.services.base import BaseService
from stock_kernel.services.concurrency_controller import (
    ConcurrencyController,
    StockCommit,
)
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.stock_store import StockRecordStore

__all__ = [
    "BaseService",
    "StockRecordStore",
    "ConcurrencyController",
    "StockCommit",
    "StockLedgerService",
]
