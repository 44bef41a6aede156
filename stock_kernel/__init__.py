"""
Stock Kernel - inventory stock ledger

A concurrency-safe stock ledger with:
- Reserve / consume / release holds against finite stock
- Optimistic compare-and-swap commits with bounded, jittered retry
- Derived quantities recomputed atomically on every commit
- Append-only stock movement journal
"""

__version__ = "0.1.0"
