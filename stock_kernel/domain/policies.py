"""
Policies -- tunable knobs for the ledger, as immutable value objects.

Responsibility:
    Holds the retry bound and backoff curve for version conflicts, the
    reservation hold / partial-settlement policy, the default thresholds for
    new records and the restock cadence.  The configuration layer builds
    these from YAML; the kernel only ever sees these frozen objects.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - RetryPolicy.max_attempts >= 1 (a call always gets at least one try).
    - Backoff never exceeds max_delay.

Failure modes:
    - ValueError on construction with out-of-range values.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_MAX_ATTEMPTS = 8
DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 0.2
DEFAULT_HOLD_TTL = timedelta(minutes=15)
DEFAULT_RESTOCK_INTERVAL = timedelta(weeks=2)
DEFAULT_LOW_STOCK_THRESHOLD = 10
DEFAULT_RESTOCK_THRESHOLD = 20


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded, jittered retry for optimistic-lock conflicts.

    Contract:
        ``backoff_delay(attempt)`` returns the pause before the next attempt
        using exponential backoff with full jitter:
        ``uniform(0, min(max_delay, base_delay * 2 ** (attempt - 1)))``.

    Guarantees:
        - At most ``max_attempts`` commit attempts per call.
        - If ``timeout_seconds`` is set, no new attempt starts after it.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("backoff delays cannot be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive when set")

    def backoff_ceiling(self, attempt: int) -> float:
        """Upper bound of the jitter window after ``attempt`` failures."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    def backoff_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Randomized pause after the given (1-based) failed attempt."""
        ceiling = self.backoff_ceiling(attempt)
        return (rng or random).uniform(0, ceiling)


@dataclass(frozen=True)
class ReservationPolicy:
    """
    How reservations are held and settled.

    hold_ttl:
        How long a held reservation may stay unsettled before the expiry
        sweep returns it to available stock.  ``None`` disables expiry.
    allow_partial:
        When False, release/consume must settle the full held quantity.
    """

    hold_ttl: timedelta | None = DEFAULT_HOLD_TTL
    allow_partial: bool = False

    def __post_init__(self) -> None:
        if self.hold_ttl is not None and self.hold_ttl <= timedelta(0):
            raise ValueError("hold_ttl must be positive when set")


@dataclass(frozen=True)
class ThresholdDefaults:
    """Thresholds applied to records created without explicit values."""

    low_stock: int = DEFAULT_LOW_STOCK_THRESHOLD
    restock: int = DEFAULT_RESTOCK_THRESHOLD

    def __post_init__(self) -> None:
        if self.low_stock < 0 or self.restock < 0:
            raise ValueError("thresholds cannot be negative")


@dataclass(frozen=True)
class RestockPolicy:
    """Cadence used to schedule the next restock after one is processed."""

    interval: timedelta = DEFAULT_RESTOCK_INTERVAL

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError("restock interval must be positive")
