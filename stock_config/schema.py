"""
Configuration schema (``stock_config.schema``).

Frozen dataclasses that mirror the sections of the YAML configuration.
Each section validates itself in ``__post_init__`` and raises ``ValueError``
with the offending key and value, so a bad file fails at load time rather
than on the first request.
"""

from __future__ import annotations

from dataclasses import dataclass


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    busy_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        _require(bool(self.url), "database.url is required")
        _require(self.pool_size >= 1, f"database.pool_size must be >= 1, got {self.pool_size}")
        _require(
            self.max_overflow >= 0,
            f"database.max_overflow cannot be negative, got {self.max_overflow}",
        )
        _require(
            self.busy_timeout_seconds > 0,
            f"database.busy_timeout_seconds must be positive, got {self.busy_timeout_seconds}",
        )


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 8
    base_delay_ms: float = 5
    max_delay_ms: float = 200
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        _require(
            self.max_attempts >= 1,
            f"retry.max_attempts must be >= 1, got {self.max_attempts}",
        )
        _require(
            0 <= self.base_delay_ms <= self.max_delay_ms,
            "retry.base_delay_ms must be within [0, retry.max_delay_ms], got "
            f"{self.base_delay_ms}/{self.max_delay_ms}",
        )
        _require(
            self.timeout_seconds is None or self.timeout_seconds > 0,
            f"retry.timeout_seconds must be positive or null, got {self.timeout_seconds}",
        )


@dataclass(frozen=True)
class ThresholdConfig:
    low_stock: int = 10
    restock: int = 20

    def __post_init__(self) -> None:
        _require(self.low_stock >= 0, f"thresholds.low_stock cannot be negative, got {self.low_stock}")
        _require(self.restock >= 0, f"thresholds.restock cannot be negative, got {self.restock}")


@dataclass(frozen=True)
class ReservationConfig:
    """``hold_ttl_minutes: null`` disables hold expiry."""

    hold_ttl_minutes: float | None = 15
    allow_partial: bool = False

    def __post_init__(self) -> None:
        _require(
            self.hold_ttl_minutes is None or self.hold_ttl_minutes > 0,
            f"reservations.hold_ttl_minutes must be positive or null, got {self.hold_ttl_minutes}",
        )


@dataclass(frozen=True)
class RestockConfig:
    interval_days: float = 14

    def __post_init__(self) -> None:
        _require(
            self.interval_days > 0,
            f"restock.interval_days must be positive, got {self.interval_days}",
        )


@dataclass(frozen=True)
class StockLedgerConfig:
    """The complete, validated configuration plus the checksum of its source."""

    database: DatabaseConfig
    retry: RetryConfig
    thresholds: ThresholdConfig
    reservations: ReservationConfig
    restock: RestockConfig
    checksum: str = ""
    source: str = "defaults"
