"""
Config -> Kernel Bridges.

Functions that convert a ``StockLedgerConfig`` into kernel policy objects
and wired services.  These live in stock_config because the kernel must
NEVER import stock_config.

Usage:
    from stock_config import get_active_config
    from stock_config.bridges import build_ledger_service

    config = get_active_config()
    service = build_ledger_service(config)
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import StockLedgerConfig
from stock_kernel.db.engine import get_session_factory, init_engine_from_url
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.policies import (
    ReservationPolicy,
    RestockPolicy,
    RetryPolicy,
    ThresholdDefaults,
)
from stock_kernel.services.stock_ledger_service import StockLedgerService


def build_retry_policy(config: StockLedgerConfig) -> RetryPolicy:
    retry = config.retry
    return RetryPolicy(
        max_attempts=retry.max_attempts,
        base_delay=retry.base_delay_ms / 1000,
        max_delay=retry.max_delay_ms / 1000,
        timeout_seconds=retry.timeout_seconds,
    )


def build_reservation_policy(config: StockLedgerConfig) -> ReservationPolicy:
    ttl = config.reservations.hold_ttl_minutes
    return ReservationPolicy(
        hold_ttl=timedelta(minutes=ttl) if ttl is not None else None,
        allow_partial=config.reservations.allow_partial,
    )


def build_threshold_defaults(config: StockLedgerConfig) -> ThresholdDefaults:
    return ThresholdDefaults(
        low_stock=config.thresholds.low_stock,
        restock=config.thresholds.restock,
    )


def build_restock_policy(config: StockLedgerConfig) -> RestockPolicy:
    return RestockPolicy(interval=timedelta(days=config.restock.interval_days))


def init_database(config: StockLedgerConfig, database_url: str | None = None):
    """Initialize the kernel engine from the database section."""
    db = config.database
    return init_engine_from_url(
        database_url or db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        busy_timeout=db.busy_timeout_seconds,
    )


def build_ledger_service(
    config: StockLedgerConfig,
    session_factory: sessionmaker[Session] | None = None,
    *,
    clock: Clock | None = None,
) -> StockLedgerService:
    """
    Wire a StockLedgerService from configuration.

    When ``session_factory`` is None the kernel's module-level factory is
    used, so ``init_database`` must have been called first.
    """
    return StockLedgerService(
        session_factory or get_session_factory(),
        retry_policy=build_retry_policy(config),
        reservation_policy=build_reservation_policy(config),
        threshold_defaults=build_threshold_defaults(config),
        restock_policy=build_restock_policy(config),
        clock=clock,
    )
