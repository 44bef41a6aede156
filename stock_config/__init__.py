"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``StockLedgerConfig``.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel MUST NEVER import
    from ``stock_config``; ``stock_config.bridges`` translates the config
    into kernel policy objects.

Failure modes:
    - ``FileNotFoundError`` -- the given config file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the source and checksum, which
    ties observed behaviour back to the exact configuration that ran.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import load_config
from stock_config.schema import StockLedgerConfig

_logger = logging.getLogger("stock_kernel.config")


def get_active_config(config_path: Path | str | None = None) -> StockLedgerConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file whose sections override the
            shipped defaults.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If the merged configuration is invalid.
    """
    config = load_config(Path(config_path) if config_path is not None else None)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "max_attempts": config.retry.max_attempts,
            "hold_ttl_minutes": config.reservations.hold_ttl_minutes,
            "allow_partial": config.reservations.allow_partial,
        },
    )
    return config


__all__ = [
    "StockLedgerConfig",
    "get_active_config",
]
