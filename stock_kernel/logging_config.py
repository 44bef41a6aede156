"""
Structured JSON logging for the stock kernel.

Every record is written as one JSON object per line.  Fields bound through
``LogContext`` (the SKU being mutated, the reservation, the operation and
the caller's correlation id) are merged into each record, followed by the
``extra={...}`` payload of the call.  A logged StockKernelError contributes
its code and structured attributes as ``exc_*`` fields.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "stock_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "sku_code", "reservation_id", "operation")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"stock_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """Per-thread / per-task log fields, restored when a binding exits."""

    FIELDS = _CONTEXT_FIELDS

    @staticmethod
    def get_all() -> dict[str, str]:
        """The bound (non-None) fields."""
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Bind fields for the duration of the block.

        None values leave the current binding alone, so an inner block can
        add a reservation id without repeating the SKU.

        Raises:
            KeyError: For a field name outside ``LogContext.FIELDS``.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(value))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, bound context, extras, error."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``stock_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``stock_kernel`` logger; later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop the handlers so the next configure_logging() applies. Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
