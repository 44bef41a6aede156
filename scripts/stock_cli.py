#!/usr/bin/env python3
"""
Command line for the stock ledger.

Usage:
    python3 scripts/stock_cli.py [--config FILE] [--db-url URL] [--correlation-id ID] <command> ...

Examples:
    # Create the tables, then a SKU with 100 units on hand
    python3 scripts/stock_cli.py init-db
    python3 scripts/stock_cli.py create WIDGET-1 --on-hand 100 --unit-cost 2.50

    # Hold 20 units for an order, then ship them
    python3 scripts/stock_cli.py reserve WIDGET-1 20 ORDER-42
    python3 scripts/stock_cli.py consume WIDGET-1 20 ORDER-42

    # Availability and replenishment
    python3 scripts/stock_cli.py status WIDGET-1
    python3 scripts/stock_cli.py low-stock
    python3 scripts/stock_cli.py expire

Every command prints one JSON document on stdout.  Business rejections
print ``{"error": <code>, "message": ...}`` and exit with status 1.
"""

import argparse
import json
import sys
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from stock_config import get_active_config  # noqa: E402
from stock_config.bridges import build_ledger_service, init_database  # noqa: E402
from stock_kernel.db.engine import create_tables  # noqa: E402
from stock_kernel.exceptions import StockKernelError  # noqa: E402
from stock_kernel.logging_config import LogContext  # noqa: E402


def _to_jsonable(value):
    if is_dataclass(value):
        data = asdict(value)
        for name in ("available", "total_value", "is_low_stock", "needs_restock"):
            if hasattr(value, name) and not callable(getattr(value, name)):
                data[name] = getattr(value, name)
        return data
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def _default(obj):
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "value"):
        return obj.value
    raise TypeError(f"Not JSON serializable: {type(obj).__name__}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inventory stock ledger")
    parser.add_argument("--config", type=Path, default=None, help="YAML config overrides")
    parser.add_argument("--db-url", type=str, default=None, help="Override database.url")
    parser.add_argument(
        "--correlation-id",
        default=None,
        help="Tag every log line of this invocation (default: a fresh id)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables")

    p = sub.add_parser("create", help="Create a stock record")
    p.add_argument("sku")
    p.add_argument("--product-id", type=UUID, default=None)
    p.add_argument("--on-hand", type=int, default=0)
    p.add_argument("--low-stock-threshold", type=int, default=None)
    p.add_argument("--restock-threshold", type=int, default=None)
    p.add_argument("--unit-cost", type=Decimal, default=None)
    p.add_argument("--location", default=None)
    p.add_argument("--bin", default=None)

    p = sub.add_parser("get", help="Show a stock record")
    p.add_argument("sku")

    p = sub.add_parser("status", help="Availability flags for a SKU")
    p.add_argument("sku")

    p = sub.add_parser("adjust", help="Add or remove physical units")
    p.add_argument("sku")
    p.add_argument("delta", type=int)
    p.add_argument("--reason", default=None)
    p.add_argument("--reference", default=None)

    p = sub.add_parser("restock", help="Receive units and schedule the next restock")
    p.add_argument("sku")
    p.add_argument("quantity", type=int)
    p.add_argument("--reference", default=None)

    for name, help_text in (
        ("reserve", "Hold units for a reservation"),
        ("release", "Return held units to available stock"),
        ("consume", "Ship held units"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("sku")
        p.add_argument("quantity", type=int)
        p.add_argument("reservation_id")
        if name == "reserve":
            p.add_argument("--notes", default=None)
        if name == "release":
            p.add_argument("--reason", default=None)

    p = sub.add_parser("deactivate", help="Exclude a SKU from fulfillment")
    p.add_argument("sku")
    p.add_argument("--reason", default=None)

    sub.add_parser("low-stock", help="List SKUs at or below their low-stock threshold")
    sub.add_parser("needs-restock", help="List SKUs at or below their restock threshold")
    sub.add_parser("due-restock", help="List SKUs whose next restock date has passed")
    sub.add_parser("expire", help="Release holds whose TTL has passed")

    p = sub.add_parser("movements", help="Show the movement journal of a SKU")
    p.add_argument("sku")

    p = sub.add_parser("reservations", help="List the reservations of a SKU")
    p.add_argument("sku")

    return parser


def run(args, service):
    command = args.command
    if command == "create":
        return service.create_item(
            args.product_id or uuid4(),
            args.sku,
            args.on_hand,
            low_stock_threshold=args.low_stock_threshold,
            restock_threshold=args.restock_threshold,
            unit_cost=args.unit_cost,
            location_code=args.location,
            bin_location=args.bin,
        )
    if command == "get":
        return service.get_by_sku_code(args.sku)
    if command == "status":
        return service.check_status(args.sku)
    if command == "adjust":
        return service.adjust_stock(args.sku, args.delta, args.reason, args.reference)
    if command == "restock":
        return service.process_restock(args.sku, args.quantity, args.reference)
    if command == "reserve":
        return service.reserve_stock(args.sku, args.quantity, args.reservation_id, args.notes)
    if command == "release":
        return service.release_stock(args.sku, args.quantity, args.reservation_id, args.reason)
    if command == "consume":
        return service.consume_reserved(args.sku, args.quantity, args.reservation_id)
    if command == "deactivate":
        return service.deactivate_item(args.sku, args.reason)
    if command == "low-stock":
        return service.list_low_stock()
    if command == "needs-restock":
        return service.list_needing_restock()
    if command == "due-restock":
        return service.list_due_for_restock()
    if command == "expire":
        return service.expire_reservations()
    if command == "movements":
        return service.list_movements(args.sku)
    if command == "reservations":
        return service.list_reservations(args.sku)
    raise ValueError(f"Unknown command: {command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = get_active_config(args.config)
    init_database(config, args.db_url)

    if args.command == "init-db":
        create_tables()
        print(json.dumps({"status": "ok"}))
        return 0

    service = build_ledger_service(config)
    correlation_id = args.correlation_id or uuid4().hex
    try:
        with LogContext.bind(correlation_id=correlation_id):
            result = run(args, service)
    except StockKernelError as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}))
        return 1

    print(json.dumps(_to_jsonable(result), default=_default, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
