"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into ``stock_config.schema`` dataclasses.
The public runtime entry point is ``stock_config.get_active_config()``;
this module is its implementation and is also used directly by tests.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError`` -- a typo never silently
  falls back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong shape or out-of-range values -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    DatabaseConfig,
    ReservationConfig,
    RestockConfig,
    RetryConfig,
    StockLedgerConfig,
    ThresholdConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "retry": RetryConfig,
    "thresholds": ThresholdConfig,
    "reservations": ReservationConfig,
    "restock": RestockConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_overrides(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``overrides`` onto ``base`` one section deep."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in overrides.items():
        if name not in _SECTIONS:
            raise ValueError(
                f"Unknown configuration section {name!r}; "
                f"expected one of {sorted(_SECTIONS)}"
            )
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Section {name!r} must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def parse_section(name: str, data: dict[str, Any]) -> Any:
    """Build the dataclass for one section, rejecting unknown keys."""
    section_type = _SECTIONS[name]
    known = set(section_type.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown key(s) in section {name!r}: {sorted(unknown)}; "
            f"expected {sorted(known)}"
        )
    return section_type(**data)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any], source: str = "defaults") -> StockLedgerConfig:
    """Parse a fully merged configuration dict."""
    missing = set(_SECTIONS) - set(data)
    if missing:
        raise ValueError(f"Missing configuration section(s): {sorted(missing)}")
    return StockLedgerConfig(
        database=parse_section("database", data["database"]),
        retry=parse_section("retry", data["retry"]),
        thresholds=parse_section("thresholds", data["thresholds"]),
        reservations=parse_section("reservations", data["reservations"]),
        restock=parse_section("restock", data["restock"]),
        checksum=compute_checksum(data),
        source=source,
    )


def load_config(path: Path | None = None) -> StockLedgerConfig:
    """Load the shipped defaults, overlaid with ``path`` when given."""
    data = load_yaml_file(DEFAULTS_PATH)
    source = "defaults"
    if path is not None:
        data = merge_overrides(data, load_yaml_file(path))
        source = str(path)
    return parse_config(data, source=source)
