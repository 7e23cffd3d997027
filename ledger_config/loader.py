"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a configuration set YAML file and parses it into the frozen
``ledger_config.schema.LedgerConfig``.  Services never call this directly;
the runtime entry point is ``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Densities and lengths are parsed to ``Decimal`` via ``str`` so YAML
  floats keep their printed form.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id`` / ``geometry.default_density``  -> ``KeyError``.
* Non-positive density, unknown currency or unit  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import SUPPORTED_LENGTH_UNITS, LedgerConfig
from ledger_kernel.domain.currency import CurrencyRegistry


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_density(grade: str, value: Any) -> Decimal:
    try:
        density = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Density for {grade!r} is not a number: {value!r}") from e
    if not density.is_finite() or density <= 0:
        raise ValueError(f"Density for {grade!r} must be positive, got {density}")
    return density


def parse_ledger_config(data: dict[str, Any], checksum: str = "") -> LedgerConfig:
    """
    Build a LedgerConfig from a parsed YAML document.

    Raises:
        KeyError: required key missing.
        ValueError: invalid density, currency or length unit.
    """
    ledger = data.get("ledger") or {}
    geometry = data["geometry"]

    default_currency = str(ledger.get("default_currency", "EUR")).upper()
    if not CurrencyRegistry.is_valid(default_currency):
        raise ValueError(f"Unknown default currency: {default_currency!r}")

    length_unit = str(ledger.get("length_unit", "mm"))
    if length_unit not in SUPPORTED_LENGTH_UNITS:
        raise ValueError(
            f"Unsupported length unit {length_unit!r}; expected one of {SUPPORTED_LENGTH_UNITS}"
        )

    densities = {
        str(grade).strip().lower(): parse_density(str(grade), value)
        for grade, value in (geometry.get("densities") or {}).items()
    }

    return LedgerConfig(
        config_id=str(data["config_id"]),
        version=int(data.get("version", 1)),
        default_density=parse_density("default", geometry["default_density"]),
        densities=densities,
        default_currency=default_currency,
        length_unit=length_unit,
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_ledger_config(path: Path) -> LedgerConfig:
    data = load_yaml_file(path)
    return parse_ledger_config(data, checksum=compute_checksum(data))
