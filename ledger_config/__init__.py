"""
ledger_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  Returns a frozen ``LedgerConfig``.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from ``ledger_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying displayed weights and values to the density table
    that produced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledger_config.loader import load_ledger_config
from ledger_config.schema import LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration set YAML file.
            Defaults to ledger_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_ledger_config(path)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "density_count": len(config.densities),
            "default_currency": config.default_currency,
        },
    )
    return config


__all__ = ["LedgerConfig", "get_active_config"]
