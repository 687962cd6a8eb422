"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Packaged defaults in ``defaults.yaml`` are
    deep-merged with an optional override file and with environment
    overrides, then parsed into a frozen ``StockLedgerConfig``.

Architecture position:
    Configuration.  Sits above ``stock_kernel`` and below
    ``stock_services``.  The kernel MUST NEVER import from
    ``stock_config``; ``stock_config.bridges`` translates configuration into
    kernel value types.

Environment:
    STOCK_LEDGER_CONFIG        path to an override YAML file
    STOCK_LEDGER_DATABASE_URL  replaces ``database.url``

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema failures in the merged data.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from stock_config.loader import deep_merge, load_yaml_file, parse_config
from stock_config.schema import StockLedgerConfig

_logger = logging.getLogger("stock_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "STOCK_LEDGER_CONFIG"
DATABASE_URL_ENV = "STOCK_LEDGER_DATABASE_URL"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> StockLedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override file merged over the packaged defaults.
            Falls back to ``$STOCK_LEDGER_CONFIG`` when omitted.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        Frozen ``StockLedgerConfig``.  A ``stock_config_loaded`` log record
        is emitted on every successful call.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_PATH)

    path = config_path or env.get(CONFIG_PATH_ENV)
    if path:
        data = deep_merge(data, load_yaml_file(Path(path)))

    database_url = env.get(DATABASE_URL_ENV)
    if database_url:
        data = deep_merge(data, {"database": {"url": database_url}})

    config = parse_config(data)

    _logger.info(
        "stock_config_loaded",
        extra={
            "config_path": str(path) if path else None,
            "checksum": config.checksum,
            "rejection_policy": config.task_policy.rejection_policy,
            "spare_parts_sync": config.spare_parts_service.enabled,
        },
    )
    return config


__all__ = ["StockLedgerConfig", "get_active_config"]
