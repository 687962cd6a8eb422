"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``stock_config.schema``
dataclass instances.  Runtime callers go through
``stock_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  configuration for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    DatabaseConfig,
    LedgerDefaultsConfig,
    LoggingConfig,
    NumberingConfig,
    RequestPolicyConfig,
    SparePartsServiceConfig,
    StockLedgerConfig,
    TaskPolicyConfig,
)

_RESOURCE_KINDS = ("DEVICE", "SPARE_PART")
_REJECTION_POLICIES = ("terminal", "requeue")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse decimal from {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 10)),
    )


def parse_ledger_defaults(data: dict[str, Any]) -> dict[str, LedgerDefaultsConfig]:
    """
    Parse per-kind ledger thresholds.

    Raises:
        ValueError: unknown resource kind, negative values, or minimum
            above maximum.
    """
    result: dict[str, LedgerDefaultsConfig] = {}
    for kind, values in data.items():
        if kind not in _RESOURCE_KINDS:
            raise ValueError(
                f"ledger_defaults: unknown resource kind {kind!r}; "
                f"expected one of {_RESOURCE_KINDS}"
            )
        minimum = int(values["minimum_stock_level"])
        maximum = int(values["maximum_stock_level"])
        reorder = values.get("reorder_point")
        if minimum < 0 or maximum < 0 or (reorder is not None and int(reorder) < 0):
            raise ValueError(f"ledger_defaults.{kind}: thresholds must be >= 0")
        if maximum and minimum > maximum:
            raise ValueError(
                f"ledger_defaults.{kind}: minimum_stock_level {minimum} "
                f"exceeds maximum_stock_level {maximum}"
            )
        result[kind] = LedgerDefaultsConfig(
            minimum_stock_level=minimum,
            maximum_stock_level=maximum,
            reorder_point=int(reorder) if reorder is not None else None,
        )
    return result


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    width = int(data.get("sequence_width", 6))
    if width < 1:
        raise ValueError(f"numbering.sequence_width must be >= 1, got {width}")
    return NumberingConfig(
        transaction_prefix=data.get("transaction_prefix", "TXN"),
        import_request_prefix=data.get("import_request_prefix", "DIR"),
        export_request_prefix=data.get("export_request_prefix", "SPER"),
        task_prefix=data.get("task_prefix", "TSK"),
        sequence_width=width,
    )


def parse_request_policy(data: dict[str, Any]) -> RequestPolicyConfig:
    return RequestPolicyConfig(
        max_reason_length=int(data.get("max_reason_length", 1000)),
        max_total_amount=parse_decimal(
            data.get("max_total_amount", "9999999999999.99"),
            "request_policy.max_total_amount",
        ),
    )


def parse_task_policy(data: dict[str, Any]) -> TaskPolicyConfig:
    policy = str(data.get("rejection_policy", "terminal")).lower()
    if policy not in _REJECTION_POLICIES:
        raise ValueError(
            f"task_policy.rejection_policy must be one of {_REJECTION_POLICIES}, "
            f"got {policy!r}"
        )
    return TaskPolicyConfig(rejection_policy=policy)


def parse_spare_parts_service(data: dict[str, Any]) -> SparePartsServiceConfig:
    timeout = float(data.get("timeout_seconds", 10.0))
    if timeout <= 0:
        raise ValueError(
            f"spare_parts_service.timeout_seconds must be > 0, got {timeout}"
        )
    return SparePartsServiceConfig(
        enabled=bool(data.get("enabled", False)),
        base_url=str(data.get("base_url", "http://localhost:8083")).rstrip("/"),
        api_token=data.get("api_token"),
        timeout_seconds=timeout,
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(level=str(data.get("level", "INFO")).upper())


def parse_config(data: dict[str, Any]) -> StockLedgerConfig:
    """Parse a fully merged configuration mapping."""
    return StockLedgerConfig(
        database=parse_database(data["database"]),
        ledger_defaults=parse_ledger_defaults(data.get("ledger_defaults", {})),
        numbering=parse_numbering(data.get("numbering", {})),
        request_policy=parse_request_policy(data.get("request_policy", {})),
        task_policy=parse_task_policy(data.get("task_policy", {})),
        spare_parts_service=parse_spare_parts_service(data.get("spare_parts_service", {})),
        logging=parse_logging(data.get("logging", {})),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
