"""
Configuration Schema (``stock_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the runtime configuration of the stock
ledger.  Values here are plain Python types; ``stock_config.bridges``
turns them into kernel value objects.

Architecture position
---------------------
**Config layer** -- pure data.  No dependency on the kernel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10


@dataclass(frozen=True)
class LedgerDefaultsConfig:
    """Thresholds given to a ledger row when it is first created."""

    minimum_stock_level: int
    maximum_stock_level: int
    reorder_point: int | None = None


@dataclass(frozen=True)
class NumberingConfig:
    transaction_prefix: str = "TXN"
    import_request_prefix: str = "DIR"
    export_request_prefix: str = "SPER"
    task_prefix: str = "TSK"
    sequence_width: int = 6


@dataclass(frozen=True)
class RequestPolicyConfig:
    max_reason_length: int = 1000
    max_total_amount: Decimal = Decimal("9999999999999.99")


@dataclass(frozen=True)
class TaskPolicyConfig:
    rejection_policy: str = "terminal"


@dataclass(frozen=True)
class SparePartsServiceConfig:
    """Connection to the separate spare-parts inventory service."""

    enabled: bool = False
    base_url: str = "http://localhost:8083"
    api_token: str | None = None
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class StockLedgerConfig:
    """Root configuration object returned by ``get_active_config()``."""

    database: DatabaseConfig
    ledger_defaults: dict[str, LedgerDefaultsConfig]
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    request_policy: RequestPolicyConfig = field(default_factory=RequestPolicyConfig)
    task_policy: TaskPolicyConfig = field(default_factory=TaskPolicyConfig)
    spare_parts_service: SparePartsServiceConfig = field(
        default_factory=SparePartsServiceConfig
    )
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
