"""
DTOs -- ledger and transaction log data transfer objects.

Responsibility:
    Immutable values returned by the ledger services and selectors:
    LedgerSnapshot (current quantity + thresholds), TransactionLogEntryRecord
    (one audit record of a quantity change), and the filters and aggregates
    used by the query surface.

Architecture position:
    Kernel > Domain -- pure code, zero I/O.  ORM models map themselves onto
    these types field by field in ``to_dto()``; nothing here imports the ORM.

Invariants enforced:
    - LedgerSnapshot.quantity_in_stock is never negative.
    - TransactionLogEntryRecord.quantity_change == after - before.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class ResourceKind(str, Enum):
    """Catalog a resource id belongs to.  Ledger rows are keyed by (kind, id)."""

    DEVICE = "DEVICE"
    SPARE_PART = "SPARE_PART"


class TransactionType(str, Enum):
    """Direction of a logged quantity change."""

    IMPORT = "IMPORT"
    EXPORT = "EXPORT"
    ADJUSTMENT = "ADJUSTMENT"


class ReferenceType(str, Enum):
    """What caused a logged quantity change."""

    IMPORT_REQUEST = "IMPORT_REQUEST"
    EXPORT_REQUEST = "EXPORT_REQUEST"
    ADJUSTMENT = "ADJUSTMENT"
    TASK_EXPORT = "TASK_EXPORT"
    CONTRACT = "CONTRACT"
    TRANSFER = "TRANSFER"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class LedgerDefaults:
    """Thresholds given to a ledger row created by get-or-create."""

    minimum_stock_level: int | None
    maximum_stock_level: int | None
    reorder_point: int | None = None

    def __post_init__(self) -> None:
        for name in ("minimum_stock_level", "maximum_stock_level", "reorder_point"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if (
            self.minimum_stock_level is not None
            and self.maximum_stock_level is not None
            and self.maximum_stock_level > 0
            and self.minimum_stock_level > self.maximum_stock_level
        ):
            raise ValueError("minimum_stock_level must not exceed maximum_stock_level")


DEFAULT_LEDGER_DEFAULTS: dict[ResourceKind, LedgerDefaults] = {
    ResourceKind.DEVICE: LedgerDefaults(minimum_stock_level=5, maximum_stock_level=100),
    ResourceKind.SPARE_PART: LedgerDefaults(minimum_stock_level=10, maximum_stock_level=500),
}


@dataclass(frozen=True)
class LedgerSnapshot:
    """Current-quantity record for one resource.

    A zero or None threshold means "unset".
    """

    id: int
    resource_kind: ResourceKind
    resource_id: int
    quantity_in_stock: int
    minimum_stock_level: int | None
    maximum_stock_level: int | None
    reorder_point: int | None
    unit_cost: Decimal | None
    warehouse_location: str | None
    notes: str | None
    last_restocked_at: datetime | None
    last_updated_by: str
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if self.quantity_in_stock < 0:
            raise ValueError(
                f"quantity_in_stock must be >= 0, got {self.quantity_in_stock}"
            )

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity_in_stock == 0

    @property
    def is_low_stock(self) -> bool:
        return bool(self.minimum_stock_level) and (
            self.quantity_in_stock <= self.minimum_stock_level
        )

    @property
    def needs_reorder(self) -> bool:
        return self.reorder_point is not None and (
            self.quantity_in_stock <= self.reorder_point
        )

    @property
    def is_overstocked(self) -> bool:
        return bool(self.maximum_stock_level) and (
            self.quantity_in_stock >= self.maximum_stock_level
        )

    @property
    def stock_value(self) -> Decimal | None:
        if self.unit_cost is None:
            return None
        return self.unit_cost * self.quantity_in_stock


@dataclass(frozen=True)
class TransactionLogEntryRecord:
    """One immutable audit record of a quantity change."""

    id: int
    transaction_number: str
    transaction_type: TransactionType
    resource_kind: ResourceKind
    resource_id: int
    quantity_before: int
    quantity_after: int
    quantity_change: int
    reference_type: ReferenceType | None
    reference_id: int | None
    reason: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class TransactionLogFilter:
    """Query filters for the transaction log.  None means "any"."""

    resource_kind: ResourceKind | None = None
    resource_id: int | None = None
    transaction_type: TransactionType | None = None
    reference_type: ReferenceType | None = None
    reference_id: int | None = None
    created_by: str | None = None
    keyword: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


@dataclass(frozen=True)
class LedgerStatistics:
    """Aggregate view over ledger rows."""

    total_items: int
    total_quantity: int
    in_stock_items: int
    low_stock_count: int
    out_of_stock_count: int
    total_value: Decimal


@dataclass(frozen=True)
class TransactionStatistics:
    """Aggregates computed over the log, never stored as counters."""

    total_transactions: int
    import_count: int
    export_count: int
    adjustment_count: int
    total_imported: int
    total_exported: int


@dataclass(frozen=True)
class DailyTransactionSummary:
    """Per-type counts and quantities for one calendar day (UTC)."""

    day: date
    import_count: int
    export_count: int
    adjustment_count: int
    quantity_imported: int
    quantity_exported: int
    net_change: int
