"""
Module: stock_kernel.models.ledger
Responsibility: ORM model for per-resource stock ledger rows.
Architecture position: Kernel > Models.  Inherits TrackedBase.  Resource ids
    point into external catalogs (device, spare part) with NO foreign keys.

Invariants enforced:
    - At most one row per (resource_kind, resource_id) -- unique constraint.
      The get-or-create race in ResourceLedgerService relies on it.
    - quantity_in_stock >= 0 -- CHECK constraint, backing the service check.
    - Rows are never deleted (db/immutability.py).

Audit relevance:
    The quantity column is derived state: replaying the transaction log for
    the same resource reproduces it.  Only StockMutationEngine writes it.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.db.types import UTCDateTime
from stock_kernel.domain.dtos import LedgerSnapshot, ResourceKind


class ResourceLedgerModel(TrackedBase):
    """
    Current quantity and thresholds for one resource.

    Guarantees:
        - resource_kind is stored as its enum value (String(30)).
        - Threshold columns are nullable; zero and NULL both mean "unset".
    """

    __tablename__ = "resource_ledgers"

    __table_args__ = (
        UniqueConstraint("resource_kind", "resource_id", name="uq_ledger_resource"),
        CheckConstraint("quantity_in_stock >= 0", name="ck_ledger_quantity_non_negative"),
        Index("idx_ledger_quantity", "quantity_in_stock"),
    )

    resource_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity_in_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minimum_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    maximum_stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reorder_point: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    warehouse_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    last_restocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_updated_by: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ResourceLedger {self.resource_kind}:{self.resource_id} "
            f"qty={self.quantity_in_stock}>"
        )

    def to_dto(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            id=self.id,
            resource_kind=ResourceKind(self.resource_kind),
            resource_id=self.resource_id,
            quantity_in_stock=self.quantity_in_stock,
            minimum_stock_level=self.minimum_stock_level,
            maximum_stock_level=self.maximum_stock_level,
            reorder_point=self.reorder_point,
            unit_cost=self.unit_cost,
            warehouse_location=self.warehouse_location,
            notes=self.notes,
            last_restocked_at=self.last_restocked_at,
            last_updated_by=self.last_updated_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
