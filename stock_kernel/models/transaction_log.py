"""
Module: stock_kernel.models.transaction_log
Responsibility: ORM model for the append-only stock transaction log.
Architecture position: Kernel > Models.  Inherits Base (no updated_at: rows
    never change).

Invariants enforced:
    - quantity_change = quantity_after - quantity_before (CHECK constraint).
    - quantity_before >= 0 and quantity_after >= 0 (CHECK constraint).
    - transaction_number is unique.
    - Rows can never be updated or deleted (db/immutability.py).

Audit relevance:
    For every resource, summing quantity_change over its rows in id order
    reproduces the ledger quantity.  The log is the evidence; the ledger
    row is a cache of its sum.
"""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import UTCDateTime
from stock_kernel.domain.dtos import (
    ReferenceType,
    ResourceKind,
    TransactionLogEntryRecord,
    TransactionType,
)


class TransactionLogEntryModel(Base):
    """One immutable audit record of a quantity change."""

    __tablename__ = "stock_transactions"

    __table_args__ = (
        CheckConstraint(
            "quantity_change = quantity_after - quantity_before",
            name="ck_txn_change_matches",
        ),
        CheckConstraint(
            "quantity_before >= 0 AND quantity_after >= 0",
            name="ck_txn_quantities_non_negative",
        ),
        Index("idx_txn_resource", "resource_kind", "resource_id"),
        Index("idx_txn_type", "transaction_type"),
        Index("idx_txn_reference", "reference_type", "reference_id"),
        Index("idx_txn_created_at", "created_at"),
    )

    transaction_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<TransactionLogEntry {self.transaction_number} "
            f"{self.transaction_type} {self.quantity_change:+d}>"
        )

    def to_dto(self) -> TransactionLogEntryRecord:
        return TransactionLogEntryRecord(
            id=self.id,
            transaction_number=self.transaction_number,
            transaction_type=TransactionType(self.transaction_type),
            resource_kind=ResourceKind(self.resource_kind),
            resource_id=self.resource_id,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
            quantity_change=self.quantity_change,
            reference_type=(
                ReferenceType(self.reference_type) if self.reference_type else None
            ),
            reference_id=self.reference_id,
            reason=self.reason,
            created_by=self.created_by,
            created_at=self.created_at,
        )
