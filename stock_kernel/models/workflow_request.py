"""
Module: stock_kernel.models.workflow_request
Responsibility: ORM model for import and export requests.  Both kinds share
    one table; ``kind`` selects the governing state machine.
Architecture position: Kernel > Models.  Inherits TrackedBase.

Invariants enforced:
    - request_number is unique and never changes after insert.
    - status is one of RequestStatus (CHECK constraint).
    - Once the persisted status is terminal, the row is frozen
      (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.db.types import UTCDateTime
from stock_kernel.domain.dtos import ResourceKind
from stock_kernel.domain.requests import (
    RequestKind,
    RequestStatus,
    WorkflowRequestRecord,
    workflow_for,
)


class WorkflowRequestModel(TrackedBase):
    """A human-approved stock movement awaiting or past review."""

    __tablename__ = "workflow_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'COMPLETED', 'ISSUED', 'CANCELLED')",
            name="ck_request_status",
        ),
        CheckConstraint("kind IN ('IMPORT', 'EXPORT')", name="ck_request_kind"),
        CheckConstraint("requested_quantity > 0", name="ck_request_quantity_positive"),
        Index("idx_request_kind_status", "kind", "status"),
        Index("idx_request_resource", "resource_kind", "resource_id"),
        Index("idx_request_requested_by", "requested_by"),
    )

    request_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    requested_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=RequestStatus.PENDING.value
    )
    request_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    review_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Import-only
    supplier_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Export-only
    task_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    issued_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issued_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    cancelled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowRequest {self.request_number} {self.kind} {self.status}>"

    @property
    def is_terminal(self) -> bool:
        return workflow_for(RequestKind(self.kind)).is_terminal(self.status)

    def to_dto(self) -> WorkflowRequestRecord:
        return WorkflowRequestRecord(
            id=self.id,
            request_number=self.request_number,
            kind=RequestKind(self.kind),
            resource_kind=ResourceKind(self.resource_kind),
            resource_id=self.resource_id,
            requested_quantity=self.requested_quantity,
            unit_price=self.unit_price,
            total_amount=self.total_amount,
            status=RequestStatus(self.status),
            request_reason=self.request_reason,
            requested_by=self.requested_by,
            requested_at=self.requested_at,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            review_reason=self.review_reason,
            supplier_id=self.supplier_id,
            task_id=self.task_id,
            expected_delivery_date=self.expected_delivery_date,
            actual_delivery_date=self.actual_delivery_date,
            invoice_number=self.invoice_number,
            issued_quantity=self.issued_quantity,
            issued_by=self.issued_by,
            issued_at=self.issued_at,
            cancelled_by=self.cancelled_by,
            notes=self.notes,
            updated_at=self.updated_at,
        )
