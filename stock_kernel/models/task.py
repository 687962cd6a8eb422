"""
Module: stock_kernel.models.task
Responsibility: ORM models for technician tasks and their append-only
    history.
Architecture position: Kernel > Models.  History rows reference tasks by
    foreign key; there is deliberately no ORM relationship -- history is
    fetched through TaskSelector.history().

Invariants enforced:
    - task_number is unique.
    - status is one of TaskStatus (CHECK constraint).
    - TaskHistoryEntryModel rows are never updated or deleted, and a task
      whose persisted status is terminal is frozen (db/immutability.py).
"""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, Identifier, TrackedBase
from stock_kernel.db.types import UTCDateTime
from stock_kernel.domain.tasks import (
    CLOSED_TASK_STATUSES,
    TaskHistoryRecord,
    TaskPriority,
    TaskRecord,
    TaskRole,
    TaskStatus,
    TaskType,
)

_TASK_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in TaskStatus)


class TaskModel(TrackedBase):
    """A unit of assigned technician work."""

    __tablename__ = "tasks"

    __table_args__ = (
        CheckConstraint(f"status IN ({_TASK_STATUS_VALUES})", name="ck_task_status"),
        Index("idx_task_status", "status"),
        Index("idx_task_technician", "assigned_technician_id", "status"),
        Index("idx_task_scheduled", "scheduled_date"),
        Index("idx_task_service_request", "service_request_id"),
    )

    task_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)

    customer_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    customer_device_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    service_request_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    assigned_technician_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    assigned_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    scheduled_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    estimated_duration_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    service_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    customer_contact_info: Mapped[str | None] = mapped_column(String(500), nullable=True)

    support_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    techlead_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    technician_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Task {self.task_number} {self.status}>"

    @property
    def is_closed(self) -> bool:
        return TaskStatus(self.status) in CLOSED_TASK_STATUSES

    def to_dto(self) -> TaskRecord:
        return TaskRecord(
            id=self.id,
            task_number=self.task_number,
            title=self.title,
            description=self.description,
            task_type=TaskType(self.task_type),
            priority=TaskPriority(self.priority),
            status=TaskStatus(self.status),
            customer_id=self.customer_id,
            customer_device_id=self.customer_device_id,
            service_request_id=self.service_request_id,
            assigned_technician_id=self.assigned_technician_id,
            assigned_by=self.assigned_by,
            assigned_at=self.assigned_at,
            scheduled_date=self.scheduled_date,
            estimated_duration_hours=self.estimated_duration_hours,
            service_location=self.service_location,
            customer_contact_info=self.customer_contact_info,
            support_notes=self.support_notes,
            techlead_notes=self.techlead_notes,
            technician_notes=self.technician_notes,
            completion_notes=self.completion_notes,
            rejection_reason=self.rejection_reason,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            completed_at=self.completed_at,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TaskHistoryEntryModel(Base):
    """One immutable audit record of a task transition."""

    __tablename__ = "task_history"

    __table_args__ = (
        Index("idx_task_history_task", "task_id"),
    )

    task_id: Mapped[int] = mapped_column(
        Identifier,
        ForeignKey("tasks.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    comment: Mapped[str] = mapped_column(String(4000), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(100), nullable=False)
    user_role: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<TaskHistoryEntry task={self.task_id} {self.status}>"

    def to_dto(self) -> TaskHistoryRecord:
        return TaskHistoryRecord(
            id=self.id,
            task_id=self.task_id,
            status=TaskStatus(self.status),
            comment=self.comment,
            updated_by=self.updated_by,
            user_role=TaskRole(self.user_role),
            created_at=self.created_at,
        )
