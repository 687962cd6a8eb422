"""
Module: stock_kernel.models.service_request
Responsibility: The slice of a customer service request that the task
    workflow touches -- its status and completion stamp.  Intake and
    triage of service requests happen elsewhere; tasks only complete them.
Architecture position: Kernel > Models.  Tasks reference service requests
    by id without a foreign key.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.db.types import UTCDateTime


class ServiceRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ServiceRequestModel(TrackedBase):
    """Customer service request, as seen by the task workflow."""

    __tablename__ = "service_requests"

    request_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    customer_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completion_comment: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    last_updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<ServiceRequest {self.request_number} {self.status}>"
