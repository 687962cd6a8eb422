"""
Module: stock_kernel.selectors.request_selector
Responsibility: Read-only queries over import and export requests.
Architecture position: Kernel > Selectors.
"""

from decimal import Decimal

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.paging import Page, PageRequest
from stock_kernel.domain.requests import (
    RequestFilter,
    RequestKind,
    RequestStatistics,
    RequestStatus,
    WorkflowRequestRecord,
)
from stock_kernel.exceptions import RequestNotFoundError
from stock_kernel.models.workflow_request import WorkflowRequestModel
from stock_kernel.selectors.base import BaseSelector, like_pattern

_R = WorkflowRequestModel


def _count_status(status: RequestStatus):
    return func.coalesce(func.sum(case((_R.status == status.value, 1), else_=0)), 0)


class RequestSelector(BaseSelector[WorkflowRequestModel]):
    """Queries over ``workflow_requests``."""

    sort_fields = {
        "id": _R.id,
        "request_number": _R.request_number,
        "requested_at": _R.requested_at,
        "reviewed_at": _R.reviewed_at,
        "status": _R.status,
        "requested_quantity": _R.requested_quantity,
        "total_amount": _R.total_amount,
    }

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, request_id: int) -> WorkflowRequestRecord:
        row = self.session.get(_R, request_id)
        if row is None:
            raise RequestNotFoundError(request_id)
        return row.to_dto()

    def get_by_number(self, request_number: str) -> WorkflowRequestRecord:
        row = self.session.execute(
            select(_R).where(_R.request_number == request_number)
        ).scalar_one_or_none()
        if row is None:
            raise RequestNotFoundError(request_number)
        return row.to_dto()

    def search(
        self,
        filters: RequestFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[WorkflowRequestRecord]:
        """Paged search; keyword matches number, reasons, requester, notes."""
        filters = filters or RequestFilter()
        page = page or PageRequest()
        stmt = select(_R)
        if filters.kind is not None:
            stmt = stmt.where(_R.kind == filters.kind.value)
        if filters.status is not None:
            stmt = stmt.where(_R.status == filters.status.value)
        if filters.resource_kind is not None:
            stmt = stmt.where(_R.resource_kind == filters.resource_kind.value)
        if filters.resource_id is not None:
            stmt = stmt.where(_R.resource_id == filters.resource_id)
        if filters.requested_by:
            stmt = stmt.where(
                func.lower(_R.requested_by).like(like_pattern(filters.requested_by), escape="\\")
            )
        if filters.supplier_id is not None:
            stmt = stmt.where(_R.supplier_id == filters.supplier_id)
        if filters.task_id is not None:
            stmt = stmt.where(_R.task_id == filters.task_id)
        if filters.keyword and filters.keyword.strip():
            pattern = like_pattern(filters.keyword)
            stmt = stmt.where(
                or_(
                    func.lower(_R.request_number).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_R.request_reason, "")).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_R.review_reason, "")).like(pattern, escape="\\"),
                    func.lower(_R.requested_by).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_R.notes, "")).like(pattern, escape="\\"),
                )
            )
        return self._paginate(stmt, page, _R.id, lambda row: row.to_dto())

    def pending_for_review(self, kind: RequestKind | None = None) -> list[WorkflowRequestRecord]:
        """PENDING requests, oldest first."""
        stmt = select(_R).where(_R.status == RequestStatus.PENDING.value)
        if kind is not None:
            stmt = stmt.where(_R.kind == kind.value)
        rows = self.session.execute(
            stmt.order_by(_R.requested_at.asc(), _R.id.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def statistics(self, kind: RequestKind | None = None) -> RequestStatistics:
        stmt = select(
            func.count(_R.id),
            _count_status(RequestStatus.PENDING),
            _count_status(RequestStatus.APPROVED),
            _count_status(RequestStatus.REJECTED),
            _count_status(RequestStatus.COMPLETED),
            _count_status(RequestStatus.ISSUED),
            _count_status(RequestStatus.CANCELLED),
            func.coalesce(func.sum(_R.total_amount), 0),
            func.coalesce(func.sum(_R.issued_quantity), 0),
        )
        if kind is not None:
            stmt = stmt.where(_R.kind == kind.value)
        row = self.session.execute(stmt).one()
        return RequestStatistics(
            total=int(row[0]),
            pending=int(row[1]),
            approved=int(row[2]),
            rejected=int(row[3]),
            completed=int(row[4]),
            issued=int(row[5]),
            cancelled=int(row[6]),
            total_value=Decimal(str(row[7])).quantize(Decimal("0.01")),
            total_issued_quantity=int(row[8]),
        )
