"""
Module: stock_kernel.selectors.task_selector
Responsibility: Read-only queries over tasks and their history.
Architecture position: Kernel > Selectors.  History is fetched explicitly
    here; there is no ORM relationship between tasks and history rows.
"""

from datetime import datetime

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.paging import Page, PageRequest
from stock_kernel.domain.tasks import (
    CLOSED_TASK_STATUSES,
    TaskFilter,
    TaskHistoryRecord,
    TaskPriority,
    TaskRecord,
    TaskStatistics,
    TaskStatus,
)
from stock_kernel.exceptions import TaskNotFoundError
from stock_kernel.models.task import TaskHistoryEntryModel, TaskModel
from stock_kernel.selectors.base import BaseSelector, like_pattern

_T = TaskModel
_H = TaskHistoryEntryModel

_CLOSED = [s.value for s in CLOSED_TASK_STATUSES]


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class TaskSelector(BaseSelector[TaskModel]):
    """Queries over ``tasks`` and ``task_history``."""

    sort_fields = {
        "id": _T.id,
        "task_number": _T.task_number,
        "created_at": _T.created_at,
        "scheduled_date": _T.scheduled_date,
        "priority": _T.priority,
        "status": _T.status,
    }

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def get(self, task_id: int) -> TaskRecord:
        row = self.session.get(_T, task_id)
        if row is None:
            raise TaskNotFoundError(task_id)
        return row.to_dto()

    def get_by_number(self, task_number: str) -> TaskRecord:
        row = self.session.execute(
            select(_T).where(_T.task_number == task_number)
        ).scalar_one_or_none()
        if row is None:
            raise TaskNotFoundError(task_number)
        return row.to_dto()

    def history(self, task_id: int) -> list[TaskHistoryRecord]:
        """History entries for a task, oldest first."""
        rows = self.session.execute(
            select(_H).where(_H.task_id == task_id).order_by(_H.id.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_by_technician(
        self,
        technician_id: int,
        status: TaskStatus | None = None,
        page: PageRequest | None = None,
    ) -> Page[TaskRecord]:
        page = page or PageRequest()
        stmt = select(_T).where(_T.assigned_technician_id == technician_id)
        if status is not None:
            stmt = stmt.where(_T.status == status.value)
        return self._paginate(stmt, page, _T.id, lambda row: row.to_dto())

    def search(
        self,
        filters: TaskFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[TaskRecord]:
        """Paged search; keyword matches number, title, description, location."""
        filters = filters or TaskFilter()
        page = page or PageRequest()
        stmt = select(_T)
        if filters.status is not None:
            stmt = stmt.where(_T.status == filters.status.value)
        if filters.priority is not None:
            stmt = stmt.where(_T.priority == filters.priority.value)
        if filters.task_type is not None:
            stmt = stmt.where(_T.task_type == filters.task_type.value)
        if filters.technician_id is not None:
            stmt = stmt.where(_T.assigned_technician_id == filters.technician_id)
        if filters.keyword and filters.keyword.strip():
            pattern = like_pattern(filters.keyword)
            stmt = stmt.where(
                or_(
                    func.lower(_T.task_number).like(pattern, escape="\\"),
                    func.lower(_T.title).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_T.description, "")).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_T.service_location, "")).like(pattern, escape="\\"),
                )
            )
        return self._paginate(stmt, page, _T.id, lambda row: row.to_dto())

    def work_schedule(
        self, technician_id: int, start: datetime, end: datetime
    ) -> list[TaskRecord]:
        """Tasks of a technician scheduled within [start, end], by date."""
        rows = self.session.execute(
            select(_T)
            .where(
                _T.assigned_technician_id == technician_id,
                _T.scheduled_date >= start,
                _T.scheduled_date <= end,
            )
            .order_by(_T.scheduled_date.asc(), _T.id.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def statistics(self) -> TaskStatistics:
        """
        Per-status counts plus completion and rejection rates in percent.

        ``rejected`` counts tasks currently in REJECTED.  ``ever_rejected``
        and the rejection rate count every task a technician has rejected,
        including tasks requeued to PENDING, which keep ``rejected_at``.
        """
        now = self._clock.now()
        row = self.session.execute(
            select(
                func.count(_T.id),
                _count_where(_T.status == TaskStatus.PENDING.value),
                _count_where(_T.status == TaskStatus.ASSIGNED.value),
                _count_where(_T.status == TaskStatus.ACCEPTED.value),
                _count_where(_T.status == TaskStatus.REJECTED.value),
                _count_where(_T.status == TaskStatus.IN_PROGRESS.value),
                _count_where(_T.status == TaskStatus.COMPLETED.value),
                _count_where(_T.priority == TaskPriority.HIGH.value),
                _count_where(_T.priority == TaskPriority.CRITICAL.value),
                _count_where(
                    _T.scheduled_date.is_not(None)
                    & (_T.scheduled_date < now)
                    & _T.status.not_in(_CLOSED)
                ),
                _count_where(_T.rejected_at.is_not(None)),
            )
        ).one()
        total = int(row[0])
        completed = int(row[6])
        ever_rejected = int(row[10])
        return TaskStatistics(
            total=total,
            pending=int(row[1]),
            assigned=int(row[2]),
            accepted=int(row[3]),
            rejected=int(row[4]),
            in_progress=int(row[5]),
            completed=completed,
            high_priority=int(row[7]),
            critical_priority=int(row[8]),
            overdue=int(row[9]),
            ever_rejected=ever_rejected,
            completion_rate=completed / total * 100 if total else 0.0,
            rejection_rate=ever_rejected / total * 100 if total else 0.0,
        )
