"""
Module: stock_kernel.selectors.transaction_log_selector
Responsibility: Read-only queries over the append-only transaction log,
    aggregate statistics, and replay of a resource's history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Statistics are aggregated from log rows at query time; there are no
      stored counters that could drift from the log.
    - Replay sums quantity_change in id order, which is insertion order.

Audit relevance:
    ``verify_consistency`` is the check that the current ledger quantity is
    exactly reproduced by replaying the resource's log from zero.
"""

from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import (
    DailyTransactionSummary,
    ResourceKind,
    TransactionLogEntryRecord,
    TransactionLogFilter,
    TransactionStatistics,
    TransactionType,
)
from stock_kernel.domain.paging import Page, PageRequest
from stock_kernel.exceptions import TransactionNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.ledger import ResourceLedgerModel
from stock_kernel.models.transaction_log import TransactionLogEntryModel
from stock_kernel.selectors.base import BaseSelector, like_pattern

logger = get_logger("selectors.transaction_log")

_T = TransactionLogEntryModel

_IMPORT = TransactionType.IMPORT.value
_EXPORT = TransactionType.EXPORT.value
_ADJUSTMENT = TransactionType.ADJUSTMENT.value


def _count_of(transaction_type: str):
    return func.coalesce(
        func.sum(case((_T.transaction_type == transaction_type, 1), else_=0)), 0
    )


def _quantity_of(transaction_type: str):
    return func.coalesce(
        func.sum(
            case(
                (_T.transaction_type == transaction_type, func.abs(_T.quantity_change)),
                else_=0,
            )
        ),
        0,
    )


class TransactionLogSelector(BaseSelector[TransactionLogEntryModel]):
    """Queries over ``stock_transactions``."""

    sort_fields = {
        "id": _T.id,
        "created_at": _T.created_at,
        "transaction_number": _T.transaction_number,
        "quantity_change": _T.quantity_change,
        "resource_id": _T.resource_id,
    }

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, entry_id: int) -> TransactionLogEntryRecord:
        row = self.session.get(_T, entry_id)
        if row is None:
            raise TransactionNotFoundError(entry_id)
        return row.to_dto()

    def get_by_number(self, transaction_number: str) -> TransactionLogEntryRecord:
        row = self.session.execute(
            select(_T).where(_T.transaction_number == transaction_number)
        ).scalar_one_or_none()
        if row is None:
            raise TransactionNotFoundError(transaction_number)
        return row.to_dto()

    def query(
        self,
        filters: TransactionLogFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[TransactionLogEntryRecord]:
        """Paged, filtered log query.  All filters are ANDed."""
        filters = filters or TransactionLogFilter()
        page = page or PageRequest()
        stmt = select(_T)
        if filters.resource_kind is not None:
            stmt = stmt.where(_T.resource_kind == filters.resource_kind.value)
        if filters.resource_id is not None:
            stmt = stmt.where(_T.resource_id == filters.resource_id)
        if filters.transaction_type is not None:
            stmt = stmt.where(_T.transaction_type == filters.transaction_type.value)
        if filters.reference_type is not None:
            stmt = stmt.where(_T.reference_type == filters.reference_type.value)
        if filters.reference_id is not None:
            stmt = stmt.where(_T.reference_id == filters.reference_id)
        if filters.created_by:
            stmt = stmt.where(_T.created_by == filters.created_by)
        if filters.created_from is not None:
            stmt = stmt.where(_T.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(_T.created_at <= filters.created_to)
        if filters.keyword and filters.keyword.strip():
            pattern = like_pattern(filters.keyword)
            stmt = stmt.where(
                or_(
                    func.lower(_T.transaction_number).like(pattern, escape="\\"),
                    func.lower(_T.reason).like(pattern, escape="\\"),
                )
            )
        return self._paginate(stmt, page, _T.id, lambda row: row.to_dto())

    def for_resource(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> list[TransactionLogEntryRecord]:
        """Full history of one resource in insertion order."""
        rows = self.session.execute(
            select(_T)
            .where(_T.resource_kind == resource_kind.value, _T.resource_id == resource_id)
            .order_by(_T.id.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def recent(self, limit: int = 10) -> list[TransactionLogEntryRecord]:
        rows = self.session.execute(
            select(_T).order_by(_T.created_at.desc(), _T.id.desc()).limit(limit)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def statistics(
        self,
        resource_kind: ResourceKind | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> TransactionStatistics:
        stmt = select(
            func.count(_T.id),
            _count_of(_IMPORT),
            _count_of(_EXPORT),
            _count_of(_ADJUSTMENT),
            _quantity_of(_IMPORT),
            _quantity_of(_EXPORT),
        )
        if resource_kind is not None:
            stmt = stmt.where(_T.resource_kind == resource_kind.value)
        if created_from is not None:
            stmt = stmt.where(_T.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(_T.created_at <= created_to)
        total, imports, exports, adjustments, imported, exported = (
            self.session.execute(stmt).one()
        )
        return TransactionStatistics(
            total_transactions=int(total),
            import_count=int(imports),
            export_count=int(exports),
            adjustment_count=int(adjustments),
            total_imported=int(imported),
            total_exported=int(exported),
        )

    def daily_summary(
        self, day: date, resource_kind: ResourceKind | None = None
    ) -> DailyTransactionSummary:
        """Counts and quantities for one UTC calendar day."""
        start = datetime.combine(day, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)
        stmt = select(
            _count_of(_IMPORT),
            _count_of(_EXPORT),
            _count_of(_ADJUSTMENT),
            _quantity_of(_IMPORT),
            _quantity_of(_EXPORT),
            func.coalesce(func.sum(_T.quantity_change), 0),
        ).where(_T.created_at >= start, _T.created_at < end)
        if resource_kind is not None:
            stmt = stmt.where(_T.resource_kind == resource_kind.value)
        imports, exports, adjustments, imported, exported, net = (
            self.session.execute(stmt).one()
        )
        return DailyTransactionSummary(
            day=day,
            import_count=int(imports),
            export_count=int(exports),
            adjustment_count=int(adjustments),
            quantity_imported=int(imported),
            quantity_exported=int(exported),
            net_change=int(net),
        )

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay_quantity(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> int:
        """Quantity obtained by summing every change from zero, in id order."""
        changes = self.session.execute(
            select(_T.quantity_change)
            .where(_T.resource_kind == resource_kind.value, _T.resource_id == resource_id)
            .order_by(_T.id.asc())
        ).scalars().all()
        quantity = 0
        for change in changes:
            quantity += change
        return quantity

    def verify_consistency(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> bool:
        """True when the ledger quantity equals the replayed log."""
        ledger_quantity = self.session.execute(
            select(ResourceLedgerModel.quantity_in_stock).where(
                ResourceLedgerModel.resource_kind == resource_kind.value,
                ResourceLedgerModel.resource_id == resource_id,
            )
        ).scalar_one_or_none()
        replayed = self.replay_quantity(resource_id, resource_kind)
        consistent = (ledger_quantity or 0) == replayed
        if not consistent:
            logger.error(
                "ledger_log_mismatch",
                extra={
                    "resource_kind": resource_kind.value,
                    "resource_id": resource_id,
                    "ledger_quantity": ledger_quantity,
                    "replayed_quantity": replayed,
                },
            )
        return consistent
