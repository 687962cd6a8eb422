"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Read-only queries over resource ledgers -- lookups, stock
    level listings, keyword search, and aggregate statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Stock-level predicates are evaluated in SQL with the same meaning as
      the LedgerSnapshot properties: a zero or NULL threshold is "unset" and
      never makes a row low-stock or overstocked.
"""

from decimal import Decimal

from sqlalchemy import String, and_, case, cast, func, not_, or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import LedgerSnapshot, LedgerStatistics, ResourceKind
from stock_kernel.domain.paging import Page, PageRequest
from stock_kernel.exceptions import LedgerNotFoundError
from stock_kernel.models.ledger import ResourceLedgerModel
from stock_kernel.selectors.base import BaseSelector, like_pattern

_L = ResourceLedgerModel

_LOW_STOCK = and_(
    _L.minimum_stock_level.is_not(None),
    _L.minimum_stock_level > 0,
    _L.quantity_in_stock <= _L.minimum_stock_level,
)
_OVERSTOCKED = and_(
    _L.maximum_stock_level.is_not(None),
    _L.maximum_stock_level > 0,
    _L.quantity_in_stock >= _L.maximum_stock_level,
)
_NEEDS_REORDER = and_(
    _L.reorder_point.is_not(None),
    _L.quantity_in_stock <= _L.reorder_point,
)


class LedgerSelector(BaseSelector[ResourceLedgerModel]):
    """Queries over ``resource_ledgers``."""

    sort_fields = {
        "id": _L.id,
        "resource_id": _L.resource_id,
        "quantity_in_stock": _L.quantity_in_stock,
        "minimum_stock_level": _L.minimum_stock_level,
        "updated_at": _L.updated_at,
        "last_restocked_at": _L.last_restocked_at,
    }

    def __init__(self, session: Session):
        super().__init__(session)

    def find(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> LedgerSnapshot | None:
        row = self.session.execute(
            select(_L).where(
                _L.resource_kind == resource_kind.value,
                _L.resource_id == resource_id,
            )
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def get(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> LedgerSnapshot:
        """Ledger for a resource; raises LedgerNotFoundError if never created."""
        snapshot = self.find(resource_id, resource_kind)
        if snapshot is None:
            raise LedgerNotFoundError(f"{resource_kind.value}:{resource_id}")
        return snapshot

    def get_by_id(self, ledger_id: int) -> LedgerSnapshot:
        row = self.session.get(_L, ledger_id)
        if row is None:
            raise LedgerNotFoundError(ledger_id)
        return row.to_dto()

    # ------------------------------------------------------------------
    # Stock level listings
    # ------------------------------------------------------------------

    def _list(self, condition, resource_kind: ResourceKind | None) -> list[LedgerSnapshot]:
        stmt = select(_L).where(condition)
        if resource_kind is not None:
            stmt = stmt.where(_L.resource_kind == resource_kind.value)
        rows = self.session.execute(
            stmt.order_by(_L.quantity_in_stock.asc(), _L.id.asc())
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def low_stock_items(self, resource_kind: ResourceKind | None = None) -> list[LedgerSnapshot]:
        return self._list(_LOW_STOCK, resource_kind)

    def out_of_stock_items(self, resource_kind: ResourceKind | None = None) -> list[LedgerSnapshot]:
        return self._list(_L.quantity_in_stock == 0, resource_kind)

    def overstocked_items(self, resource_kind: ResourceKind | None = None) -> list[LedgerSnapshot]:
        return self._list(_OVERSTOCKED, resource_kind)

    def reorder_needed(self, resource_kind: ResourceKind | None = None) -> list[LedgerSnapshot]:
        return self._list(_NEEDS_REORDER, resource_kind)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        keyword: str | None = None,
        low_stock: bool | None = None,
        out_of_stock: bool | None = None,
        resource_kind: ResourceKind | None = None,
        page: PageRequest | None = None,
    ) -> Page[LedgerSnapshot]:
        """
        Paged ledger search.

        ``low_stock=True`` keeps rows at or below their minimum;
        ``low_stock=False`` keeps rows strictly above it.
        ``out_of_stock=True`` keeps rows at zero; ``False`` keeps rows with
        stock.  The keyword matches warehouse location, notes, last updater,
        or the resource id.
        """
        page = page or PageRequest()
        stmt = select(_L)
        if resource_kind is not None:
            stmt = stmt.where(_L.resource_kind == resource_kind.value)
        if keyword and keyword.strip():
            pattern = like_pattern(keyword)
            stmt = stmt.where(
                or_(
                    func.lower(func.coalesce(_L.warehouse_location, "")).like(pattern, escape="\\"),
                    func.lower(func.coalesce(_L.notes, "")).like(pattern, escape="\\"),
                    func.lower(_L.last_updated_by).like(pattern, escape="\\"),
                    cast(_L.resource_id, String).like(pattern, escape="\\"),
                )
            )
        if low_stock is True:
            stmt = stmt.where(_LOW_STOCK)
        elif low_stock is False:
            stmt = stmt.where(not_(_LOW_STOCK))
        if out_of_stock is True:
            stmt = stmt.where(_L.quantity_in_stock == 0)
        elif out_of_stock is False:
            stmt = stmt.where(_L.quantity_in_stock > 0)
        return self._paginate(stmt, page, _L.id, lambda row: row.to_dto())

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def statistics(self, resource_kind: ResourceKind | None = None) -> LedgerStatistics:
        """Counts and value totals aggregated in SQL."""
        stmt = select(
            func.count(_L.id),
            func.coalesce(func.sum(_L.quantity_in_stock), 0),
            func.coalesce(func.sum(case((_L.quantity_in_stock > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(case((_LOW_STOCK, 1), else_=0)), 0),
            func.coalesce(func.sum(case((_L.quantity_in_stock == 0, 1), else_=0)), 0),
            func.coalesce(
                func.sum(_L.quantity_in_stock * func.coalesce(_L.unit_cost, 0)), 0
            ),
        )
        if resource_kind is not None:
            stmt = stmt.where(_L.resource_kind == resource_kind.value)
        total, quantity, in_stock, low, out, value = self.session.execute(stmt).one()
        return LedgerStatistics(
            total_items=int(total),
            total_quantity=int(quantity),
            in_stock_items=int(in_stock),
            low_stock_count=int(low),
            out_of_stock_count=int(out),
            total_value=Decimal(str(value)).quantize(Decimal("0.01")),
        )
