"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors form the query side of the kernel: structured read access to
    ledgers, the transaction log, requests, and tasks without mutation
    capability.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ value types.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller but MUST
      NOT call session.add(), session.delete(), session.commit(), or
      session.flush().
    - DTO return convention: selectors return frozen dataclasses, never raw
      ORM model instances.
    - Sorting is restricted to a per-selector whitelist of public field
      names; unknown names are a StockValidationError, never passed to SQL.

Failure modes:
    - *NotFoundError from ``get``-style lookups when the id does not exist.
"""

from abc import ABC
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.paging import Page, PageRequest, SortDirection
from stock_kernel.exceptions import StockValidationError

ModelType = TypeVar("ModelType", bound=Base)
T = TypeVar("T")


def like_pattern(keyword: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped."""
    escaped = keyword.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.

    Guarantees:
        - No commit, flush, add, or delete operations are performed.
        - Paged queries return a total count computed over the same filters.
    """

    #: Public sort field name -> model attribute.  Subclasses override.
    sort_fields: Mapping[str, Any] = {}

    def __init__(self, session: Session):
        self.session = session

    def _order_by(self, page: PageRequest, id_column: Any) -> list[Any]:
        column = self.sort_fields.get(page.sort_by)
        if column is None:
            raise StockValidationError(
                "sort_by",
                f"unknown sort field '{page.sort_by}'; "
                f"expected one of {sorted(self.sort_fields)}",
            )
        primary = column.asc() if page.direction == SortDirection.ASC else column.desc()
        if column is id_column:
            return [primary]
        # Tie-break on id so pages are stable.
        tie = id_column.asc() if page.direction == SortDirection.ASC else id_column.desc()
        return [primary, tie]

    def _paginate(
        self,
        stmt: Select,
        page: PageRequest,
        id_column: Any,
        to_dto: Callable[[ModelType], T],
    ) -> Page[T]:
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.order_by(*self._order_by(page, id_column))
            .offset(page.offset)
            .limit(page.size)
        ).scalars().all()
        return Page(
            items=tuple(to_dto(row) for row in rows),
            total=total,
            page=page.page,
            size=page.size,
        )
