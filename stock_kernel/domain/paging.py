"""Pagination values shared by every list and search query."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from stock_kernel.exceptions import StockValidationError

T = TypeVar("T")

MAX_PAGE_SIZE = 200


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page number, page size, sort field and direction.

    The sort field is a public field name of the returned DTO; each selector
    maps it onto a column and rejects names it does not know.
    """

    page: int = 0
    size: int = 20
    sort_by: str = "id"
    direction: SortDirection = SortDirection.DESC

    def __post_init__(self) -> None:
        if self.page < 0:
            raise StockValidationError("page", f"must be >= 0, got {self.page}")
        if not 1 <= self.size <= MAX_PAGE_SIZE:
            raise StockValidationError(
                "size", f"must be between 1 and {MAX_PAGE_SIZE}, got {self.size}"
            )

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus total-count metadata."""

    items: tuple[T, ...]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages
