"""
Result values for expected business-rule rejections.

Responsibility:
    Insufficient stock, illegal transitions, and technician mismatches are
    normal outcomes of a stock or workflow call, not faults.  They come back
    as values so that the caller, not the call stack, decides what to do.

Architecture position:
    Kernel > Domain -- pure values.  The carried error objects are the typed
    exceptions from ``stock_kernel.exceptions``; they are constructed but
    not raised unless the caller asks via ``unwrap()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from stock_kernel.domain.dtos import LedgerSnapshot
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotAuthorizedForTaskError,
    StockError,
    WorkflowError,
)

T = TypeVar("T")


@dataclass(frozen=True)
class StockRemovalResult:
    """Outcome of removeStock.  On failure the ledger is unchanged and no
    log entry was written."""

    success: bool
    ledger: LedgerSnapshot
    requested_quantity: int

    @property
    def shortfall(self) -> int:
        if self.success:
            return 0
        return self.requested_quantity - self.ledger.quantity_in_stock

    def __bool__(self) -> bool:
        return self.success


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_AUTHORIZED = "not_authorized"


_STATUS_FOR_ERROR: dict[type, OutcomeStatus] = {
    InvalidStateTransitionError: OutcomeStatus.INVALID_STATE_TRANSITION,
    InsufficientStockError: OutcomeStatus.INSUFFICIENT_STOCK,
    NotAuthorizedForTaskError: OutcomeStatus.NOT_AUTHORIZED,
}


@dataclass(frozen=True)
class WorkflowOutcome(Generic[T]):
    """Result of a request or task workflow call.

    ``value`` is the entity after the call on success, and its unchanged
    current state on rejection.
    """

    status: OutcomeStatus
    value: T
    error: WorkflowError | StockError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, value: T) -> WorkflowOutcome[T]:
        return cls(status=OutcomeStatus.SUCCESS, value=value)

    @classmethod
    def rejected(
        cls,
        value: T,
        error: InvalidStateTransitionError | InsufficientStockError | NotAuthorizedForTaskError,
    ) -> WorkflowOutcome[T]:
        return cls(status=_STATUS_FOR_ERROR[type(error)], value=value, error=error)

    def unwrap(self) -> T:
        """Return the value, raising the carried error if there is one."""
        if self.error is not None:
            raise self.error
        return self.value
