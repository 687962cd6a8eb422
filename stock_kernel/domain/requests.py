"""
Import / export request workflows.

Responsibility:
    Status vocabulary, the two fixed state machines, and the DTOs for
    human-approved stock requests.  Import and export share one shape; the
    ``RequestKind`` selects which machine governs a request.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.

Invariants enforced:
    - PENDING -> {APPROVED, REJECTED}; APPROVED -> {COMPLETED|ISSUED,
      CANCELLED}; PENDING -> CANCELLED.
    - REJECTED, COMPLETED, ISSUED and CANCELLED have no outgoing edges.
    - Import approval adds stock; import completion does not.  Export
      issue removes stock; export approval does not.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from stock_kernel.domain.dtos import ResourceKind
from stock_kernel.domain.workflow import Guard, Transition, Workflow


class RequestKind(str, Enum):
    IMPORT = "IMPORT"
    EXPORT = "EXPORT"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    ISSUED = "ISSUED"
    CANCELLED = "CANCELLED"

    @property
    def is_active(self) -> bool:
        return self in (RequestStatus.PENDING, RequestStatus.APPROVED)

    @property
    def is_final(self) -> bool:
        return not self.is_active


class RequestAction:
    """Action names used in the transition tables and in log output."""

    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"
    ISSUE = "issue"
    CANCEL = "cancel"


STOCK_AVAILABLE_GUARD = Guard(
    name="stock_available",
    description="Requested quantity is on hand at the time of the action",
)

_P = RequestStatus.PENDING.value
_A = RequestStatus.APPROVED.value
_R = RequestStatus.REJECTED.value
_C = RequestStatus.COMPLETED.value
_I = RequestStatus.ISSUED.value
_X = RequestStatus.CANCELLED.value


IMPORT_REQUEST_WORKFLOW = Workflow(
    name="import_request",
    description="Inbound stock: quantity is added when the request is approved",
    initial_state=_P,
    states=(_P, _A, _R, _C, _X),
    transitions=(
        Transition(_P, _A, RequestAction.APPROVE, mutates_stock=True),
        Transition(_P, _R, RequestAction.REJECT),
        Transition(_P, _X, RequestAction.CANCEL),
        Transition(_A, _C, RequestAction.COMPLETE),
        Transition(_A, _X, RequestAction.CANCEL),
    ),
    terminal_states=(_R, _C, _X),
)

EXPORT_REQUEST_WORKFLOW = Workflow(
    name="export_request",
    description="Outbound stock: quantity is removed when the request is issued",
    initial_state=_P,
    states=(_P, _A, _R, _I, _X),
    transitions=(
        Transition(_P, _A, RequestAction.APPROVE, guard=STOCK_AVAILABLE_GUARD),
        Transition(_P, _R, RequestAction.REJECT),
        Transition(_P, _X, RequestAction.CANCEL),
        Transition(
            _A, _I, RequestAction.ISSUE,
            guard=STOCK_AVAILABLE_GUARD,
            mutates_stock=True,
        ),
        Transition(_A, _X, RequestAction.CANCEL),
    ),
    terminal_states=(_R, _I, _X),
)


def workflow_for(kind: RequestKind) -> Workflow:
    if kind == RequestKind.IMPORT:
        return IMPORT_REQUEST_WORKFLOW
    return EXPORT_REQUEST_WORKFLOW


@dataclass(frozen=True)
class WorkflowRequestRecord:
    """Flat view of an import or export request."""

    id: int
    request_number: str
    kind: RequestKind
    resource_kind: ResourceKind
    resource_id: int
    requested_quantity: int
    unit_price: Decimal | None
    total_amount: Decimal | None
    status: RequestStatus
    request_reason: str | None
    requested_by: str
    requested_at: datetime
    reviewed_by: str | None
    reviewed_at: datetime | None
    review_reason: str | None
    supplier_id: int | None
    task_id: int | None
    expected_delivery_date: date | None
    actual_delivery_date: date | None
    invoice_number: str | None
    issued_quantity: int | None
    issued_by: str | None
    issued_at: datetime | None
    cancelled_by: str | None
    notes: str | None
    updated_at: datetime


@dataclass(frozen=True)
class RequestFilter:
    kind: RequestKind | None = None
    status: RequestStatus | None = None
    resource_kind: ResourceKind | None = None
    resource_id: int | None = None
    requested_by: str | None = None
    supplier_id: int | None = None
    task_id: int | None = None
    keyword: str | None = None


@dataclass(frozen=True)
class RequestStatistics:
    total: int
    pending: int
    approved: int
    rejected: int
    completed: int
    issued: int
    cancelled: int
    total_value: Decimal
    total_issued_quantity: int


@dataclass(frozen=True)
class RequestPolicy:
    """Limits applied when requests are created and reviewed."""

    max_reason_length: int = 1000
    max_total_amount: Decimal = Decimal("9999999999999.99")
