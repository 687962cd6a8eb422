"""
stock_kernel.services.request_workflow_service -- Import / export request lifecycle.

Responsibility:
    Creates requests and drives them through their fixed state machines
    (``IMPORT_REQUEST_WORKFLOW`` / ``EXPORT_REQUEST_WORKFLOW``), applying the
    stock side effect of a transition in the same unit of work as the status
    change.

Architecture position:
    Kernel > Services.  Depends on StockMutationEngine and SequenceService.
    Reads go through RequestSelector.

Invariants enforced:
    - Every status change is looked up in the workflow table; anything the
      table does not list is an INVALID_STATE_TRANSITION outcome, and the
      request and ledger are left untouched.
    - Import approval adds the requested quantity immediately.  Import
      completion records delivery data only and never adds stock again.
    - Export issue re-checks availability at issue time, independently of
      the check made at approval.  A failed re-check leaves the request
      APPROVED and the ledger unchanged.
    - The request row is locked while a transition is evaluated, so two
      reviewers cannot both move the same request out of PENDING.

Failure modes:
    - RequestNotFoundError for an unknown id (raised).
    - StockValidationError for malformed quantities, prices, reasons (raised).
    - InvalidStateTransitionError / InsufficientStockError are returned
      inside a WorkflowOutcome, not raised.

Audit relevance:
    Stock side effects carry reference_type IMPORT_REQUEST / EXPORT_REQUEST
    and the request id, so every quantity change traces back to its request.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import round_amount
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ReferenceType, ResourceKind
from stock_kernel.domain.requests import (
    RequestAction,
    RequestKind,
    RequestPolicy,
    RequestStatus,
    WorkflowRequestRecord,
    workflow_for,
)
from stock_kernel.domain.results import WorkflowOutcome
from stock_kernel.domain.workflow import Transition
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    RequestNotFoundError,
    StockValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.workflow_request import WorkflowRequestModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_mutation_engine import StockMutationEngine

logger = get_logger("services.request_workflow")

_DEFAULT_RESOURCE_KIND = {
    RequestKind.IMPORT: ResourceKind.DEVICE,
    RequestKind.EXPORT: ResourceKind.SPARE_PART,
}

_REFERENCE_TYPE = {
    RequestKind.IMPORT: ReferenceType.IMPORT_REQUEST,
    RequestKind.EXPORT: ReferenceType.EXPORT_REQUEST,
}


_EVENT_FOR_ACTION = {
    RequestAction.APPROVE: "request_approved",
    RequestAction.REJECT: "request_rejected",
    RequestAction.COMPLETE: "request_completed",
    RequestAction.ISSUE: "request_issued",
    RequestAction.CANCEL: "request_cancelled",
}


def _entity_type(kind: RequestKind) -> str:
    return "ImportRequest" if kind == RequestKind.IMPORT else "ExportRequest"


class RequestWorkflowService(BaseService):
    """
    Lifecycle operations for import and export requests.

    Contract:
        Every transition method returns ``WorkflowOutcome[WorkflowRequestRecord]``.
        On rejection the outcome carries the unchanged request.

    Non-goals:
        - Does NOT commit; the unit of work owns the transaction.
        - Does NOT reverse stock when an APPROVED import is cancelled.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        stock: StockMutationEngine,
        sequences: SequenceService,
        policy: RequestPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._stock = stock
        self._sequences = sequences
        self._policy = policy or RequestPolicy()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        kind: RequestKind,
        resource_id: int,
        quantity: int,
        reason: str | None,
        requester: str,
        *,
        resource_kind: ResourceKind | None = None,
        unit_price: Decimal | None = None,
        supplier_id: int | None = None,
        expected_delivery_date: date | None = None,
        task_id: int | None = None,
        notes: str | None = None,
    ) -> WorkflowOutcome[WorkflowRequestRecord | None]:
        """
        Create a PENDING request.

        Import requests may carry a unit price; the total amount is
        unit_price * quantity rounded half-up to cents.  Export requests are
        refused with an INSUFFICIENT_STOCK outcome (and nothing is written)
        when the quantity is not currently on hand.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise StockValidationError("requested_quantity", f"must be a positive integer, got {quantity!r}")
        if not requester or not requester.strip():
            raise StockValidationError("requested_by", "must not be empty")
        self._validate_reason("request_reason", reason)

        resource_kind = resource_kind or _DEFAULT_RESOURCE_KIND[kind]

        total_amount = None
        if kind == RequestKind.IMPORT:
            if task_id is not None:
                raise StockValidationError("task_id", "only export requests reference a task")
            total_amount = self._total_amount(unit_price, quantity)
        else:
            if unit_price is not None or supplier_id is not None:
                raise StockValidationError(
                    "unit_price", "only import requests carry pricing and supplier"
                )
            available = self._stock.available_quantity(resource_id, resource_kind)
            if available < quantity:
                logger.warning(
                    "export_request_create_rejected",
                    extra={
                        "resource_kind": resource_kind.value,
                        "resource_id": resource_id,
                        "requested": quantity,
                        "available": available,
                    },
                )
                return WorkflowOutcome.rejected(
                    None,
                    InsufficientStockError(
                        resource_kind.value, resource_id, quantity, available
                    ),
                )

        now = self._clock.now()
        request = WorkflowRequestModel(
            request_number=self._sequences.next_request_number(kind),
            kind=kind.value,
            resource_kind=resource_kind.value,
            resource_id=resource_id,
            requested_quantity=quantity,
            unit_price=unit_price,
            total_amount=total_amount,
            status=workflow_for(kind).initial_state,
            request_reason=reason,
            requested_by=requester,
            requested_at=now,
            supplier_id=supplier_id,
            expected_delivery_date=expected_delivery_date,
            task_id=task_id,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(request)
        self.session.flush()

        logger.info(
            "request_created",
            extra={
                "request_id": request.id,
                "request_number": request.request_number,
                "kind": kind.value,
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "quantity": quantity,
                "actor": requester,
            },
        )
        return WorkflowOutcome.success(request.to_dto())

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def approve(
        self, request_id: int, reason: str | None, reviewer: str
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        """
        PENDING -> APPROVED.

        Import: adds the requested quantity to stock now.
        Export: refuses with INSUFFICIENT_STOCK if the quantity is not on
        hand; no stock is moved until issue.
        """
        self._validate_reason("review_reason", reason)
        request = self._load(request_id)
        with LogContext.bind(request_id=request_id, actor=reviewer):
            transition, refusal = self._transition(request, RequestAction.APPROVE)
            if refusal is not None:
                return refusal

            kind = RequestKind(request.kind)
            if kind == RequestKind.EXPORT:
                refusal = self._check_available(request, request.requested_quantity)
                if refusal is not None:
                    return refusal
            elif transition.mutates_stock:
                self._stock.add_stock(
                    request.resource_id,
                    request.requested_quantity,
                    f"Import request approved: {request.request_number}",
                    reviewer,
                    resource_kind=ResourceKind(request.resource_kind),
                    reference_type=_REFERENCE_TYPE[kind],
                    reference_id=request.id,
                )

            now = self._clock.now()
            request.status = transition.to_state
            request.reviewed_by = reviewer
            request.reviewed_at = now
            request.review_reason = reason
            request.updated_at = now
            self.session.flush()
            self._log_transition(request, transition, reviewer)
            return WorkflowOutcome.success(request.to_dto())

    def reject(
        self, request_id: int, reason: str, reviewer: str
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        """PENDING -> REJECTED.  A rejection reason is required."""
        if not reason or not reason.strip():
            raise StockValidationError("review_reason", "a rejection reason is required")
        self._validate_reason("review_reason", reason)
        request = self._load(request_id)
        with LogContext.bind(request_id=request_id, actor=reviewer):
            transition, refusal = self._transition(request, RequestAction.REJECT)
            if refusal is not None:
                return refusal

            now = self._clock.now()
            request.status = transition.to_state
            request.reviewed_by = reviewer
            request.reviewed_at = now
            request.review_reason = reason
            request.updated_at = now
            self.session.flush()
            self._log_transition(request, transition, reviewer)
            return WorkflowOutcome.success(request.to_dto())

    # ------------------------------------------------------------------
    # Fulfilment
    # ------------------------------------------------------------------

    def complete(
        self,
        request_id: int,
        actor: str,
        *,
        actual_delivery_date: date | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        """
        APPROVED -> COMPLETED for import requests.

        Records delivery metadata only.  Stock was added at approval.
        """
        request = self._load(request_id)
        if RequestKind(request.kind) != RequestKind.IMPORT:
            return self._invalid(request, RequestAction.COMPLETE)
        with LogContext.bind(request_id=request_id, actor=actor):
            transition, refusal = self._transition(request, RequestAction.COMPLETE)
            if refusal is not None:
                return refusal

            request.status = transition.to_state
            request.actual_delivery_date = actual_delivery_date or self._clock.today()
            if invoice_number is not None:
                request.invoice_number = invoice_number
            if notes is not None:
                request.notes = notes
            request.updated_at = self._clock.now()
            self.session.flush()
            self._log_transition(request, transition, actor)
            return WorkflowOutcome.success(request.to_dto())

    def issue(
        self,
        request_id: int,
        actor: str,
        *,
        issued_quantity: int | None = None,
        notes: str | None = None,
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        """
        APPROVED -> ISSUED for export requests.

        ``issued_quantity`` defaults to the requested quantity and must lie
        in (0, requested].  Availability is checked again here; when it
        fails the request stays APPROVED and stock is untouched.
        """
        request = self._load(request_id)
        if RequestKind(request.kind) != RequestKind.EXPORT:
            return self._invalid(request, RequestAction.ISSUE)
        with LogContext.bind(request_id=request_id, actor=actor):
            transition, refusal = self._transition(request, RequestAction.ISSUE)
            if refusal is not None:
                return refusal

            quantity = request.requested_quantity if issued_quantity is None else issued_quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise StockValidationError("issued_quantity", f"must be a positive integer, got {quantity!r}")
            if quantity > request.requested_quantity:
                raise StockValidationError(
                    "issued_quantity",
                    f"{quantity} exceeds requested quantity {request.requested_quantity}",
                )

            removal = self._stock.remove_stock(
                request.resource_id,
                quantity,
                f"Export request issued: {request.request_number}",
                actor,
                resource_kind=ResourceKind(request.resource_kind),
                reference_type=ReferenceType.EXPORT_REQUEST,
                reference_id=request.id,
            )
            if not removal:
                return WorkflowOutcome.rejected(
                    request.to_dto(),
                    InsufficientStockError(
                        request.resource_kind,
                        request.resource_id,
                        quantity,
                        removal.ledger.quantity_in_stock,
                    ),
                )

            now = self._clock.now()
            request.status = transition.to_state
            request.issued_quantity = quantity
            request.issued_by = actor
            request.issued_at = now
            if notes is not None:
                request.notes = notes
            request.updated_at = now
            self.session.flush()
            self._log_transition(request, transition, actor)
            return WorkflowOutcome.success(request.to_dto())

    def cancel(
        self, request_id: int, reason: str | None, actor: str
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        """
        PENDING|APPROVED -> CANCELLED.

        The reason is appended to the request notes.  Stock added by an
        approved import is kept.
        """
        self._validate_reason("cancel_reason", reason)
        request = self._load(request_id)
        with LogContext.bind(request_id=request_id, actor=actor):
            transition, refusal = self._transition(request, RequestAction.CANCEL)
            if refusal is not None:
                return refusal

            was_approved = request.status == RequestStatus.APPROVED.value
            request.status = transition.to_state
            request.cancelled_by = actor
            if reason:
                note = f"Cancelled: {reason}"
                request.notes = f"{request.notes}\n{note}" if request.notes else note
            request.updated_at = self._clock.now()
            self.session.flush()
            self._log_transition(request, transition, actor)
            if was_approved and RequestKind(request.kind) == RequestKind.IMPORT:
                logger.info(
                    "approved_import_cancelled_stock_retained",
                    extra={
                        "request_number": request.request_number,
                        "resource_id": request.resource_id,
                        "quantity": request.requested_quantity,
                    },
                )
            return WorkflowOutcome.success(request.to_dto())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: int) -> WorkflowRequestModel:
        request = self.session.execute(
            select(WorkflowRequestModel)
            .where(WorkflowRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _transition(
        self, request: WorkflowRequestModel, action: str
    ) -> tuple[Transition | None, WorkflowOutcome[WorkflowRequestRecord] | None]:
        transition = workflow_for(RequestKind(request.kind)).find_transition(
            request.status, action
        )
        if transition is None:
            return None, self._invalid(request, action)
        return transition, None

    def _invalid(
        self, request: WorkflowRequestModel, action: str
    ) -> WorkflowOutcome[WorkflowRequestRecord]:
        logger.warning(
            "request_transition_rejected",
            extra={
                "request_number": request.request_number,
                "kind": request.kind,
                "status": request.status,
                "action": action,
            },
        )
        return WorkflowOutcome.rejected(
            request.to_dto(),
            InvalidStateTransitionError(
                _entity_type(RequestKind(request.kind)),
                request.id,
                request.status,
                action,
            ),
        )

    def _check_available(
        self, request: WorkflowRequestModel, quantity: int
    ) -> WorkflowOutcome[WorkflowRequestRecord] | None:
        resource_kind = ResourceKind(request.resource_kind)
        available = self._stock.available_quantity(request.resource_id, resource_kind)
        if available >= quantity:
            return None
        logger.warning(
            "request_stock_unavailable",
            extra={
                "request_number": request.request_number,
                "resource_id": request.resource_id,
                "requested": quantity,
                "available": available,
            },
        )
        return WorkflowOutcome.rejected(
            request.to_dto(),
            InsufficientStockError(
                resource_kind.value, request.resource_id, quantity, available
            ),
        )

    def _total_amount(self, unit_price: Decimal | None, quantity: int) -> Decimal | None:
        if unit_price is None:
            return None
        if not isinstance(unit_price, Decimal):
            raise StockValidationError("unit_price", "must be a Decimal")
        if unit_price < 0:
            raise StockValidationError("unit_price", f"must be >= 0, got {unit_price}")
        total = round_amount(unit_price * quantity)
        if total > self._policy.max_total_amount:
            raise StockValidationError(
                "total_amount",
                f"{total} exceeds maximum {self._policy.max_total_amount}",
            )
        return total

    def _validate_reason(self, field: str, reason: str | None) -> None:
        if reason is not None and len(reason) > self._policy.max_reason_length:
            raise StockValidationError(
                field, f"must be at most {self._policy.max_reason_length} characters"
            )

    def _log_transition(
        self, request: WorkflowRequestModel, transition: Transition, actor: str
    ) -> None:
        logger.info(
            _EVENT_FOR_ACTION[transition.action],
            extra={
                "request_number": request.request_number,
                "kind": request.kind,
                "action": transition.action,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
                "actor": actor,
            },
        )
