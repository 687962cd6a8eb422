"""
StockMutationEngine -- the only writer of ledger quantities.

Responsibility:
    Applies add / remove / adjust operations to a resource ledger and
    appends exactly one transaction log entry for each, inside the caller's
    unit of work.  Optionally mirrors spare-part movements to the external
    spare-parts service.

Architecture position:
    Kernel > Services.  Depends on ResourceLedgerService and
    TransactionLogService; called by RequestWorkflowService and directly by
    callers through the orchestrator.

Invariants enforced:
    - Non-negativity: quantity_in_stock never drops below zero.
    - Pairing: every quantity change writes one log entry with
      before/after/change; a rejected removal writes neither.
    - Check-then-write under lock: removals read the quantity from a row
      locked for the rest of the transaction, so two concurrent removals
      cannot both pass the availability check against a stale read.

Failure modes:
    - StockValidationError for non-positive quantities, negative adjust
      targets, empty actor, or over-long reasons.
    - Insufficient stock is NOT an exception: remove_stock returns
      ``StockRemovalResult(success=False)``.
    - ExternalServiceFailureError from the spare-parts gateway is caught and
      logged; the local write stands and nothing is compensated.  The remote
      call is not transactional with the local database: if the unit of
      work later rolls back, the remote movement is not undone.

Audit relevance:
    Every accepted mutation is traceable through its log entry's
    reference_type / reference_id to the request or task that caused it.
"""

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    LedgerSnapshot,
    ReferenceType,
    ResourceKind,
    TransactionType,
)
from stock_kernel.domain.external import ExternalStockGateway
from stock_kernel.domain.results import StockRemovalResult
from stock_kernel.exceptions import ExternalServiceFailureError, StockValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.ledger import ResourceLedgerModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import ResourceLedgerService
from stock_kernel.services.transaction_log_service import TransactionLogService

logger = get_logger("services.stock_mutation")

MAX_REASON_LENGTH = 2000


def _validate_quantity(quantity: int, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise StockValidationError(field, f"must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise StockValidationError(field, f"must be > 0, got {quantity}")


def _validate_actor_and_reason(actor: str, reason: str) -> None:
    if not actor or not actor.strip():
        raise StockValidationError("actor", "must not be empty")
    if reason is None or len(reason) > MAX_REASON_LENGTH:
        raise StockValidationError(
            "reason", f"must be at most {MAX_REASON_LENGTH} characters"
        )


class StockMutationEngine(BaseService):
    """
    Atomic ledger + log mutations.

    Contract:
        Each public method performs one ledger write and one log append
        within the caller's transaction, or nothing at all.

    Guarantees:
        - add_stock and adjust_stock always succeed for valid input.
        - remove_stock either succeeds or returns a failed result with the
          ledger untouched and no log entry.

    Non-goals:
        - Does NOT commit.
        - Does NOT coordinate with the external service transactionally.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledgers: ResourceLedgerService,
        transaction_log: TransactionLogService,
        external_gateway: ExternalStockGateway | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._ledgers = ledgers
        self._log = transaction_log
        self._external = external_gateway

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_stock(
        self,
        resource_id: int,
        quantity: int,
        reason: str,
        actor: str,
        *,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
    ) -> LedgerSnapshot:
        """Increase quantity by ``quantity`` and log an IMPORT entry."""
        _validate_quantity(quantity)
        _validate_actor_and_reason(actor, reason)

        ledger = self._ledgers.get_or_create_model(resource_id, resource_kind, lock=True)
        before = ledger.quantity_in_stock
        after = before + quantity
        now = self._clock.now()
        self._write(
            ledger, after, now, actor,
            transaction_type=TransactionType.IMPORT,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        ledger.last_restocked_at = now
        self.session.flush()

        logger.info(
            "stock_added",
            extra={
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "quantity": quantity,
                "quantity_before": before,
                "quantity_after": after,
                "reference_type": reference_type.value if reference_type else None,
                "reference_id": reference_id,
            },
        )
        self._sync_external(resource_kind, resource_id, quantity, reason, removal=False)
        return ledger.to_dto()

    def remove_stock(
        self,
        resource_id: int,
        quantity: int,
        reason: str,
        actor: str,
        *,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
    ) -> StockRemovalResult:
        """
        Decrease quantity by ``quantity`` and log an EXPORT entry.

        Returns a failed result, with the ledger unchanged and no log
        entry written, when less than ``quantity`` is on hand.
        """
        _validate_quantity(quantity)
        _validate_actor_and_reason(actor, reason)

        ledger = self._ledgers.get_or_create_model(resource_id, resource_kind, lock=True)
        before = ledger.quantity_in_stock
        if before < quantity:
            logger.warning(
                "stock_removal_rejected",
                extra={
                    "resource_kind": resource_kind.value,
                    "resource_id": resource_id,
                    "requested": quantity,
                    "available": before,
                },
            )
            return StockRemovalResult(
                success=False, ledger=ledger.to_dto(), requested_quantity=quantity
            )

        after = before - quantity
        self._write(
            ledger, after, self._clock.now(), actor,
            transaction_type=TransactionType.EXPORT,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

        logger.info(
            "stock_removed",
            extra={
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "quantity": quantity,
                "quantity_before": before,
                "quantity_after": after,
                "reference_type": reference_type.value if reference_type else None,
                "reference_id": reference_id,
            },
        )
        self._sync_external(resource_kind, resource_id, quantity, reason, removal=True)
        return StockRemovalResult(
            success=True, ledger=ledger.to_dto(), requested_quantity=quantity
        )

    def adjust_stock(
        self,
        resource_id: int,
        new_quantity: int,
        reason: str,
        actor: str,
        *,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
        reference_type: ReferenceType | None = ReferenceType.ADJUSTMENT,
        reference_id: int | None = None,
    ) -> LedgerSnapshot:
        """
        Set quantity to ``new_quantity`` and log an ADJUSTMENT entry with
        change = new - before (may be negative or zero).

        A correcting operation: no availability check.
        """
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
            raise StockValidationError("new_quantity", f"must be an integer, got {new_quantity!r}")
        if new_quantity < 0:
            raise StockValidationError("new_quantity", f"must be >= 0, got {new_quantity}")
        _validate_actor_and_reason(actor, reason)

        ledger = self._ledgers.get_or_create_model(resource_id, resource_kind, lock=True)
        before = ledger.quantity_in_stock
        self._write(
            ledger, new_quantity, self._clock.now(), actor,
            transaction_type=TransactionType.ADJUSTMENT,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

        logger.info(
            "stock_adjusted",
            extra={
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "quantity_before": before,
                "quantity_after": new_quantity,
                "quantity_change": new_quantity - before,
            },
        )
        delta = new_quantity - before
        if delta:
            self._sync_external(
                resource_kind, resource_id, abs(delta), reason, removal=delta < 0
            )
        return ledger.to_dto()

    def export_for_task(
        self,
        task_id: int,
        resource_id: int,
        quantity: int,
        actor: str,
        *,
        resource_kind: ResourceKind = ResourceKind.SPARE_PART,
        reason: str | None = None,
    ) -> StockRemovalResult:
        """Remove stock consumed by a technician task (TASK_EXPORT)."""
        return self.remove_stock(
            resource_id,
            quantity,
            reason or f"Used for task {task_id}",
            actor,
            resource_kind=resource_kind,
            reference_type=ReferenceType.TASK_EXPORT,
            reference_id=task_id,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def available_quantity(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> int:
        """Quantity on hand; zero for a resource with no ledger yet."""
        ledger = self._ledgers.find_model(resource_id, resource_kind)
        return ledger.quantity_in_stock if ledger is not None else 0

    def has_sufficient_stock(
        self,
        resource_id: int,
        quantity: int,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
    ) -> bool:
        return self.available_quantity(resource_id, resource_kind) >= quantity

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(
        self,
        ledger: ResourceLedgerModel,
        quantity_after: int,
        now,
        actor: str,
        *,
        transaction_type: TransactionType,
        reason: str,
        reference_type: ReferenceType | None,
        reference_id: int | None,
    ) -> None:
        before = ledger.quantity_in_stock
        ledger.quantity_in_stock = quantity_after
        ledger.last_updated_by = actor
        ledger.updated_at = now
        self._log.append(
            transaction_type=transaction_type,
            resource_kind=ResourceKind(ledger.resource_kind),
            resource_id=ledger.resource_id,
            quantity_before=before,
            quantity_after=quantity_after,
            reason=reason,
            created_by=actor,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def _sync_external(
        self,
        resource_kind: ResourceKind,
        resource_id: int,
        quantity: int,
        notes: str,
        *,
        removal: bool,
    ) -> None:
        """Best-effort push of a spare-part movement to the external store."""
        if self._external is None or resource_kind != ResourceKind.SPARE_PART:
            return
        try:
            if removal:
                self._external.remove_stock(resource_id, quantity, notes)
            else:
                self._external.add_stock(resource_id, quantity, notes)
        except ExternalServiceFailureError:
            logger.warning(
                "external_stock_sync_failed",
                extra={
                    "resource_id": resource_id,
                    "quantity": quantity,
                    "direction": "remove" if removal else "add",
                },
                exc_info=True,
            )
            return
        logger.info(
            "external_stock_synced",
            extra={
                "resource_id": resource_id,
                "quantity": quantity,
                "direction": "remove" if removal else "add",
            },
        )
