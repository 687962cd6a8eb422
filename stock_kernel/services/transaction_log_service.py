"""
TransactionLogService -- append-only writer for stock transaction entries.

Responsibility:
    Inserts exactly one ``TransactionLogEntryModel`` per quantity mutation,
    numbering it from the transaction series.  Invoked only by
    StockMutationEngine, inside the same unit of work as the ledger write.

Invariants enforced:
    - Pure insert: this service never updates or deletes entries (and the
      immutability listeners reject any attempt elsewhere).
    - quantity_change is computed here as after - before; callers cannot
      supply an inconsistent delta.
"""

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    ReferenceType,
    ResourceKind,
    TransactionLogEntryRecord,
    TransactionType,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.transaction_log import TransactionLogEntryModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction_log")


class TransactionLogService(BaseService):
    """Appends transaction log entries.  Flush-only."""

    def __init__(self, session: Session, clock: Clock, sequences: SequenceService):
        super().__init__(session)
        self._clock = clock
        self._sequences = sequences

    def append(
        self,
        *,
        transaction_type: TransactionType,
        resource_kind: ResourceKind,
        resource_id: int,
        quantity_before: int,
        quantity_after: int,
        reason: str,
        created_by: str,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
    ) -> TransactionLogEntryRecord:
        entry = TransactionLogEntryModel(
            transaction_number=self._sequences.next_transaction_number(),
            transaction_type=transaction_type.value,
            resource_kind=resource_kind.value,
            resource_id=resource_id,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            quantity_change=quantity_after - quantity_before,
            reference_type=reference_type.value if reference_type else None,
            reference_id=reference_id,
            reason=reason,
            created_by=created_by,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "transaction_logged",
            extra={
                "transaction_number": entry.transaction_number,
                "transaction_type": entry.transaction_type,
                "resource_kind": entry.resource_kind,
                "resource_id": resource_id,
                "quantity_change": entry.quantity_change,
            },
        )
        return entry.to_dto()
