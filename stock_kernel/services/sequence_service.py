"""
SequenceService -- monotonic counters via locked rows, and document numbers.

Responsibility:
    Allocates strictly increasing integers per named series from a counter
    table, and formats them into the human-readable numbers carried by
    transaction log entries, requests, and tasks.

Architecture position:
    Kernel > Services.  Called by TransactionLogService,
    RequestWorkflowService, and TaskWorkflowService.

Invariants enforced:
    - The locked counter row is the only source of the next value; the
      aggregate-max-plus-one pattern is never used.
    - An increment is only visible once the caller's transaction commits;
      a rollback returns the value.

Failure modes:
    - IntegrityError on the first use of a series when two writers create
      the counter row at once: handled with a savepoint rollback and a
      re-read of the winner's row.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.numbering import DocumentPrefixes, format_document_number
from stock_kernel.domain.requests import RequestKind
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named series with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates transactional sequence numbers.

    Guarantees:
        - Strictly monotonic per series via a locked counter row
          (``SELECT ... FOR UPDATE`` on server databases; SQLite writers
          are already serialized by ``BEGIN IMMEDIATE``).
        - Gap-free under normal operation.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    TRANSACTION = "stock_transaction"
    IMPORT_REQUEST = "import_request"
    EXPORT_REQUEST = "export_request"
    TASK = "task"

    def __init__(
        self,
        session: Session,
        clock: Clock,
        prefixes: DocumentPrefixes | None = None,
    ):
        self._session = session
        self._clock = clock
        self._prefixes = prefixes or DocumentPrefixes()

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named series.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously committed for this series.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this series.  Another writer may be creating the
            # same row; the savepoint keeps the caller's work intact if so.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a series without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    # ------------------------------------------------------------------
    # Document numbers
    # ------------------------------------------------------------------

    def _number(self, sequence_name: str, prefix: str) -> str:
        value = self.next_value(sequence_name)
        return format_document_number(
            prefix, self._clock.today(), value, self._prefixes.sequence_width
        )

    def next_transaction_number(self) -> str:
        return self._number(self.TRANSACTION, self._prefixes.transaction)

    def next_request_number(self, kind: RequestKind) -> str:
        if kind == RequestKind.IMPORT:
            return self._number(self.IMPORT_REQUEST, self._prefixes.import_request)
        return self._number(self.EXPORT_REQUEST, self._prefixes.export_request)

    def next_task_number(self) -> str:
        return self._number(self.TASK, self._prefixes.task)
