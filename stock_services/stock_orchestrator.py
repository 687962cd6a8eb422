"""
stock_services.stock_orchestrator -- Central DI container for kernel services.

Responsibility:
    Creates every kernel service and selector exactly once and wires them
    together.  No service may create other services internally.  The
    orchestrator is the single point of dependency injection for one unit
    of work.

Architecture position:
    Services -- composition over the kernel.  This module is the only
    place where kernel services are constructed and composed.

Invariants enforced:
    - Single-instance lifecycle: one SequenceService, one
      ResourceLedgerService and one StockMutationEngine per session, so
      the request workflow and the task workflow share locks and counters.
    - DI transparency: all service wiring is visible in ``__init__``.

Non-goals:
    - Does NOT manage transaction boundaries (caller's responsibility).
    - Does NOT own the Session lifecycle (no commit/rollback).

Usage:
    orchestrator = StockOrchestrator(session, clock)
    orchestrator.stock.add_stock(42, 10, "Initial load", "warehouse")
    orchestrator.requests.create(RequestKind.EXPORT, 42, 3, "Field job", "alice")
    orchestrator.ledger_selector.low_stock_items()
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import LedgerDefaults, ResourceKind
from stock_kernel.domain.external import ExternalStockGateway
from stock_kernel.domain.numbering import DocumentPrefixes
from stock_kernel.domain.requests import RequestPolicy
from stock_kernel.domain.tasks import RejectionPolicy
from stock_kernel.selectors import (
    LedgerSelector,
    RequestSelector,
    TaskSelector,
    TransactionLogSelector,
)
from stock_kernel.services import (
    RequestWorkflowService,
    ResourceLedgerService,
    SequenceService,
    ServiceRequestCompletionService,
    StockMutationEngine,
    TaskWorkflowService,
    TransactionLogService,
)


class StockOrchestrator:
    """Central factory for kernel services.

    Contract:
        Receives a SQLAlchemy Session and optional Clock, configuration
        values and external gateway.  Constructs every kernel service
        exactly once, in dependency order, and exposes them as public
        attributes.

    Guarantees:
        - All services share the same Session and Clock instances.
        - Task completion closes linked service requests through
          ``service_requests``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        ledger_defaults: dict[ResourceKind, LedgerDefaults] | None = None,
        prefixes: DocumentPrefixes | None = None,
        request_policy: RequestPolicy | None = None,
        rejection_policy: RejectionPolicy = RejectionPolicy.TERMINAL,
        external_gateway: ExternalStockGateway | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()

        # --- Singletons: created once, order matters (dependency graph) ---

        # Foundational services (no kernel dependencies)
        self.sequences = SequenceService(session, self._clock, prefixes)
        self.ledgers = ResourceLedgerService(session, self._clock, ledger_defaults)

        # Log writer (depends on sequences for transaction numbers)
        self.transaction_log = TransactionLogService(session, self._clock, self.sequences)

        # The only component that changes quantities
        self.stock = StockMutationEngine(
            session,
            self._clock,
            self.ledgers,
            self.transaction_log,
            external_gateway=external_gateway,
        )

        # Workflows (depend on stock + sequences)
        self.requests = RequestWorkflowService(
            session, self._clock, self.stock, self.sequences, request_policy,
        )
        self.service_requests = ServiceRequestCompletionService(session, self._clock)
        self.tasks = TaskWorkflowService(
            session,
            self._clock,
            self.sequences,
            rejection_policy=rejection_policy,
            linked_requests=self.service_requests,
        )

        # Read side
        self.ledger_selector = LedgerSelector(session)
        self.transaction_log_selector = TransactionLogSelector(session)
        self.request_selector = RequestSelector(session)
        self.task_selector = TaskSelector(session, self._clock)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock
