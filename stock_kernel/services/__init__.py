"""Services for the stock kernel (write side)."""

from stock_kernel.services.ledger_service import ResourceLedgerService
from stock_kernel.services.request_workflow_service import RequestWorkflowService
from stock_kernel.services.sequence_service import SequenceCounter, SequenceService
from stock_kernel.services.service_request_linkage import ServiceRequestCompletionService
from stock_kernel.services.stock_mutation_engine import StockMutationEngine
from stock_kernel.services.task_workflow_service import TaskWorkflowService
from stock_kernel.services.transaction_log_service import TransactionLogService

__all__ = [
    "RequestWorkflowService",
    "ResourceLedgerService",
    "SequenceCounter",
    "SequenceService",
    "ServiceRequestCompletionService",
    "StockMutationEngine",
    "TaskWorkflowService",
    "TransactionLogService",
]
