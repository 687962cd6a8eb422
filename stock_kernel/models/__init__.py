"""ORM models for the stock kernel."""

from stock_kernel.models.ledger import ResourceLedgerModel
from stock_kernel.models.service_request import ServiceRequestModel, ServiceRequestStatus
from stock_kernel.models.task import TaskHistoryEntryModel, TaskModel
from stock_kernel.models.transaction_log import TransactionLogEntryModel
from stock_kernel.models.workflow_request import WorkflowRequestModel

__all__ = [
    "ResourceLedgerModel",
    "ServiceRequestModel",
    "ServiceRequestStatus",
    "TaskHistoryEntryModel",
    "TaskModel",
    "TransactionLogEntryModel",
    "WorkflowRequestModel",
]
