"""Read-only selectors for the stock kernel."""

from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.request_selector import RequestSelector
from stock_kernel.selectors.task_selector import TaskSelector
from stock_kernel.selectors.transaction_log_selector import TransactionLogSelector

__all__ = [
    "LedgerSelector",
    "RequestSelector",
    "TaskSelector",
    "TransactionLogSelector",
]
