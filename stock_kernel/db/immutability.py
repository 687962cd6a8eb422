"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The transaction log and the task history are audit trails: their value
comes from the guarantee that nothing already written is ever rewritten.
Requests and tasks that reached a terminal status are also final -- a
second approve on a rejected request must not be able to sneak through a
code path that forgets to consult the state machine.

Services already refuse these operations.  The listeners here are the
layer below: any UPDATE or DELETE that reaches a flush is checked again.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable                    | Operations blocked
-----------------------|-----------------------------------|-------------------
TransactionLogEntry    | ALWAYS (from creation)            | UPDATE, DELETE
TaskHistoryEntry       | ALWAYS (from creation)            | UPDATE, DELETE
WorkflowRequest        | Persisted status is terminal      | UPDATE, DELETE
Task                   | Persisted status is COMPLETED or  | UPDATE, DELETE
                       | REJECTED                          |
ResourceLedger         | ALWAYS                            | DELETE

===============================================================================
DESIGN DECISIONS
===============================================================================

1. "Was terminal", not "is terminal": the transition INTO a terminal
   status is the legitimate final write.  The check reads the attribute
   history to find the status that was persisted before this flush.

2. updated_at may change on frozen rows; it is audit metadata.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": target.id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=target.id,
        reason=reason,
    )


def _persisted_status(target) -> str:
    """The status value loaded from the database before this flush."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


def _first_changed_field(target) -> str | None:
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            return attr.key
    return None


# =============================================================================
# Append-only logs
# =============================================================================


def _check_transaction_log_update(mapper, connection, target):
    _block(
        "TransactionLogEntry", target, "UPDATE",
        "Transaction log entries are immutable and cannot be modified",
    )


def _check_transaction_log_delete(mapper, connection, target):
    _block(
        "TransactionLogEntry", target, "DELETE",
        "Transaction log entries cannot be deleted",
    )


def _check_task_history_update(mapper, connection, target):
    _block(
        "TaskHistoryEntry", target, "UPDATE",
        "Task history entries are immutable and cannot be modified",
    )


def _check_task_history_delete(mapper, connection, target):
    _block(
        "TaskHistoryEntry", target, "DELETE",
        "Task history entries cannot be deleted",
    )


# =============================================================================
# Terminal requests and tasks
# =============================================================================


def _check_request_update(mapper, connection, target):
    from stock_kernel.domain.requests import RequestKind, workflow_for

    workflow = workflow_for(RequestKind(target.kind))
    old_status = _persisted_status(target)
    if not workflow.is_terminal(old_status):
        return
    field = _first_changed_field(target)
    if field is not None:
        _block(
            "WorkflowRequest", target, "UPDATE",
            f"Cannot modify field '{field}' on request in terminal status {old_status}",
            field=field,
        )


def _check_request_delete(mapper, connection, target):
    _block("WorkflowRequest", target, "DELETE", "Workflow requests cannot be deleted")


def _check_task_update(mapper, connection, target):
    from stock_kernel.domain.tasks import CLOSED_TASK_STATUSES

    old_status = _persisted_status(target)
    if old_status not in {s.value for s in CLOSED_TASK_STATUSES}:
        return
    field = _first_changed_field(target)
    if field is not None:
        _block(
            "Task", target, "UPDATE",
            f"Cannot modify field '{field}' on task in status {old_status}",
            field=field,
        )


def _check_task_delete(mapper, connection, target):
    _block("Task", target, "DELETE", "Tasks cannot be deleted")


def _check_ledger_delete(mapper, connection, target):
    _block("ResourceLedger", target, "DELETE", "Ledger rows cannot be deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from stock_kernel.models.ledger import ResourceLedgerModel
    from stock_kernel.models.task import TaskHistoryEntryModel, TaskModel
    from stock_kernel.models.transaction_log import TransactionLogEntryModel
    from stock_kernel.models.workflow_request import WorkflowRequestModel

    return (
        (TransactionLogEntryModel, "before_update", _check_transaction_log_update),
        (TransactionLogEntryModel, "before_delete", _check_transaction_log_delete),
        (TaskHistoryEntryModel, "before_update", _check_task_history_update),
        (TaskHistoryEntryModel, "before_delete", _check_task_history_delete),
        (WorkflowRequestModel, "before_update", _check_request_update),
        (WorkflowRequestModel, "before_delete", _check_request_delete),
        (TaskModel, "before_update", _check_task_update),
        (TaskModel, "before_delete", _check_task_delete),
        (ResourceLedgerModel, "before_delete", _check_ledger_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to bypass the listeners to
    verify a database-level constraint.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
