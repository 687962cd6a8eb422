"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger and the workflows need to react to failures by kind,
not by parsing message text.  Every error in this module:

  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Exposes structured data as attributes (resource id, statuses, ...)

Expected business-rule rejections (invalid transition, insufficient stock,
wrong technician) are NOT raised by the workflow services.  They are
constructed and handed back inside a ``WorkflowOutcome`` so that a caller
decides whether to surface them.  ``WorkflowOutcome.unwrap()`` raises the
carried error for callers that prefer exception flow.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ResourceNotFoundError
    |   +-- LedgerNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- RequestNotFoundError
    |   +-- TaskNotFoundError
    |   +-- ServiceRequestNotFoundError
    |
    +-- WorkflowError
    |   +-- InvalidStateTransitionError
    |   +-- NotAuthorizedForTaskError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- DuplicateResourceError
    |
    +-- StockValidationError
    |
    +-- ExternalServiceError
    |   +-- ExternalServiceFailureError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | Delivery
--------------|---------------------------|------------------------------------
Not found     | LEDGER_NOT_FOUND          | raised
              | TRANSACTION_NOT_FOUND     | raised
              | REQUEST_NOT_FOUND         | raised
              | TASK_NOT_FOUND            | raised
              | SERVICE_REQUEST_NOT_FOUND | raised
--------------|---------------------------|------------------------------------
Workflow      | INVALID_STATE_TRANSITION  | returned in WorkflowOutcome
              | NOT_AUTHORIZED_FOR_TASK   | returned in WorkflowOutcome
--------------|---------------------------|------------------------------------
Stock         | INSUFFICIENT_STOCK        | StockRemovalResult / WorkflowOutcome
              | DUPLICATE_RESOURCE        | absorbed by get-or-create retry
--------------|---------------------------|------------------------------------
Validation    | VALIDATION_ERROR          | raised
--------------|---------------------------|------------------------------------
External      | EXTERNAL_SERVICE_FAILURE  | raised by client, logged by engine
--------------|---------------------------|------------------------------------
Immutability  | IMMUTABILITY_VIOLATION    | raised by ORM listeners

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError/LookupError, so
   they can be caught as a group without swallowing programming errors.

2. Error data lives in attributes.  The message string is for humans and
   may change; ``code`` and the attributes are the stable contract.
"""

from __future__ import annotations

from typing import Any


class StockKernelError(Exception):
    """Base exception for all stock kernel errors."""

    code: str = "STOCK_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Not found
# =============================================================================


class ResourceNotFoundError(StockKernelError):
    """An identifier does not resolve to a stored entity."""

    code: str = "RESOURCE_NOT_FOUND"
    entity_type: str = "resource"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.capitalize()} not found: {entity_id}")


class LedgerNotFoundError(ResourceNotFoundError):
    """No ledger row exists for a resource."""

    code: str = "LEDGER_NOT_FOUND"
    entity_type: str = "ledger"


class TransactionNotFoundError(ResourceNotFoundError):
    """No transaction log entry with the given id or number."""

    code: str = "TRANSACTION_NOT_FOUND"
    entity_type: str = "transaction"


class RequestNotFoundError(ResourceNotFoundError):
    """No workflow request with the given id or number."""

    code: str = "REQUEST_NOT_FOUND"
    entity_type: str = "request"


class TaskNotFoundError(ResourceNotFoundError):
    """No task with the given id or number."""

    code: str = "TASK_NOT_FOUND"
    entity_type: str = "task"


class ServiceRequestNotFoundError(ResourceNotFoundError):
    """No customer service request with the given id."""

    code: str = "SERVICE_REQUEST_NOT_FOUND"
    entity_type: str = "service request"


# =============================================================================
# Workflow
# =============================================================================


class WorkflowError(StockKernelError):
    """Base for state machine rejections."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateTransitionError(WorkflowError):
    """The action is not legal from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: int,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} "
            f"in status {current_status}"
        )


class NotAuthorizedForTaskError(WorkflowError):
    """The acting technician is not the one assigned to the task."""

    code: str = "NOT_AUTHORIZED_FOR_TASK"

    def __init__(
        self,
        task_id: int,
        technician_id: int,
        assigned_technician_id: int | None,
    ):
        self.task_id = task_id
        self.technician_id = technician_id
        self.assigned_technician_id = assigned_technician_id
        super().__init__(
            f"Technician {technician_id} is not assigned to task {task_id}"
        )


# =============================================================================
# Stock
# =============================================================================


class StockError(StockKernelError):
    """Base for quantity-related failures."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """A removal or issue asks for more than is on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        resource_kind: str,
        resource_id: int,
        requested: int,
        available: int,
    ):
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {resource_kind} {resource_id}: "
            f"requested {requested}, available {available}"
        )


class DuplicateResourceError(StockError):
    """A ledger insert collided and the row could not be re-read."""

    code: str = "DUPLICATE_RESOURCE"

    def __init__(self, resource_kind: str, resource_id: int):
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        super().__init__(
            f"Ledger for {resource_kind} {resource_id} collided on insert "
            "and was not visible on re-read"
        )


# =============================================================================
# Validation
# =============================================================================


class StockValidationError(StockKernelError):
    """Malformed input: quantity, price, reason length, paging."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, detail: str):
        self.field = field
        self.detail = detail
        super().__init__(f"Invalid {field}: {detail}")


# =============================================================================
# External services
# =============================================================================


class ExternalServiceError(StockKernelError):
    """Base for failures of collaborating services."""

    code: str = "EXTERNAL_SERVICE_ERROR"


class ExternalServiceFailureError(ExternalServiceError):
    """A cross-service call did not succeed."""

    code: str = "EXTERNAL_SERVICE_FAILURE"

    def __init__(self, service: str, operation: str, detail: str):
        self.service = service
        self.operation = operation
        self.detail = detail
        super().__init__(f"{service} {operation} failed: {detail}")


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityError(StockKernelError):
    """Base for attempts to change append-only or finalized records."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """An UPDATE or DELETE was attempted on a protected row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
