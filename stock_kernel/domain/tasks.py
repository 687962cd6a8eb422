"""
Task workflow -- technician assignment state machine.

Responsibility:
    Status, priority, type and role vocabularies; the task state machine in
    its two rejection variants; DTOs for tasks and their history; and the
    protocol for completing a linked service request.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.

Invariants enforced:
    - PENDING -> ASSIGNED -> {ACCEPTED, REJECTED}; ACCEPTED -> IN_PROGRESS
      -> COMPLETED.
    - Under the ``requeue`` rejection policy, reject leads ASSIGNED back to
      PENDING instead of to the terminal REJECTED state.
    - Every transition is attributed to a role (recorded in history).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from stock_kernel.domain.workflow import Guard, Transition, Workflow


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaskType(str, Enum):
    MAINTENANCE = "MAINTENANCE"
    WARRANTY = "WARRANTY"
    INSTALLATION = "INSTALLATION"
    INSPECTION = "INSPECTION"
    EMERGENCY_REPAIR = "EMERGENCY_REPAIR"
    PREVENTIVE_MAINTENANCE = "PREVENTIVE_MAINTENANCE"


class TaskRole(str, Enum):
    SUPPORT_TEAM = "SUPPORT_TEAM"
    LEAD_TECH = "LEAD_TECH"
    TECHNICIAN = "TECHNICIAN"


class TaskAction:
    ASSIGN = "assign"
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    COMPLETE = "complete"


class RejectionPolicy(str, Enum):
    """What a technician's rejection does to the task."""

    TERMINAL = "terminal"
    REQUEUE = "requeue"


ASSIGNED_TECHNICIAN_GUARD = Guard(
    name="assigned_technician",
    description="Acting technician is the one the task is assigned to",
)

_PENDING = TaskStatus.PENDING.value
_ASSIGNED = TaskStatus.ASSIGNED.value
_ACCEPTED = TaskStatus.ACCEPTED.value
_REJECTED = TaskStatus.REJECTED.value
_IN_PROGRESS = TaskStatus.IN_PROGRESS.value
_COMPLETED = TaskStatus.COMPLETED.value

_TECH = TaskRole.TECHNICIAN.value

_COMMON_TRANSITIONS = (
    Transition(_PENDING, _ASSIGNED, TaskAction.ASSIGN, actor_role=TaskRole.LEAD_TECH.value),
    Transition(
        _ASSIGNED, _ACCEPTED, TaskAction.ACCEPT,
        guard=ASSIGNED_TECHNICIAN_GUARD, actor_role=_TECH,
    ),
    Transition(
        _ACCEPTED, _IN_PROGRESS, TaskAction.START,
        guard=ASSIGNED_TECHNICIAN_GUARD, actor_role=_TECH,
    ),
    Transition(
        _IN_PROGRESS, _COMPLETED, TaskAction.COMPLETE,
        guard=ASSIGNED_TECHNICIAN_GUARD, actor_role=_TECH,
    ),
)

TASK_WORKFLOW = Workflow(
    name="task",
    description="Technician task; a rejected task stays rejected",
    initial_state=_PENDING,
    states=(_PENDING, _ASSIGNED, _ACCEPTED, _REJECTED, _IN_PROGRESS, _COMPLETED),
    transitions=_COMMON_TRANSITIONS + (
        Transition(
            _ASSIGNED, _REJECTED, TaskAction.REJECT,
            guard=ASSIGNED_TECHNICIAN_GUARD, actor_role=_TECH,
        ),
    ),
    terminal_states=(_REJECTED, _COMPLETED),
)

TASK_WORKFLOW_WITH_REQUEUE = Workflow(
    name="task_requeue",
    description="Technician task; a rejected task returns to PENDING for reassignment",
    initial_state=_PENDING,
    states=(_PENDING, _ASSIGNED, _ACCEPTED, _REJECTED, _IN_PROGRESS, _COMPLETED),
    transitions=_COMMON_TRANSITIONS + (
        Transition(
            _ASSIGNED, _PENDING, TaskAction.REJECT,
            guard=ASSIGNED_TECHNICIAN_GUARD, actor_role=_TECH,
        ),
    ),
    terminal_states=(_REJECTED, _COMPLETED),
)


def task_workflow_for(policy: RejectionPolicy) -> Workflow:
    if policy == RejectionPolicy.REQUEUE:
        return TASK_WORKFLOW_WITH_REQUEUE
    return TASK_WORKFLOW


# Transitions a technician may drive through the generic status update.
TECHNICIAN_STATUS_UPDATES: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset({
    (TaskStatus.ASSIGNED, TaskStatus.ACCEPTED),
    (TaskStatus.ACCEPTED, TaskStatus.IN_PROGRESS),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
})

CLOSED_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.REJECTED)


@dataclass(frozen=True)
class TaskRecord:
    """Flat view of a task."""

    id: int
    task_number: str
    title: str
    description: str | None
    task_type: TaskType
    priority: TaskPriority
    status: TaskStatus
    customer_id: int | None
    customer_device_id: int | None
    service_request_id: int | None
    assigned_technician_id: int | None
    assigned_by: str | None
    assigned_at: datetime | None
    scheduled_date: datetime | None
    estimated_duration_hours: int | None
    service_location: str | None
    customer_contact_info: str | None
    support_notes: str | None
    techlead_notes: str | None
    technician_notes: str | None
    completion_notes: str | None
    rejection_reason: str | None
    rejected_by: str | None
    rejected_at: datetime | None
    completed_at: datetime | None
    created_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class TaskHistoryRecord:
    """One immutable audit record of a task transition."""

    id: int
    task_id: int
    status: TaskStatus
    comment: str
    updated_by: str
    user_role: TaskRole
    created_at: datetime


@dataclass(frozen=True)
class NewTask:
    """Input for task creation."""

    title: str
    task_type: TaskType
    created_by: str
    priority: TaskPriority = TaskPriority.NORMAL
    description: str | None = None
    customer_id: int | None = None
    customer_device_id: int | None = None
    service_request_id: int | None = None
    scheduled_date: datetime | None = None
    estimated_duration_hours: int | None = None
    service_location: str | None = None
    customer_contact_info: str | None = None
    support_notes: str | None = None


@dataclass(frozen=True)
class TaskFilter:
    keyword: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    task_type: TaskType | None = None
    technician_id: int | None = None


@dataclass(frozen=True)
class TaskStatistics:
    total: int
    pending: int
    assigned: int
    accepted: int
    rejected: int
    in_progress: int
    completed: int
    high_priority: int
    critical_priority: int
    overdue: int
    ever_rejected: int
    completion_rate: float
    rejection_rate: float


class LinkedRequestCompleter(Protocol):
    """Completes the external service request a task was derived from.

    Called synchronously, inside the task completion unit of work, after
    the task itself is COMPLETED.
    """

    def complete_linked_request(
        self, service_request_id: int, task_number: str, actor: str
    ) -> None: ...
