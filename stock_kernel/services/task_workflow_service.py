"""
stock_kernel.services.task_workflow_service -- Technician task lifecycle.

Responsibility:
    Creates tasks and moves them through the task state machine, writing
    one immutable TaskHistoryEntry per transition.  On completion, closes
    the linked customer service request through a LinkedRequestCompleter.

Architecture position:
    Kernel > Services.  No stock side effects.  Reads go through
    TaskSelector.

Invariants enforced:
    - Transitions are looked up in the workflow table selected by the
      configured RejectionPolicy; anything else is an
      INVALID_STATE_TRANSITION outcome.
    - Technician actions (accept, reject, start, complete, status update)
      require the acting technician to be the assigned one, else a
      NOT_AUTHORIZED outcome.  The state check runs first.
    - A task write and its history entry are flushed together.
    - The linked-request completion runs inside a SAVEPOINT.  If it fails,
      the savepoint is rolled back and the failure logged; the task stays
      COMPLETED.

Failure modes:
    - TaskNotFoundError for an unknown id (raised).
    - StockValidationError for an empty title or rejection reason (raised).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.results import WorkflowOutcome
from stock_kernel.domain.tasks import (
    TECHNICIAN_STATUS_UPDATES,
    LinkedRequestCompleter,
    NewTask,
    RejectionPolicy,
    TaskAction,
    TaskRecord,
    TaskRole,
    TaskStatus,
    task_workflow_for,
)
from stock_kernel.domain.workflow import Transition
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NotAuthorizedForTaskError,
    StockValidationError,
    TaskNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.task import TaskHistoryEntryModel, TaskModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.task_workflow")

MAX_REASON_LENGTH = 2000

_EVENT_FOR_ACTION = {
    TaskAction.ASSIGN: "task_assigned",
    TaskAction.ACCEPT: "task_accepted",
    TaskAction.REJECT: "task_rejected",
    TaskAction.START: "task_started",
    TaskAction.COMPLETE: "task_completed",
}


def _technician_actor(technician_id: int) -> str:
    return f"technician:{technician_id}"


def _with_comment(base: str, comment: str | None) -> str:
    return f"{base} - {comment}" if comment else base


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class TaskWorkflowService(BaseService):
    """
    Task create / assign / accept / reject / start / complete.

    Contract:
        Transition methods return ``WorkflowOutcome[TaskRecord]``; on
        rejection the outcome carries the unchanged task.

    Non-goals:
        - Does NOT commit.
        - Does NOT validate that a technician id exists in any directory.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        sequences: SequenceService,
        *,
        rejection_policy: RejectionPolicy = RejectionPolicy.TERMINAL,
        linked_requests: LinkedRequestCompleter | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._sequences = sequences
        self._workflow = task_workflow_for(rejection_policy)
        self._rejection_policy = rejection_policy
        self._linked_requests = linked_requests

    @property
    def rejection_policy(self) -> RejectionPolicy:
        return self._rejection_policy

    # ------------------------------------------------------------------
    # Creation and assignment
    # ------------------------------------------------------------------

    def create(self, new_task: NewTask) -> TaskRecord:
        """Create a PENDING task and its "Task created" history entry."""
        if not new_task.title or not new_task.title.strip():
            raise StockValidationError("title", "must not be empty")
        if not new_task.created_by or not new_task.created_by.strip():
            raise StockValidationError("created_by", "must not be empty")
        if new_task.estimated_duration_hours is not None and new_task.estimated_duration_hours < 0:
            raise StockValidationError(
                "estimated_duration_hours",
                f"must be >= 0, got {new_task.estimated_duration_hours}",
            )

        now = self._clock.now()
        task = TaskModel(
            task_number=self._sequences.next_task_number(),
            title=new_task.title,
            description=new_task.description,
            task_type=new_task.task_type.value,
            priority=new_task.priority.value,
            status=self._workflow.initial_state,
            customer_id=new_task.customer_id,
            customer_device_id=new_task.customer_device_id,
            service_request_id=new_task.service_request_id,
            scheduled_date=new_task.scheduled_date,
            estimated_duration_hours=new_task.estimated_duration_hours,
            service_location=new_task.service_location,
            customer_contact_info=new_task.customer_contact_info,
            support_notes=new_task.support_notes,
            created_by=new_task.created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(task)
        self.session.flush()
        self._record_history(task, "Task created", new_task.created_by, TaskRole.SUPPORT_TEAM)
        self.session.flush()

        logger.info(
            "task_created",
            extra={
                "task_id": task.id,
                "task_number": task.task_number,
                "task_type": task.task_type,
                "priority": task.priority,
                "service_request_id": task.service_request_id,
            },
        )
        return task.to_dto()

    def assign(
        self,
        task_id: int,
        technician_id: int,
        actor: str,
        *,
        scheduled_date: datetime | None = None,
        techlead_notes: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """PENDING -> ASSIGNED, by a lead technician."""
        task = self._load(task_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            transition = self._workflow.find_transition(task.status, TaskAction.ASSIGN)
            if transition is None:
                return self._invalid(task, TaskAction.ASSIGN)

            now = self._clock.now()
            task.status = transition.to_state
            task.assigned_technician_id = technician_id
            task.assigned_by = actor
            task.assigned_at = now
            if scheduled_date is not None:
                task.scheduled_date = scheduled_date
            if techlead_notes is not None:
                task.techlead_notes = techlead_notes
            task.updated_at = now
            self._record_history(
                task,
                _with_comment(f"Task assigned to technician (ID: {technician_id})", techlead_notes),
                actor,
                TaskRole.LEAD_TECH,
            )
            self.session.flush()
            self._log_transition(task, transition, actor)
            return WorkflowOutcome.success(task.to_dto())

    # ------------------------------------------------------------------
    # Technician actions
    # ------------------------------------------------------------------

    def accept(
        self,
        task_id: int,
        technician_id: int,
        *,
        comment: str | None = None,
        actor: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """ASSIGNED -> ACCEPTED, by the assigned technician."""
        task = self._load(task_id)
        actor = actor or _technician_actor(technician_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            transition, refusal = self._technician_transition(
                task, TaskAction.ACCEPT, technician_id
            )
            if refusal is not None:
                return refusal
            self._apply(
                task, transition, actor,
                _with_comment("Task accepted by technician", comment),
            )
            return WorkflowOutcome.success(task.to_dto())

    def reject(
        self,
        task_id: int,
        technician_id: int,
        reason: str,
        *,
        actor: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """
        ASSIGNED -> REJECTED (or PENDING under the requeue policy).

        A non-empty reason is required.  Under requeue the assignment is
        cleared so a lead technician can assign the task again.
        """
        if not reason or not reason.strip():
            raise StockValidationError("rejection_reason", "must not be empty")
        if len(reason) > MAX_REASON_LENGTH:
            raise StockValidationError(
                "rejection_reason", f"must be at most {MAX_REASON_LENGTH} characters"
            )
        task = self._load(task_id)
        actor = actor or _technician_actor(technician_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            transition, refusal = self._technician_transition(
                task, TaskAction.REJECT, technician_id
            )
            if refusal is not None:
                return refusal

            now = self._clock.now()
            task.rejection_reason = reason
            task.rejected_by = actor
            task.rejected_at = now
            if transition.to_state == TaskStatus.PENDING.value:
                task.assigned_technician_id = None
                task.assigned_by = None
                task.assigned_at = None
            self._apply(
                task, transition, actor, f"Task rejected by technician: {reason}"
            )
            return WorkflowOutcome.success(task.to_dto())

    def start(
        self,
        task_id: int,
        technician_id: int,
        *,
        comment: str | None = None,
        actor: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """ACCEPTED -> IN_PROGRESS.  The comment is appended to technician notes."""
        task = self._load(task_id)
        actor = actor or _technician_actor(technician_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            transition, refusal = self._technician_transition(
                task, TaskAction.START, technician_id
            )
            if refusal is not None:
                return refusal
            if comment:
                task.technician_notes = _append_note(task.technician_notes, comment)
            self._apply(
                task, transition, actor, _with_comment("Work started on task", comment)
            )
            return WorkflowOutcome.success(task.to_dto())

    def complete(
        self,
        task_id: int,
        technician_id: int,
        *,
        comment: str | None = None,
        actor: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """
        IN_PROGRESS -> COMPLETED.

        Stamps completed_at, stores the comment as completion notes, then
        completes the linked service request, if any, on a best-effort
        basis.
        """
        task = self._load(task_id)
        actor = actor or _technician_actor(technician_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            transition, refusal = self._technician_transition(
                task, TaskAction.COMPLETE, technician_id
            )
            if refusal is not None:
                return refusal
            task.completed_at = self._clock.now()
            if comment:
                task.completion_notes = comment
            self._apply(task, transition, actor, _with_comment("Task completed", comment))
            self._complete_linked_request(task, actor)
            return WorkflowOutcome.success(task.to_dto())

    def update_status(
        self,
        task_id: int,
        new_status: TaskStatus,
        technician_id: int,
        *,
        notes: str | None = None,
        actor: str | None = None,
    ) -> WorkflowOutcome[TaskRecord]:
        """
        Generic technician status update.

        Only ASSIGNED -> ACCEPTED, ACCEPTED -> IN_PROGRESS and
        IN_PROGRESS -> COMPLETED are accepted; every other pair is an
        INVALID_STATE_TRANSITION outcome.
        """
        task = self._load(task_id)
        actor = actor or _technician_actor(technician_id)
        with LogContext.bind(task_id=task_id, actor=actor):
            if task.assigned_technician_id != technician_id:
                return self._not_authorized(task, technician_id)

            current = TaskStatus(task.status)
            transition = None
            if (current, new_status) in TECHNICIAN_STATUS_UPDATES:
                transition = self._workflow.find_transition_to(current.value, new_status.value)
            if transition is None:
                return self._invalid(task, f"update_status:{new_status.value}")

            if new_status == TaskStatus.IN_PROGRESS and notes:
                task.technician_notes = _append_note(task.technician_notes, notes)
            if new_status == TaskStatus.COMPLETED:
                task.completed_at = self._clock.now()
                if notes:
                    task.completion_notes = notes
            comment = f"Status updated to {new_status.value}"
            if notes:
                comment = f"{comment}: {notes}"
            self._apply(task, transition, actor, comment)
            if new_status == TaskStatus.COMPLETED:
                self._complete_linked_request(task, actor)
            return WorkflowOutcome.success(task.to_dto())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, task_id: int) -> TaskModel:
        task = self.session.execute(
            select(TaskModel)
            .where(TaskModel.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _technician_transition(
        self, task: TaskModel, action: str, technician_id: int
    ) -> tuple[Transition | None, WorkflowOutcome[TaskRecord] | None]:
        transition = self._workflow.find_transition(task.status, action)
        if transition is None:
            return None, self._invalid(task, action)
        if task.assigned_technician_id != technician_id:
            return None, self._not_authorized(task, technician_id)
        return transition, None

    def _apply(
        self, task: TaskModel, transition: Transition, actor: str, comment: str
    ) -> None:
        task.status = transition.to_state
        task.updated_at = self._clock.now()
        self._record_history(
            task, comment, actor, TaskRole(transition.actor_role or TaskRole.TECHNICIAN.value)
        )
        self.session.flush()
        self._log_transition(task, transition, actor)

    def _record_history(
        self, task: TaskModel, comment: str, actor: str, role: TaskRole
    ) -> None:
        self.session.add(
            TaskHistoryEntryModel(
                task_id=task.id,
                status=task.status,
                comment=comment,
                updated_by=actor,
                user_role=role.value,
                created_at=self._clock.now(),
            )
        )

    def _complete_linked_request(self, task: TaskModel, actor: str) -> None:
        if task.service_request_id is None or self._linked_requests is None:
            return
        savepoint = self.session.begin_nested()
        try:
            self._linked_requests.complete_linked_request(
                task.service_request_id, task.task_number, actor
            )
            self.session.flush()
            savepoint.commit()
        except Exception:
            # Best-effort: the task completion stands regardless.
            savepoint.rollback()
            logger.exception(
                "linked_request_completion_failed",
                extra={
                    "task_number": task.task_number,
                    "service_request_id": task.service_request_id,
                },
            )
            return
        logger.info(
            "linked_request_completed",
            extra={
                "task_number": task.task_number,
                "service_request_id": task.service_request_id,
            },
        )

    def _invalid(self, task: TaskModel, action: str) -> WorkflowOutcome[TaskRecord]:
        logger.warning(
            "task_transition_rejected",
            extra={
                "task_number": task.task_number,
                "status": task.status,
                "action": action,
            },
        )
        return WorkflowOutcome.rejected(
            task.to_dto(),
            InvalidStateTransitionError("Task", task.id, task.status, action),
        )

    def _not_authorized(
        self, task: TaskModel, technician_id: int
    ) -> WorkflowOutcome[TaskRecord]:
        logger.warning(
            "task_technician_mismatch",
            extra={
                "task_number": task.task_number,
                "technician_id": technician_id,
                "assigned_technician_id": task.assigned_technician_id,
            },
        )
        return WorkflowOutcome.rejected(
            task.to_dto(),
            NotAuthorizedForTaskError(task.id, technician_id, task.assigned_technician_id),
        )

    def _log_transition(self, task: TaskModel, transition: Transition, actor: str) -> None:
        logger.info(
            _EVENT_FOR_ACTION[transition.action],
            extra={
                "task_number": task.task_number,
                "action": transition.action,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
                "actor": actor,
            },
        )
