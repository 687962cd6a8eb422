"""
Tests for the request and task state machines (``stock_kernel.domain``).

Covers the pure workflow tables: which (status, action) pairs are legal,
that terminal states have no outgoing edges, that the two rejection
policies differ only in where a rejected task goes, and that malformed
workflow definitions are refused at construction time.
"""

import pytest

from stock_kernel.domain.requests import (
    EXPORT_REQUEST_WORKFLOW,
    IMPORT_REQUEST_WORKFLOW,
    RequestAction,
    RequestKind,
    RequestStatus,
    workflow_for,
)
from stock_kernel.domain.tasks import (
    TASK_WORKFLOW,
    TASK_WORKFLOW_WITH_REQUEUE,
    TECHNICIAN_STATUS_UPDATES,
    RejectionPolicy,
    TaskAction,
    TaskRole,
    TaskStatus,
    task_workflow_for,
)
from stock_kernel.domain.workflow import Transition, Workflow


# =========================================================================
# Request workflows
# =========================================================================


class TestImportRequestWorkflow:
    def test_selected_by_kind(self):
        assert workflow_for(RequestKind.IMPORT) is IMPORT_REQUEST_WORKFLOW
        assert workflow_for(RequestKind.EXPORT) is EXPORT_REQUEST_WORKFLOW

    def test_initial_state_is_pending(self):
        assert IMPORT_REQUEST_WORKFLOW.initial_state == RequestStatus.PENDING.value

    @pytest.mark.parametrize(
        "from_state,action,to_state",
        [
            ("PENDING", RequestAction.APPROVE, "APPROVED"),
            ("PENDING", RequestAction.REJECT, "REJECTED"),
            ("PENDING", RequestAction.CANCEL, "CANCELLED"),
            ("APPROVED", RequestAction.COMPLETE, "COMPLETED"),
            ("APPROVED", RequestAction.CANCEL, "CANCELLED"),
        ],
    )
    def test_legal_transitions(self, from_state, action, to_state):
        transition = IMPORT_REQUEST_WORKFLOW.find_transition(from_state, action)
        assert transition is not None
        assert transition.to_state == to_state

    def test_approval_mutates_stock_and_completion_does_not(self):
        approve = IMPORT_REQUEST_WORKFLOW.find_transition("PENDING", RequestAction.APPROVE)
        complete = IMPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.COMPLETE)
        assert approve.mutates_stock is True
        assert complete.mutates_stock is False

    def test_import_cannot_be_issued(self):
        assert IMPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.ISSUE) is None

    def test_approved_cannot_be_approved_again(self):
        assert IMPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.APPROVE) is None


class TestExportRequestWorkflow:
    def test_issue_mutates_stock_and_approval_does_not(self):
        approve = EXPORT_REQUEST_WORKFLOW.find_transition("PENDING", RequestAction.APPROVE)
        issue = EXPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.ISSUE)
        assert approve.mutates_stock is False
        assert issue.mutates_stock is True

    def test_approve_and_issue_are_guarded_by_availability(self):
        approve = EXPORT_REQUEST_WORKFLOW.find_transition("PENDING", RequestAction.APPROVE)
        issue = EXPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.ISSUE)
        assert approve.guard.name == "stock_available"
        assert issue.guard.name == "stock_available"

    def test_export_cannot_be_completed(self):
        assert EXPORT_REQUEST_WORKFLOW.find_transition("APPROVED", RequestAction.COMPLETE) is None


@pytest.mark.parametrize("workflow", [IMPORT_REQUEST_WORKFLOW, EXPORT_REQUEST_WORKFLOW])
def test_request_terminal_states_have_no_actions(workflow):
    for state in workflow.terminal_states:
        assert workflow.actions_from(state) == ()
        assert workflow.is_terminal(state)
    assert not workflow.is_terminal("PENDING")
    assert not workflow.is_terminal("APPROVED")


def test_request_status_activity():
    assert RequestStatus.PENDING.is_active
    assert RequestStatus.APPROVED.is_active
    for status in (
        RequestStatus.REJECTED,
        RequestStatus.COMPLETED,
        RequestStatus.ISSUED,
        RequestStatus.CANCELLED,
    ):
        assert status.is_final


# =========================================================================
# Task workflows
# =========================================================================


class TestTaskWorkflow:
    def test_policy_selects_table(self):
        assert task_workflow_for(RejectionPolicy.TERMINAL) is TASK_WORKFLOW
        assert task_workflow_for(RejectionPolicy.REQUEUE) is TASK_WORKFLOW_WITH_REQUEUE

    def test_happy_path_chain(self):
        state = TASK_WORKFLOW.initial_state
        for action in (
            TaskAction.ASSIGN,
            TaskAction.ACCEPT,
            TaskAction.START,
            TaskAction.COMPLETE,
        ):
            transition = TASK_WORKFLOW.find_transition(state, action)
            assert transition is not None, f"{action} from {state}"
            state = transition.to_state
        assert state == TaskStatus.COMPLETED.value

    def test_reject_terminal_vs_requeue(self):
        terminal = TASK_WORKFLOW.find_transition("ASSIGNED", TaskAction.REJECT)
        requeue = TASK_WORKFLOW_WITH_REQUEUE.find_transition("ASSIGNED", TaskAction.REJECT)
        assert terminal.to_state == TaskStatus.REJECTED.value
        assert requeue.to_state == TaskStatus.PENDING.value

    def test_assign_is_lead_tech_action(self):
        assign = TASK_WORKFLOW.find_transition("PENDING", TaskAction.ASSIGN)
        assert assign.actor_role == TaskRole.LEAD_TECH.value

    def test_technician_actions_are_guarded(self):
        for state, action in (
            ("ASSIGNED", TaskAction.ACCEPT),
            ("ASSIGNED", TaskAction.REJECT),
            ("ACCEPTED", TaskAction.START),
            ("IN_PROGRESS", TaskAction.COMPLETE),
        ):
            transition = TASK_WORKFLOW.find_transition(state, action)
            assert transition.guard.name == "assigned_technician"
            assert transition.actor_role == TaskRole.TECHNICIAN.value

    def test_cannot_skip_acceptance(self):
        assert TASK_WORKFLOW.find_transition("ASSIGNED", TaskAction.START) is None
        assert TASK_WORKFLOW.find_transition_to("ASSIGNED", "IN_PROGRESS") is None

    def test_closed_states_are_terminal(self):
        for workflow in (TASK_WORKFLOW, TASK_WORKFLOW_WITH_REQUEUE):
            assert workflow.actions_from("COMPLETED") == ()
            assert workflow.actions_from("REJECTED") == ()

    def test_status_update_pairs_exist_in_table(self):
        for current, target in TECHNICIAN_STATUS_UPDATES:
            assert TASK_WORKFLOW.find_transition_to(current.value, target.value) is not None


# =========================================================================
# Workflow construction checks
# =========================================================================


class TestWorkflowValidation:
    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="bad",
                description="",
                initial_state="NOPE",
                states=("A",),
                transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="bad",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "B", "go"),),
            )

    def test_terminal_state_with_outgoing_edge_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="bad",
                description="",
                initial_state="A",
                states=("A", "B"),
                transitions=(Transition("B", "A", "reopen"),),
                terminal_states=("B",),
            )
