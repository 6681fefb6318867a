"""Tests for expense workflow states and transition tables."""

import pytest

from reimburse.core.workflow.states import (
    ApprovalAction,
    ExpenseStatus,
    LedgerAction,
    PolicyKind,
    LEDGER_ACTION_FOR,
    OPEN_STATES,
    QUORUM_POLICIES,
    TERMINAL_STATES,
    TRANSITION_TARGETS,
    available_actions,
    can_act,
    is_allowed_outcome,
)


class TestExpenseStates:
    """Test state definitions."""

    def test_all_states_defined(self):
        expected = ["pending", "in_review", "approved", "rejected"]
        assert [s.value for s in ExpenseStatus] == expected

    def test_terminal_and_open_states_partition(self):
        assert TERMINAL_STATES == {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}
        assert OPEN_STATES == {ExpenseStatus.PENDING, ExpenseStatus.IN_REVIEW}
        assert TERMINAL_STATES | OPEN_STATES == set(ExpenseStatus)
        assert not TERMINAL_STATES & OPEN_STATES

    def test_quorum_policies(self):
        assert PolicyKind.PERCENTAGE in QUORUM_POLICIES
        assert PolicyKind.HYBRID in QUORUM_POLICIES
        assert PolicyKind.SPECIFIC not in QUORUM_POLICIES

    def test_ledger_action_mapping(self):
        assert LEDGER_ACTION_FOR[ApprovalAction.APPROVE] == LedgerAction.APPROVED
        assert LEDGER_ACTION_FOR[ApprovalAction.REJECT] == LedgerAction.REJECTED


class TestTransitions:
    """Test which actions are valid from which states."""

    @pytest.mark.parametrize("status", [ExpenseStatus.PENDING, ExpenseStatus.IN_REVIEW])
    @pytest.mark.parametrize("action", list(ApprovalAction))
    def test_open_states_accept_both_actions(self, status, action):
        assert can_act(status, action)

    @pytest.mark.parametrize("status", [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED])
    @pytest.mark.parametrize("action", list(ApprovalAction))
    def test_terminal_states_accept_nothing(self, status, action):
        assert not can_act(status, action)
        assert available_actions(status) == []

    def test_available_actions_from_pending(self):
        assert available_actions(ExpenseStatus.PENDING) == [
            ApprovalAction.APPROVE,
            ApprovalAction.REJECT,
        ]

    def test_reject_only_reaches_rejected(self):
        for status in OPEN_STATES:
            assert TRANSITION_TARGETS[(status, ApprovalAction.REJECT)] == {ExpenseStatus.REJECTED}

    def test_approve_never_moves_back_to_pending(self):
        assert not is_allowed_outcome(
            ExpenseStatus.IN_REVIEW, ApprovalAction.APPROVE, ExpenseStatus.PENDING
        )
        assert is_allowed_outcome(
            ExpenseStatus.PENDING, ApprovalAction.APPROVE, ExpenseStatus.IN_REVIEW
        )
