"""Tests for the workflow evaluator."""

from uuid import uuid4

import pytest

from reimburse.core.workflow import (
    ApprovalAction,
    ConfigurationError,
    DecisionReason,
    ExpenseStatus,
    InvalidTransitionError,
    PolicyKind,
    RosterEntry,
    RosterSnapshot,
    evaluate,
)
from reimburse.core.workflow.evaluator import quorum_reached
from reimburse.core.workflow.states import is_allowed_outcome


def _roster(n, auto_at=()):
    users = [uuid4() for _ in range(n)]
    roster = RosterSnapshot(
        entries=tuple(
            RosterEntry(user_id=u, sequence_order=i, auto_approve=i in auto_at)
            for i, u in enumerate(users)
        )
    )
    return roster, users


def _run_approvals(roster, users, policy_kind, threshold):
    """Approve step by step until terminal; returns every decision."""
    status, step, approved = ExpenseStatus.PENDING, 0, 0
    decisions = []
    while status not in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
        decision = evaluate(
            status, step, roster, policy_kind, threshold, approved, users[step], ApprovalAction.APPROVE
        )
        assert is_allowed_outcome(status, ApprovalAction.APPROVE, decision.status)
        decisions.append(decision)
        status, step, approved = decision.status, decision.current_step, approved + 1
    return decisions


class TestSequentialApproval:
    """Test Specific-policy sequencing."""

    @pytest.mark.parametrize("n", [1, 2, 3, 5, 8])
    def test_n_approvals_complete_n_steps(self, n):
        roster, users = _roster(n)
        decisions = _run_approvals(roster, users, PolicyKind.SPECIFIC, None)

        assert len(decisions) == n
        assert [d.current_step for d in decisions] == list(range(1, n + 1))
        assert all(d.status == ExpenseStatus.IN_REVIEW for d in decisions[:-1])
        assert decisions[-1].status == ExpenseStatus.APPROVED
        assert decisions[-1].reason == DecisionReason.SEQUENCE_COMPLETE
        assert decisions[-1].message == "Expense fully approved"

    def test_advance_message(self):
        roster, users = _roster(2)
        decision = evaluate(
            ExpenseStatus.PENDING, 0, roster, PolicyKind.SPECIFIC, None, 0, users[0], ApprovalAction.APPROVE
        )
        assert decision.status == ExpenseStatus.IN_REVIEW
        assert decision.current_step == 1
        assert decision.message == "Approved, moved to next approver"
        assert not decision.is_terminal

    def test_specific_ignores_threshold(self):
        roster, users = _roster(3)
        decisions = _run_approvals(roster, users, PolicyKind.SPECIFIC, 1)
        assert len(decisions) == 3


class TestQuorum:
    """Test Percentage and Hybrid quorum resolution."""

    @pytest.mark.parametrize(
        "threshold,n",
        [(50, 4), (60, 3), (67, 3), (66, 3), (100, 3), (1, 5), (34, 3), (33, 3), (75, 4), (20, 10)],
    )
    def test_approved_exactly_when_quorum_first_met(self, threshold, n):
        roster, users = _roster(n)
        decisions = _run_approvals(roster, users, PolicyKind.PERCENTAGE, threshold)

        required = (threshold * n + 99) // 100
        assert len(decisions) == required
        assert decisions[-1].status == ExpenseStatus.APPROVED

    def test_tie_at_threshold_passes(self):
        roster, users = _roster(4)
        decision = evaluate(
            ExpenseStatus.IN_REVIEW, 1, roster, PolicyKind.PERCENTAGE, 50, 1, users[1], ApprovalAction.APPROVE
        )
        assert decision.status == ExpenseStatus.APPROVED
        assert decision.reason == DecisionReason.QUORUM_MET
        assert decision.approval_percentage == 50.0
        assert decision.current_step == 1

    def test_below_threshold_advances(self):
        roster, users = _roster(3)
        decision = evaluate(
            ExpenseStatus.PENDING, 0, roster, PolicyKind.PERCENTAGE, 60, 0, users[0], ApprovalAction.APPROVE
        )
        assert decision.status == ExpenseStatus.IN_REVIEW
        assert decision.current_step == 1
        assert decision.approval_percentage == pytest.approx(33.33, abs=0.01)

    def test_quorum_without_threshold(self):
        roster, users = _roster(2)
        with pytest.raises(ConfigurationError):
            evaluate(
                ExpenseStatus.PENDING, 0, roster, PolicyKind.HYBRID, None, 0, users[0], ApprovalAction.APPROVE
            )

    @pytest.mark.parametrize(
        "count,n,threshold,expected",
        [(2, 3, 60, True), (2, 3, 67, False), (1, 3, 34, False), (1, 2, 50, True), (3, 3, 100, True)],
    )
    def test_quorum_reached(self, count, n, threshold, expected):
        assert quorum_reached(count, n, threshold) is expected


class TestAutoApprove:
    """Test the auto-approve privilege."""

    @pytest.mark.parametrize("n,auto_step", [(1, 0), (4, 1), (6, 2), (3, 2)])
    def test_auto_approver_ends_workflow(self, n, auto_step):
        roster, users = _roster(n, auto_at={auto_step})
        status = ExpenseStatus.PENDING if auto_step == 0 else ExpenseStatus.IN_REVIEW
        decision = evaluate(
            status, auto_step, roster, PolicyKind.SPECIFIC, None, auto_step, users[auto_step], ApprovalAction.APPROVE
        )
        assert decision.status == ExpenseStatus.APPROVED
        assert decision.reason == DecisionReason.AUTO_APPROVED
        assert decision.current_step == auto_step
        assert decision.message == "Expense auto-approved"

    def test_auto_approve_bypasses_quorum(self):
        roster, users = _roster(5, auto_at={0})
        decision = evaluate(
            ExpenseStatus.PENDING, 0, roster, PolicyKind.PERCENTAGE, 100, 0, users[0], ApprovalAction.APPROVE
        )
        assert decision.reason == DecisionReason.AUTO_APPROVED

    def test_hybrid_manager_then_quorum(self):
        """Manager, Alice, auto-approving Bob at 60%: Alice's approval settles it."""
        manager, alice, bob = uuid4(), uuid4(), uuid4()
        roster = RosterSnapshot(entries=(
            RosterEntry(manager, 0, is_manager=True),
            RosterEntry(alice, 1),
            RosterEntry(bob, 2, auto_approve=True),
        ))

        first = evaluate(
            ExpenseStatus.PENDING, 0, roster, PolicyKind.HYBRID, 60, 0, manager, ApprovalAction.APPROVE
        )
        assert first.status == ExpenseStatus.IN_REVIEW
        assert first.current_step == 1

        second = evaluate(
            first.status, first.current_step, roster, PolicyKind.HYBRID, 60, 1, alice, ApprovalAction.APPROVE
        )
        assert second.status == ExpenseStatus.APPROVED
        assert second.reason == DecisionReason.QUORUM_MET
        assert second.approval_percentage == pytest.approx(66.67, abs=0.01)


class TestReject:
    """Test rejection and terminal states."""

    @pytest.mark.parametrize("status,step", [(ExpenseStatus.PENDING, 0), (ExpenseStatus.IN_REVIEW, 2)])
    @pytest.mark.parametrize("policy_kind", list(PolicyKind))
    def test_reject_from_open_state(self, status, step, policy_kind):
        roster, users = _roster(4)
        decision = evaluate(status, step, roster, policy_kind, 50, step, users[step], ApprovalAction.REJECT)

        assert decision.status == ExpenseStatus.REJECTED
        assert decision.current_step == step
        assert decision.is_terminal
        assert decision.message == "Expense rejected"

    def test_reject_with_empty_roster(self):
        decision = evaluate(
            ExpenseStatus.PENDING, 0, RosterSnapshot(), PolicyKind.SPECIFIC, None, 0, uuid4(), ApprovalAction.REJECT
        )
        assert decision.status == ExpenseStatus.REJECTED

    @pytest.mark.parametrize("status", [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED])
    @pytest.mark.parametrize("action", list(ApprovalAction))
    def test_terminal_expense_cannot_be_acted_on(self, status, action):
        roster, users = _roster(2)
        with pytest.raises(InvalidTransitionError) as exc_info:
            evaluate(status, 1, roster, PolicyKind.SPECIFIC, None, 1, users[1], action)

        assert exc_info.value.from_state == status.value
        assert exc_info.value.action == action.value


class TestMisconfiguredRoster:
    """Test rosters that cannot be evaluated."""

    def test_empty_roster(self):
        with pytest.raises(ConfigurationError, match="No approvers"):
            evaluate(
                ExpenseStatus.PENDING, 0, RosterSnapshot(), PolicyKind.SPECIFIC, None, 0, uuid4(),
                ApprovalAction.APPROVE,
            )

    def test_step_beyond_roster(self):
        roster, users = _roster(2)
        with pytest.raises(ConfigurationError, match="outside a roster"):
            evaluate(
                ExpenseStatus.IN_REVIEW, 2, roster, PolicyKind.SPECIFIC, None, 2, users[1],
                ApprovalAction.APPROVE,
            )

    def test_inputs_untouched(self):
        roster, users = _roster(3)
        before = roster.entries
        evaluate(ExpenseStatus.PENDING, 0, roster, PolicyKind.SPECIFIC, None, 0, users[0], ApprovalAction.APPROVE)
        assert roster.entries == before
