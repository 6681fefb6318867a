"""Workflow evaluator.

Pure decision function: given a snapshot of an expense's workflow and an
incoming action, compute the next state. Never touches storage and never
mutates its inputs; the controller persists whatever it returns.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from .errors import ConfigurationError, InvalidTransitionError
from .roster import RosterSnapshot
from .states import (
    ApprovalAction,
    ExpenseStatus,
    PolicyKind,
    QUORUM_POLICIES,
    TERMINAL_STATES,
    can_act,
)


class DecisionReason(str, Enum):
    """Why the evaluator reached its decision."""

    AUTO_APPROVED = "auto_approved"
    QUORUM_MET = "quorum_met"
    SEQUENCE_COMPLETE = "sequence_complete"
    ADVANCED = "advanced"
    REJECTED = "rejected"


DECISION_MESSAGES = {
    DecisionReason.AUTO_APPROVED: "Expense auto-approved",
    DecisionReason.QUORUM_MET: "Expense approved by percentage threshold",
    DecisionReason.SEQUENCE_COMPLETE: "Expense fully approved",
    DecisionReason.ADVANCED: "Approved, moved to next approver",
    DecisionReason.REJECTED: "Expense rejected",
}


@dataclass(frozen=True)
class Decision:
    """Next workflow state computed for one action."""
    status: ExpenseStatus
    current_step: int
    reason: DecisionReason
    approval_percentage: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def message(self) -> str:
        return DECISION_MESSAGES[self.reason]


def quorum_reached(approved_count: int, roster_length: int, threshold: int) -> bool:
    """
    Check ``approved_count / roster_length * 100 >= threshold``.

    Compared by cross-multiplication so that values landing exactly on the
    threshold pass regardless of float rounding.
    """
    return approved_count * 100 >= threshold * roster_length


def evaluate(
    status: ExpenseStatus,
    current_step: int,
    roster: RosterSnapshot,
    policy_kind: PolicyKind,
    percentage_threshold: Optional[int],
    approved_count: int,
    actor_id: UUID,
    action: ApprovalAction,
) -> Decision:
    """
    Decide the next state of an expense.

    Args:
        status: Current expense status
        current_step: Index into the roster of the step awaiting action
        roster: Approval roster for this decision
        policy_kind: Policy kind of the expense's rule
        percentage_threshold: Quorum threshold (1-100) for percentage/hybrid rules
        approved_count: Approved ledger entries recorded before this action
        actor_id: User taking the action; must already be authorized
        action: Approve or reject

    Returns:
        The decision; inputs are left untouched

    Raises:
        InvalidTransitionError: If the expense is already approved or rejected
        ConfigurationError: If the roster is empty, does not cover the current
            step, or a quorum rule has no threshold
    """
    if not can_act(status, action):
        raise InvalidTransitionError(
            f"Cannot {action.value} an expense that is {status.value}",
            from_state=status.value,
            action=action.value,
        )

    if action == ApprovalAction.REJECT:
        decision = Decision(ExpenseStatus.REJECTED, current_step, DecisionReason.REJECTED)
    else:
        decision = _evaluate_approval(
            current_step, roster, policy_kind, percentage_threshold, approved_count, actor_id
        )

    return decision


def _evaluate_approval(
    current_step: int,
    roster: RosterSnapshot,
    policy_kind: PolicyKind,
    percentage_threshold: Optional[int],
    approved_count: int,
    actor_id: UUID,
) -> Decision:
    roster_length = len(roster)
    if roster_length == 0:
        raise ConfigurationError("No approvers defined for this expense")

    entry = roster.at(current_step)
    if entry is None:
        raise ConfigurationError(
            f"Approval step {current_step} is outside a roster of {roster_length} approvers"
        )

    if entry.auto_approve and entry.user_id == actor_id:
        return Decision(ExpenseStatus.APPROVED, current_step, DecisionReason.AUTO_APPROVED)

    # This approval is counted before the ledger entry is written
    approvals = approved_count + 1
    percentage = approvals / roster_length * 100

    if policy_kind in QUORUM_POLICIES:
        if percentage_threshold is None:
            raise ConfigurationError(f"{policy_kind.value} rule has no percentage threshold")
        if quorum_reached(approvals, roster_length, percentage_threshold):
            return Decision(
                ExpenseStatus.APPROVED, current_step, DecisionReason.QUORUM_MET, percentage
            )

    next_step = current_step + 1
    if next_step >= roster_length:
        return Decision(
            ExpenseStatus.APPROVED, next_step, DecisionReason.SEQUENCE_COMPLETE, percentage
        )

    return Decision(ExpenseStatus.IN_REVIEW, next_step, DecisionReason.ADVANCED, percentage)
