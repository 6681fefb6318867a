"""Expense workflow states, actions and policy kinds.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← submit (step 0)
    └────┬─────┘
         │ approve (more steps remain)
    ┌────▼──────┐
    │ IN_REVIEW │ ◄─┐ approve (step + 1)
    └────┬──────┘ ──┘
         │
         ├──────────────────────┐
         │ approve              │ reject (from PENDING too)
    ┌────▼─────┐          ┌─────▼────┐
    │ APPROVED │          │ REJECTED │
    └──────────┘          └──────────┘

An approve resolves to APPROVED when the acting approver auto-approves,
when the quorum threshold is met, or when the roster is exhausted.
"""

from enum import Enum
from typing import Set, Dict, FrozenSet, NamedTuple


class ExpenseStatus(str, Enum):
    """Workflow status of an expense."""

    PENDING = "pending"          # Submitted, nobody has acted yet
    IN_REVIEW = "in_review"      # At least one step approved, more to go

    # Terminal states
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    """Actions an approver can take on an expense."""

    APPROVE = "approve"
    REJECT = "reject"


class LedgerAction(str, Enum):
    """Action recorded on an approval history entry."""

    PENDING = "pending"          # Submission anchor, not an approval
    APPROVED = "approved"
    REJECTED = "rejected"


class PolicyKind(str, Enum):
    """How an approval rule resolves."""

    PERCENTAGE = "percentage"    # Quorum of the roster, with sequential fallback
    SPECIFIC = "specific"        # Every roster step in order
    HYBRID = "hybrid"            # Quorum or auto-approver, with sequential fallback


class TransitionRule(NamedTuple):
    """The states an action may lead to from a given state."""
    from_state: ExpenseStatus
    action: ApprovalAction
    to_states: FrozenSet[ExpenseStatus]


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(
        ExpenseStatus.PENDING, ApprovalAction.APPROVE,
        frozenset({ExpenseStatus.IN_REVIEW, ExpenseStatus.APPROVED}),
    ),
    TransitionRule(
        ExpenseStatus.IN_REVIEW, ApprovalAction.APPROVE,
        frozenset({ExpenseStatus.IN_REVIEW, ExpenseStatus.APPROVED}),
    ),
    TransitionRule(ExpenseStatus.PENDING, ApprovalAction.REJECT, frozenset({ExpenseStatus.REJECTED})),
    TransitionRule(ExpenseStatus.IN_REVIEW, ApprovalAction.REJECT, frozenset({ExpenseStatus.REJECTED})),
]

# Build lookup tables
VALID_ACTIONS: Dict[ExpenseStatus, Set[ApprovalAction]] = {}
TRANSITION_TARGETS: Dict[tuple[ExpenseStatus, ApprovalAction], FrozenSet[ExpenseStatus]] = {}

for rule in TRANSITION_RULES:
    VALID_ACTIONS.setdefault(rule.from_state, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_state, rule.action)] = rule.to_states


# Terminal states (sealed, no outgoing transitions)
TERMINAL_STATES: Set[ExpenseStatus] = {
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
}

# States in which the expense is waiting on an approver
OPEN_STATES: Set[ExpenseStatus] = {
    ExpenseStatus.PENDING,
    ExpenseStatus.IN_REVIEW,
}

# Policy kinds that consult the approval quorum
QUORUM_POLICIES: Set[PolicyKind] = {
    PolicyKind.PERCENTAGE,
    PolicyKind.HYBRID,
}

LEDGER_ACTION_FOR: Dict[ApprovalAction, LedgerAction] = {
    ApprovalAction.APPROVE: LedgerAction.APPROVED,
    ApprovalAction.REJECT: LedgerAction.REJECTED,
}


def can_act(status: ExpenseStatus, action: ApprovalAction) -> bool:
    """Check if an action is valid from the given status."""
    return action in VALID_ACTIONS.get(status, set())


def is_allowed_outcome(
    from_state: ExpenseStatus, action: ApprovalAction, to_state: ExpenseStatus
) -> bool:
    """Check that a decision lands in a state the action can reach."""
    return to_state in TRANSITION_TARGETS.get((from_state, action), frozenset())


def available_actions(status: ExpenseStatus) -> list[ApprovalAction]:
    """Actions that can still be taken on an expense in ``status``."""
    return [a for a in ApprovalAction if can_act(status, a)]
