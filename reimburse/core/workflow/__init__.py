"""Approval workflow engine for Reimburse.

Decides who must approve each expense, in what order and under which
sequential and quorum rules, and advances or terminates that process
atomically as actions arrive.
"""

from .states import ExpenseStatus, ApprovalAction, LedgerAction, PolicyKind, TERMINAL_STATES, OPEN_STATES
from .errors import (
    WorkflowError,
    NotFoundError,
    InvalidTransitionError,
    ConfigurationError,
    NotCurrentApproverError,
    StorageConflictError,
)
from .roster import ApproverEntry, RuleSnapshot, RosterEntry, RosterSnapshot, build_roster
from .evaluator import Decision, DecisionReason, evaluate
from .stores import RuleStore, ApprovalLedger, LedgerEntryView
from .controller import ExpenseStateController, ActionResult

__all__ = [
    "ExpenseStatus",
    "ApprovalAction",
    "LedgerAction",
    "PolicyKind",
    "TERMINAL_STATES",
    "OPEN_STATES",
    "WorkflowError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConfigurationError",
    "NotCurrentApproverError",
    "StorageConflictError",
    "ApproverEntry",
    "RuleSnapshot",
    "RosterEntry",
    "RosterSnapshot",
    "build_roster",
    "Decision",
    "DecisionReason",
    "evaluate",
    "RuleStore",
    "ApprovalLedger",
    "LedgerEntryView",
    "ExpenseStateController",
    "ActionResult",
]
