"""Expense state controller.

The single writer of an expense's ``(status, current_approval_step)``.
Every action runs as one transaction: lock the expense row, snapshot the
rule and roster, count the ledger, evaluate, then append the ledger entry
and write the new state together. Any failure rolls all of it back.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union
from uuid import UUID

from sqlalchemy import and_, inspect
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from reimburse.core.roles import can_override_roster
from reimburse.db.models import Expense, User

from .errors import (
    ConfigurationError,
    InvalidTransitionError,
    NotCurrentApproverError,
    NotFoundError,
    StorageConflictError,
)
from .evaluator import Decision, evaluate
from .roster import RosterSnapshot, RuleSnapshot, build_roster, default_rule
from .states import (
    ApprovalAction,
    ExpenseStatus,
    LedgerAction,
    LEDGER_ACTION_FOR,
    OPEN_STATES,
    TERMINAL_STATES,
    is_allowed_outcome,
)
from .stores import ApprovalLedger, LedgerEntryView, RuleStore

logger = logging.getLogger(__name__)

# Serialization failure, deadlock, lock not available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}

# Claim details the submitter may edit before anyone acts
CLAIM_FIELDS = {"amount", "currency_code", "description", "expense_date", "merchant_name", "notes"}


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a submission or an approval action."""
    expense_id: UUID
    status: ExpenseStatus
    current_step: int
    message: str
    next_approver_id: Optional[UUID] = None
    approval_percentage: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expense_id": str(self.expense_id),
            "status": self.status.value,
            "current_step": self.current_step,
            "message": self.message,
            "next_approver_id": str(self.next_approver_id) if self.next_approver_id else None,
            "approval_percentage": self.approval_percentage,
        }


def is_transient_conflict(error: DBAPIError) -> bool:
    """Check if a database error is a contention failure worth retrying."""
    orig = error.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(getattr(orig, "diag", None), "sqlstate", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    return isinstance(error, OperationalError) and "database is locked" in str(orig)


class ExpenseStateController:
    """
    Mediates every workflow state change of a company's expenses.

    Holds no state of its own between calls; collaborators are injected and
    default to the database-backed stores on the given session.
    """

    def __init__(
        self,
        db: Session,
        company_id: UUID,
        *,
        rules: Optional[RuleStore] = None,
        ledger: Optional[ApprovalLedger] = None,
    ):
        """
        Initialize the controller.

        Args:
            db: Database session; the controller commits or rolls it back
            company_id: Tenant scope for every lookup
            rules: Rule store (defaults to one on ``db``)
            ledger: Approval ledger (defaults to one on ``db``)
        """
        self.db = db
        self.company_id = company_id
        self.rules = rules or RuleStore(db)
        self.ledger = ledger or ApprovalLedger(db)

    def submit(self, expense: Expense, rule_id: Optional[UUID] = None) -> ActionResult:
        """
        Start the approval workflow for a newly created expense.

        Attaches the rule, sets the expense to pending at step 0 and writes
        the submitter's pending ledger entry as the anchor record.

        Raises:
            NotFoundError: If the rule is not in the expense's company
            InvalidTransitionError: If the expense has already been submitted
            ConfigurationError: If the rule is inactive or misconfigured
        """
        if expense.company_id != self.company_id:
            raise NotFoundError("Expense does not belong to this company")
        if self._already_submitted(expense):
            raise InvalidTransitionError(
                f"Expense {expense.id} has already been submitted",
                from_state=expense.status or ExpenseStatus.PENDING.value,
                action="submit",
                expense_id=expense.id,
            )

        with self._transaction():
            if rule_id is not None:
                rule = self.rules.get_rule(rule_id, self.company_id)
                if not rule.is_active:
                    raise ConfigurationError(f"Approval rule '{rule.name}' is inactive")
            else:
                rule = default_rule(self.company_id)
            rule.validate()

            expense.approval_rule_id = rule_id
            expense.status = ExpenseStatus.PENDING.value
            expense.current_approval_step = 0
            self.db.add(expense)
            self.db.flush()

            self.ledger.append(expense.id, expense.submitter_id, LedgerAction.PENDING, 0)

            roster = build_roster(rule, self.rules.get_manager_of(expense.submitter_id))
            if len(roster) == 0:
                logger.warning(f"Expense {expense.id} submitted under '{rule.name}' with an empty roster")

        logger.info(f"Expense {expense.id} submitted by {expense.submitter_id} under rule '{rule.name}'")

        return ActionResult(
            expense_id=expense.id,
            status=ExpenseStatus.PENDING,
            current_step=0,
            message="Expense submitted",
            next_approver_id=roster.occupant(0),
        )

    def record_action(
        self,
        expense_id: UUID,
        actor_id: UUID,
        action: Union[ApprovalAction, str],
        comment: Optional[str] = None,
    ) -> ActionResult:
        """
        Apply an approve or reject action to an expense.

        Args:
            expense_id: Expense being acted on
            actor_id: User taking the action
            action: Approve or reject
            comment: Optional comment stored on the ledger entry

        Returns:
            The new workflow state and the next approver, if any

        Raises:
            NotFoundError: If the expense or its rule does not exist
            InvalidTransitionError: If the expense is already approved or rejected
            ConfigurationError: If the roster cannot be evaluated
            NotCurrentApproverError: If the actor may not act at the current step
            StorageConflictError: If a concurrent writer won; safe to retry
        """
        action = ApprovalAction(action)

        with self._transaction():
            expense = self._lock_expense(expense_id)
            status = ExpenseStatus(expense.status)
            if status in TERMINAL_STATES:
                raise InvalidTransitionError(
                    f"Expense {expense_id} is already {status.value}",
                    from_state=status.value,
                    action=action.value,
                    expense_id=expense_id,
                )

            rule = self._rule_for(expense)
            roster = build_roster(rule, self.rules.get_manager_of(expense.submitter_id))
            step = expense.current_approval_step

            self._authorize(expense, roster, step, actor_id, action)

            decision = evaluate(
                status=status,
                current_step=step,
                roster=roster,
                policy_kind=rule.policy_kind,
                percentage_threshold=rule.percentage_threshold,
                approved_count=self.ledger.count_approved(expense.id),
                actor_id=actor_id,
                action=action,
            )

            self.ledger.append(
                expense.id, actor_id, LEDGER_ACTION_FOR[action], step, comment=comment
            )
            self._apply(expense, status, action, decision)
            self.db.flush()

        logger.info(
            f"Expense {expense_id}: {action.value} by {actor_id} at step {step} -> "
            f"{decision.status.value} (step {decision.current_step}, {decision.reason.value})"
        )

        return ActionResult(
            expense_id=expense_id,
            status=decision.status,
            current_step=decision.current_step,
            message=decision.message,
            next_approver_id=None if decision.is_terminal else roster.occupant(decision.current_step),
            approval_percentage=decision.approval_percentage,
        )

    def approve(self, expense_id: UUID, actor_id: UUID, comment: Optional[str] = None) -> ActionResult:
        return self.record_action(expense_id, actor_id, ApprovalAction.APPROVE, comment)

    def reject(self, expense_id: UUID, actor_id: UUID, comment: Optional[str] = None) -> ActionResult:
        return self.record_action(expense_id, actor_id, ApprovalAction.REJECT, comment)

    def update_claim(self, expense_id: UUID, actor_id: UUID, changes: Dict[str, Any]) -> Expense:
        """
        Edit the claim details of an expense nobody has acted on yet.

        Only the submitter may edit, and only while the expense is pending.
        Workflow fields are never touched here; the row lock and version
        check make an edit and a racing approval mutually exclusive.

        Raises:
            ValueError: If ``changes`` names a field that is not a claim detail
            NotFoundError: If the expense does not exist or was submitted by someone else
            InvalidTransitionError: If an approver has already acted on it
        """
        unknown = set(changes) - CLAIM_FIELDS
        if unknown:
            raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")

        with self._transaction():
            expense = self._lock_expense(expense_id)
            if expense.submitter_id != actor_id:
                raise NotFoundError(f"Expense {expense_id} not found", expense_id=expense_id)

            status = ExpenseStatus(expense.status)
            if status != ExpenseStatus.PENDING:
                raise InvalidTransitionError(
                    f"Expense {expense_id} is {status.value} and can no longer be edited",
                    from_state=status.value,
                    action="edit",
                    expense_id=expense_id,
                )

            for field, value in changes.items():
                setattr(expense, field, value)
            expense.updated_at = datetime.utcnow()
            self.db.flush()

        logger.info(f"Expense {expense_id} edited by {actor_id}: {', '.join(sorted(changes))}")
        return expense

    def pending_for(self, user_id: UUID) -> List[Expense]:
        """
        Expenses currently waiting on ``user_id``, newest first.

        A user is waiting on an expense when they occupy the current step of
        its roster. The submitter's manager only counts when the rule puts
        them on the roster. Computed on every call; nothing is written.
        """
        expenses = self.db.query(Expense).options(
            joinedload(Expense.submitter)
        ).filter(
            and_(
                Expense.company_id == self.company_id,
                Expense.status.in_([s.value for s in OPEN_STATES]),
            )
        ).order_by(Expense.created_at.desc()).all()

        snapshots: Dict[Optional[UUID], RuleSnapshot] = {}
        pending = []
        for expense in expenses:
            rule_id = expense.approval_rule_id
            if rule_id not in snapshots:
                snapshots[rule_id] = self._rule_for(expense)
            roster = build_roster(snapshots[rule_id], expense.submitter.manager_id)
            if roster.occupant(expense.current_approval_step) == user_id:
                pending.append(expense)

        return pending

    def get_expense(self, expense_id: UUID) -> Expense:
        """Load an expense of this company without locking it."""
        expense = self.db.query(Expense).filter(
            and_(Expense.id == expense_id, Expense.company_id == self.company_id)
        ).first()
        if not expense:
            raise NotFoundError(f"Expense {expense_id} not found", expense_id=expense_id)
        return expense

    def history(self, expense_id: UUID) -> List[LedgerEntryView]:
        """Ledger entries of an expense for audit display, oldest first."""
        self.get_expense(expense_id)
        return self.ledger.entries(expense_id)

    def roster_for(self, expense: Expense) -> RosterSnapshot:
        """Current roster of an expense, built from a fresh rule snapshot."""
        return build_roster(self._rule_for(expense), self.rules.get_manager_of(expense.submitter_id))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit the enclosed work as one unit, or roll all of it back."""
        try:
            yield
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Concurrent update detected: {e}")
            raise StorageConflictError("Expense was modified concurrently, retry the action") from e
        except DBAPIError as e:
            self.db.rollback()
            if is_transient_conflict(e):
                logger.warning(f"Transaction conflict: {e.orig}")
                raise StorageConflictError("Transaction conflict, retry the action") from e
            raise
        except BaseException:
            self.db.rollback()
            raise

    def _already_submitted(self, expense: Expense) -> bool:
        if inspect(expense).has_identity:
            return True
        if expense.id is None:
            return False
        with self.db.no_autoflush:
            return self.db.query(Expense.id).filter(Expense.id == expense.id).first() is not None

    def _lock_expense(self, expense_id: UUID) -> Expense:
        expense = self.db.query(Expense).filter(
            and_(Expense.id == expense_id, Expense.company_id == self.company_id)
        ).populate_existing().with_for_update().first()

        if not expense:
            raise NotFoundError(f"Expense {expense_id} not found", expense_id=expense_id)
        return expense

    def _rule_for(self, expense: Expense) -> RuleSnapshot:
        if expense.approval_rule_id is None:
            return default_rule(self.company_id)
        rule = self.rules.get_rule(expense.approval_rule_id, self.company_id)
        rule.validate()
        return rule

    def _authorize(
        self,
        expense: Expense,
        roster: RosterSnapshot,
        step: int,
        actor_id: UUID,
        action: ApprovalAction,
    ) -> None:
        """Check the actor may take ``action`` at ``step``."""
        if action == ApprovalAction.APPROVE:
            if len(roster) == 0:
                raise ConfigurationError("No approvers defined for this expense", expense_id=expense.id)
            if roster.at(step) is None:
                raise ConfigurationError(
                    f"Approval step {step} is outside a roster of {len(roster)} approvers",
                    expense_id=expense.id,
                )
            if roster.occupant(step) != actor_id:
                raise NotCurrentApproverError(actor_id, step=step, expense_id=expense.id)
            return

        # Any approver on the roster, or a company admin, may reject
        if roster.includes(actor_id) or self._is_admin(actor_id):
            return
        raise NotCurrentApproverError(actor_id, step=step, expense_id=expense.id)

    def _is_admin(self, user_id: UUID) -> bool:
        role = self.db.query(User.role).filter(
            and_(User.id == user_id, User.company_id == self.company_id)
        ).scalar()
        return role is not None and can_override_roster(role)

    def _apply(
        self,
        expense: Expense,
        status: ExpenseStatus,
        action: ApprovalAction,
        decision: Decision,
    ) -> None:
        """Write a decision onto the locked expense row."""
        if (
            not is_allowed_outcome(status, action, decision.status)
            or decision.current_step < expense.current_approval_step
        ):
            raise InvalidTransitionError(
                f"Cannot move expense {expense.id} from {status.value} at step "
                f"{expense.current_approval_step} to {decision.status.value} at step {decision.current_step}",
                from_state=status.value,
                action=action.value,
                expense_id=expense.id,
            )

        expense.status = decision.status.value
        expense.current_approval_step = decision.current_step
        expense.updated_at = datetime.utcnow()
