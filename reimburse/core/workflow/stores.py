"""Storage contracts consumed by the workflow controller.

``RuleStore`` turns rule rows into immutable snapshots and answers manager
lookups. ``ApprovalLedger`` is the only way ledger rows are written; it
appends and counts, it never updates or deletes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, selectinload

from reimburse.db.models import ApprovalHistory, ApprovalRule, User

from .errors import ConfigurationError, NotFoundError
from .roster import ApproverEntry, RuleSnapshot
from .states import LedgerAction, PolicyKind


class RuleStore:
    """Read access to approval rules and the reporting line."""

    def __init__(self, db: Session):
        self.db = db

    def get_rule(self, rule_id: UUID, company_id: UUID) -> RuleSnapshot:
        """
        Load a snapshot of a rule and its approvers.

        Raises:
            NotFoundError: If the rule does not exist in the company
            ConfigurationError: If the stored policy kind is unknown
        """
        rule = self.db.query(ApprovalRule).options(
            selectinload(ApprovalRule.approvers)
        ).filter(
            and_(
                ApprovalRule.id == rule_id,
                ApprovalRule.company_id == company_id,
            )
        ).first()

        if not rule:
            raise NotFoundError(f"Approval rule {rule_id} not found")

        try:
            policy_kind = PolicyKind(rule.policy_kind)
        except ValueError:
            raise ConfigurationError(
                f"Rule '{rule.name}' has unknown policy kind '{rule.policy_kind}'"
            ) from None

        return RuleSnapshot(
            rule_id=rule.id,
            company_id=rule.company_id,
            name=rule.name,
            policy_kind=policy_kind,
            percentage_threshold=rule.percentage_threshold,
            requires_manager_approval=bool(rule.requires_manager_approval),
            is_active=bool(rule.is_active),
            approvers=tuple(
                ApproverEntry(
                    user_id=a.user_id,
                    sequence_order=a.sequence_order,
                    auto_approve=bool(a.is_auto_approve),
                )
                for a in rule.approvers
            ),
        )

    def get_manager_of(self, user_id: UUID) -> Optional[UUID]:
        """Direct manager of a user, or None."""
        return self.db.query(User.manager_id).filter(User.id == user_id).scalar()


@dataclass(frozen=True)
class LedgerEntryView:
    """Read-only projection of a ledger entry for audit display."""
    id: UUID
    expense_id: UUID
    approver_id: UUID
    approver_name: Optional[str]
    action: str
    step_number: int
    comment: Optional[str]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "expense_id": str(self.expense_id),
            "approver_id": str(self.approver_id),
            "approver_name": self.approver_name,
            "action": self.action,
            "step_number": self.step_number,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class ApprovalLedger:
    """Append-only approval history for expenses."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        expense_id: UUID,
        approver_id: UUID,
        action: LedgerAction,
        step_number: int,
        *,
        comment: Optional[str] = None,
    ) -> ApprovalHistory:
        """Add an entry to the current transaction. Flushed with the state write."""
        entry = ApprovalHistory(
            expense_id=expense_id,
            approver_id=approver_id,
            action=action.value,
            step_number=step_number,
            comment=comment,
            created_at=datetime.utcnow(),
        )
        self.db.add(entry)
        return entry

    def count_approved(self, expense_id: UUID) -> int:
        """Number of approved entries for an expense (the quorum numerator)."""
        return self.db.query(func.count(ApprovalHistory.id)).filter(
            and_(
                ApprovalHistory.expense_id == expense_id,
                ApprovalHistory.action == LedgerAction.APPROVED.value,
            )
        ).scalar() or 0

    def entries(self, expense_id: UUID) -> List[LedgerEntryView]:
        """All entries for an expense, oldest first."""
        rows = self.db.query(ApprovalHistory, User.name).join(
            User, User.id == ApprovalHistory.approver_id
        ).filter(
            ApprovalHistory.expense_id == expense_id
        ).order_by(ApprovalHistory.created_at.asc(), ApprovalHistory.step_number.asc()).all()

        return [
            LedgerEntryView(
                id=entry.id,
                expense_id=entry.expense_id,
                approver_id=entry.approver_id,
                approver_name=name,
                action=entry.action,
                step_number=entry.step_number,
                comment=entry.comment,
                timestamp=entry.created_at,
            )
            for entry, name in rows
        ]
