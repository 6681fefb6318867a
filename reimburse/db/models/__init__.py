"""Database models for Reimburse."""

from reimburse.db.models.company import Company
from reimburse.db.models.user import User
from reimburse.db.models.approval_rule import ApprovalRule, ApprovalRuleApprover
from reimburse.db.models.expense import Expense
from reimburse.db.models.approval_history import ApprovalHistory

__all__ = [
    "Company",
    "User",
    "ApprovalRule",
    "ApprovalRuleApprover",
    "Expense",
    "ApprovalHistory",
]
