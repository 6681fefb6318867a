"""Approval rule configuration models.

A rule names a policy kind and an ordered list of designated approvers.
The workflow engine only ever reads these rows.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Boolean, ForeignKey, Integer, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from reimburse.db.base import Base


class ApprovalRule(Base):
    __tablename__ = "approval_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # percentage, specific, hybrid
    policy_kind = Column(String(20), nullable=False)
    percentage_threshold = Column(Integer, nullable=True)
    requires_manager_approval = Column(Boolean, nullable=False, default=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="approval_rules")
    approvers = relationship(
        "ApprovalRuleApprover",
        back_populates="rule",
        order_by="ApprovalRuleApprover.sequence_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.name} [{self.policy_kind}]>"


class ApprovalRuleApprover(Base):
    """One designated approver of a rule, at a 1-based sequence position."""
    __tablename__ = "approval_rule_approvers"
    __table_args__ = (
        UniqueConstraint("approval_rule_id", "sequence_order", name="uq_rule_approver_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    approval_rule_id = Column(
        Uuid, ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    sequence_order = Column(Integer, nullable=False)
    is_auto_approve = Column(Boolean, nullable=False, default=False)

    # Relationships
    rule = relationship("ApprovalRule", back_populates="approvers")
    user = relationship("User")
