"""Expense model.

``status`` and ``current_approval_step`` are owned by the workflow
controller; nothing else writes them.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from reimburse.db.base import Base


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    submitter_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    approval_rule_id = Column(
        Uuid, ForeignKey("approval_rules.id", ondelete="SET NULL"), nullable=True
    )

    # Claim details (populated by the CRUD layer)
    amount = Column(Numeric(12, 2), nullable=False)
    currency_code = Column(String(3), nullable=False)
    description = Column(Text, nullable=False)
    expense_date = Column(Date, nullable=False)
    merchant_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    current_approval_step = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="expenses")
    submitter = relationship("User", foreign_keys=[submitter_id])
    approval_rule = relationship("ApprovalRule")
    history = relationship(
        "ApprovalHistory", back_populates="expense", order_by="ApprovalHistory.created_at"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Expense {self.id} [{self.status} @ step {self.current_approval_step}]>"
