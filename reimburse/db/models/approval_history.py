"""Approval ledger model.

Append-only record of every action taken on an expense. Rows are never
updated or deleted; the count of ``approved`` rows is the quorum numerator.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from reimburse.db.base import Base


class ApprovalHistory(Base):
    __tablename__ = "approval_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    expense_id = Column(Uuid, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)

    # Actor
    approver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    # pending, approved, rejected
    action = Column(String(20), nullable=False, index=True)
    comment = Column(Text, nullable=True)
    step_number = Column(Integer, nullable=False)

    # Timestamp
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    expense = relationship("Expense", back_populates="history")
    approver = relationship("User")

    def __repr__(self) -> str:
        return f"<ApprovalHistory {self.action} @ step {self.step_number}>"
