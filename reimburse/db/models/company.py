import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import relationship

from reimburse.db.base import Base


class Company(Base):
    """Tenant. Every user, rule and expense belongs to exactly one company."""
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    currency_code = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="company")
    approval_rules = relationship("ApprovalRule", back_populates="company")
    expenses = relationship("Expense", back_populates="company")
