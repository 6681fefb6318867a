"""API routers for Reimburse."""

from . import expenses
from . import approval_rules

__all__ = [
    "expenses",
    "approval_rules",
]
