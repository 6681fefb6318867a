"""User roles."""

from enum import Enum
from typing import Set


class Role(str, Enum):
    """Company-level role of a user."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


# Roles that may act on any expense of their company regardless of roster
OVERRIDE_ROLES: Set[Role] = {Role.ADMIN}


def can_override_roster(role: str) -> bool:
    """Check if a role may reject an expense without being on its roster."""
    try:
        return Role(role) in OVERRIDE_ROLES
    except ValueError:
        return False
