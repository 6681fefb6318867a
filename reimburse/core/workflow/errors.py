"""Typed errors raised by the approval workflow engine.

Every error carries a stable ``code`` so the API layer can translate it
without inspecting messages.
"""

from typing import Optional
from uuid import UUID


class WorkflowError(Exception):
    """Base class for workflow engine errors."""

    code = "workflow_error"

    def __init__(self, message: str, *, expense_id: Optional[UUID] = None):
        super().__init__(message)
        self.expense_id = expense_id


class NotFoundError(WorkflowError):
    """Raised when an expense or approval rule does not exist for the tenant."""

    code = "not_found"


class InvalidTransitionError(WorkflowError):
    """Raised when an action is attempted on an expense in a terminal state."""

    code = "invalid_transition"

    def __init__(self, message: str, *, from_state: str, action: str, expense_id: Optional[UUID] = None):
        super().__init__(message, expense_id=expense_id)
        self.from_state = from_state
        self.action = action


class ConfigurationError(WorkflowError):
    """Raised when a rule has no usable roster or an invalid threshold."""

    code = "configuration_error"


class NotCurrentApproverError(WorkflowError):
    """Raised when the actor is not entitled to act at the current step."""

    code = "not_current_approver"

    def __init__(self, actor_id: UUID, *, step: int, expense_id: Optional[UUID] = None):
        super().__init__(
            f"User {actor_id} is not the approver at step {step}",
            expense_id=expense_id,
        )
        self.actor_id = actor_id
        self.step = step


class StorageConflictError(WorkflowError):
    """Raised on a transient transaction conflict. Safe for the caller to retry."""

    code = "storage_conflict"
