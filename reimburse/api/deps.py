from typing import Generator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from reimburse.core.roles import Role
from reimburse.core.security import decode_token
from reimburse.core.workflow import ExpenseStateController, WorkflowError
from reimburse.db.models import User
from reimburse.db.session import SessionLocal

bearer_scheme = HTTPBearer(auto_error=False)

# HTTP status for each workflow error code
WORKFLOW_ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "configuration_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_current_approver": status.HTTP_403_FORBIDDEN,
    "storage_conflict": status.HTTP_409_CONFLICT,
}


def get_db() -> Generator:
    """Database session dependency.

    Closing the session rolls back whatever the request left uncommitted,
    including when the client goes away mid-request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Get the current user from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise credentials_exception

    user_id = decode_token(credentials.credentials)
    if not user_id:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise credentials_exception

    return user


def require_role(*roles: Role):
    """
    Dependency factory admitting only users holding one of ``roles``.

    Usage:
        @router.post("/approval-rules")
        def create_rule(current_user: User = Depends(require_role(Role.ADMIN))):
            ...
    """
    allowed = {Role(r).value for r in roles}

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient role. Required: {', '.join(sorted(allowed))}",
            )
        return current_user

    return checker


def get_controller(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ExpenseStateController:
    """Workflow controller scoped to the current user's company."""
    return ExpenseStateController(db, current_user.company_id)


def workflow_http_error(error: WorkflowError) -> HTTPException:
    """Translate a workflow error into the matching HTTP failure."""
    headers = {"Retry-After": "1"} if error.code == "storage_conflict" else None
    return HTTPException(
        status_code=WORKFLOW_ERROR_STATUS.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail={"error": error.code, "message": str(error)},
        headers=headers,
    )
