"""Approval rule management API endpoints.

Plain configuration CRUD, restricted to admins. Rules are validated with the same checks the
workflow engine applies when it evaluates them.
"""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from sqlalchemy import and_

from reimburse.api.deps import get_db, require_role, workflow_http_error
from reimburse.core.roles import Role
from reimburse.core.workflow import ApproverEntry, PolicyKind, RuleSnapshot, WorkflowError
from reimburse.db.models import ApprovalRule, ApprovalRuleApprover, User

router = APIRouter(prefix="/approval-rules", tags=["approval-rules"])


# Schemas
class ApproverIn(BaseModel):
    user_id: UUID
    sequence_order: int = Field(..., ge=1)
    is_auto_approve: bool = False


class ApprovalRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    policy_kind: PolicyKind
    percentage_threshold: Optional[int] = Field(None, ge=1, le=100)
    requires_manager_approval: bool = True
    approvers: List[ApproverIn] = Field(default_factory=list)


class ApprovalRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    policy_kind: Optional[PolicyKind] = None
    percentage_threshold: Optional[int] = Field(None, ge=1, le=100)
    requires_manager_approval: Optional[bool] = None
    is_active: Optional[bool] = None
    approvers: Optional[List[ApproverIn]] = None


class ApproverResponse(BaseModel):
    id: UUID
    user_id: UUID
    sequence_order: int
    is_auto_approve: bool

    class Config:
        from_attributes = True


class ApprovalRuleResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    policy_kind: str
    percentage_threshold: Optional[int]
    requires_manager_approval: bool
    is_active: bool
    approvers: List[ApproverResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApprovalRuleListResponse(BaseModel):
    items: List[ApprovalRuleResponse]
    total: int


def _get_rule(db: Session, rule_id: UUID, company_id: UUID) -> ApprovalRule:
    rule = db.query(ApprovalRule).filter(
        and_(ApprovalRule.id == rule_id, ApprovalRule.company_id == company_id)
    ).first()

    if not rule:
        raise HTTPException(status_code=404, detail="Approval rule not found")
    return rule


def _validate(
    db: Session,
    company_id: UUID,
    name: str,
    policy_kind: PolicyKind,
    percentage_threshold: Optional[int],
    approvers: List[ApproverIn],
) -> None:
    """Reject rules the workflow engine could not evaluate."""
    snapshot = RuleSnapshot(
        rule_id=None,
        company_id=company_id,
        name=name,
        policy_kind=policy_kind,
        percentage_threshold=percentage_threshold,
        approvers=tuple(
            ApproverEntry(a.user_id, a.sequence_order, a.is_auto_approve) for a in approvers
        ),
    )
    try:
        snapshot.validate()
    except WorkflowError as e:
        raise workflow_http_error(e)

    user_ids = {a.user_id for a in approvers}
    if user_ids:
        found = db.query(User.id).filter(
            and_(User.id.in_(user_ids), User.company_id == company_id)
        ).count()
        if found != len(user_ids):
            raise HTTPException(status_code=400, detail="Approvers must be users of this company")


def _replace_approvers(rule: ApprovalRule, approvers: List[ApproverIn]) -> None:
    rule.approvers = [
        ApprovalRuleApprover(
            user_id=a.user_id,
            sequence_order=a.sequence_order,
            is_auto_approve=a.is_auto_approve,
        )
        for a in sorted(approvers, key=lambda a: a.sequence_order)
    ]


# Endpoints
@router.get("", response_model=ApprovalRuleListResponse)
def list_approval_rules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(Role.ADMIN)),
    include_inactive: bool = False,
):
    """List approval rules of the current company."""
    query = db.query(ApprovalRule).filter(ApprovalRule.company_id == current_user.company_id)

    if not include_inactive:
        query = query.filter(ApprovalRule.is_active == True)

    rules = query.order_by(ApprovalRule.created_at.desc()).all()

    return ApprovalRuleListResponse(
        items=[ApprovalRuleResponse.model_validate(r) for r in rules],
        total=len(rules),
    )


@router.get("/{rule_id}", response_model=ApprovalRuleResponse)
def get_approval_rule(
    rule_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    """Get a specific approval rule."""
    rule = _get_rule(db, rule_id, current_user.company_id)
    return ApprovalRuleResponse.model_validate(rule)


@router.post("", response_model=ApprovalRuleResponse, status_code=status.HTTP_201_CREATED)
def create_approval_rule(
    rule_data: ApprovalRuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    """Create an approval rule with its ordered approvers."""
    _validate(
        db,
        current_user.company_id,
        rule_data.name,
        rule_data.policy_kind,
        rule_data.percentage_threshold,
        rule_data.approvers,
    )

    rule = ApprovalRule(
        company_id=current_user.company_id,
        name=rule_data.name,
        policy_kind=rule_data.policy_kind.value,
        percentage_threshold=rule_data.percentage_threshold,
        requires_manager_approval=rule_data.requires_manager_approval,
    )
    _replace_approvers(rule, rule_data.approvers)
    db.add(rule)
    db.commit()
    db.refresh(rule)

    return ApprovalRuleResponse.model_validate(rule)


@router.put("/{rule_id}", response_model=ApprovalRuleResponse)
def update_approval_rule(
    rule_id: UUID,
    rule_data: ApprovalRuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    """
    Update an approval rule.

    A given approver list replaces the existing one. Expenses already in
    flight pick up the change on their next action.
    """
    rule = _get_rule(db, rule_id, current_user.company_id)

    policy_kind = rule_data.policy_kind or PolicyKind(rule.policy_kind)
    threshold = (
        rule_data.percentage_threshold
        if rule_data.percentage_threshold is not None
        else rule.percentage_threshold
    )
    approvers = rule_data.approvers
    if approvers is None:
        approvers = [
            ApproverIn(user_id=a.user_id, sequence_order=a.sequence_order, is_auto_approve=a.is_auto_approve)
            for a in rule.approvers
        ]

    _validate(db, current_user.company_id, rule_data.name or rule.name, policy_kind, threshold, approvers)

    if rule_data.name is not None:
        rule.name = rule_data.name
    rule.policy_kind = policy_kind.value
    rule.percentage_threshold = threshold
    if rule_data.requires_manager_approval is not None:
        rule.requires_manager_approval = rule_data.requires_manager_approval
    if rule_data.is_active is not None:
        rule.is_active = rule_data.is_active
    if rule_data.approvers is not None:
        rule.approvers.clear()
        db.flush()
        _replace_approvers(rule, rule_data.approvers)
    rule.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(rule)

    return ApprovalRuleResponse.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_approval_rule(
    rule_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    """Deactivate an approval rule. In-flight expenses keep evaluating against it."""
    rule = _get_rule(db, rule_id, current_user.company_id)
    rule.is_active = False
    rule.updated_at = datetime.utcnow()
    db.commit()
