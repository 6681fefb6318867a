"""Expense submission and approval endpoints.

Endpoints are plain functions so they run in the worker threadpool: a
request blocked on one expense's row lock never stalls other expenses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from reimburse.api.deps import get_controller, get_current_user, get_db, workflow_http_error
from reimburse.core.roles import Role
from reimburse.core.workflow import (
    ActionResult,
    ApprovalAction,
    ExpenseStateController,
    ExpenseStatus,
    TERMINAL_STATES,
    WorkflowError,
)
from reimburse.core.workflow.states import available_actions
from reimburse.db.models import Expense, User

router = APIRouter(prefix="/expenses", tags=["expenses"])


# Schemas
class ExpenseCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency_code: str = Field(..., min_length=3, max_length=3)
    description: str = Field(..., min_length=1)
    expense_date: date
    merchant_name: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    approval_rule_id: Optional[UUID] = None


class ExpenseUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = Field(None, min_length=1)
    expense_date: Optional[date] = None
    merchant_name: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: UUID
    company_id: UUID
    submitter_id: UUID
    approval_rule_id: Optional[UUID]
    amount: Decimal
    currency_code: str
    description: str
    expense_date: date
    merchant_name: Optional[str]
    notes: Optional[str]
    status: str
    current_approval_step: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExpenseDetailResponse(ExpenseResponse):
    next_approver_id: Optional[UUID] = None
    available_actions: List[str] = []


class ExpenseListResponse(BaseModel):
    items: List[ExpenseResponse]
    total: int


class ApprovalActionRequest(BaseModel):
    comment: Optional[str] = None


class ActionResultResponse(BaseModel):
    expense_id: UUID
    status: str
    current_step: int
    message: str
    next_approver_id: Optional[UUID] = None
    approval_percentage: Optional[float] = None


class ApprovalHistoryResponse(BaseModel):
    id: UUID
    approver_id: UUID
    approver_name: Optional[str]
    action: str
    step_number: int
    comment: Optional[str]
    timestamp: datetime


def _result_response(result: ActionResult) -> ActionResultResponse:
    return ActionResultResponse(
        expense_id=result.expense_id,
        status=result.status.value,
        current_step=result.current_step,
        message=result.message,
        next_approver_id=result.next_approver_id,
        approval_percentage=result.approval_percentage,
    )


# Endpoints
@router.post("", response_model=ActionResultResponse, status_code=status.HTTP_201_CREATED)
def submit_expense(
    data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Create an expense and start its approval workflow."""
    expense = Expense(
        company_id=current_user.company_id,
        submitter_id=current_user.id,
        amount=data.amount,
        currency_code=data.currency_code.upper(),
        description=data.description,
        expense_date=data.expense_date,
        merchant_name=data.merchant_name,
        notes=data.notes,
    )

    try:
        result = controller.submit(expense, data.approval_rule_id)
    except WorkflowError as e:
        raise workflow_http_error(e)

    return _result_response(result)


@router.get("", response_model=ExpenseListResponse)
def list_expenses(
    expense_status: Optional[ExpenseStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List expenses of the current company, newest first.

    Employees only see the expenses they submitted.
    """
    query = db.query(Expense).filter(Expense.company_id == current_user.company_id)

    if current_user.role == Role.EMPLOYEE.value:
        query = query.filter(Expense.submitter_id == current_user.id)
    if expense_status:
        query = query.filter(Expense.status == expense_status.value)
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)

    expenses = query.order_by(Expense.created_at.desc()).all()

    return ExpenseListResponse(
        items=[ExpenseResponse.model_validate(e) for e in expenses],
        total=len(expenses),
    )


@router.get("/pending-approvals", response_model=ExpenseListResponse)
def list_pending_approvals(
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """List expenses waiting on the current user's decision."""
    try:
        expenses = controller.pending_for(current_user.id)
    except WorkflowError as e:
        raise workflow_http_error(e)

    return ExpenseListResponse(
        items=[ExpenseResponse.model_validate(e) for e in expenses],
        total=len(expenses),
    )


@router.get("/{expense_id}", response_model=ExpenseDetailResponse)
def get_expense(
    expense_id: UUID,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Get an expense with its next approver."""
    try:
        expense = controller.get_expense(expense_id)
        expense_status = ExpenseStatus(expense.status)
        next_approver_id = None
        if expense_status not in TERMINAL_STATES:
            next_approver_id = controller.roster_for(expense).occupant(expense.current_approval_step)
    except WorkflowError as e:
        raise workflow_http_error(e)

    response = ExpenseDetailResponse.model_validate(expense)
    response.next_approver_id = next_approver_id
    response.available_actions = [a.value for a in available_actions(expense_status)]
    return response


@router.put("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: UUID,
    data: ExpenseUpdate,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Edit the claim details of an expense while it is still pending."""
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "currency_code" in changes:
        changes["currency_code"] = changes["currency_code"].upper()

    try:
        expense = controller.update_claim(expense_id, current_user.id, changes)
    except WorkflowError as e:
        raise workflow_http_error(e)

    return ExpenseResponse.model_validate(expense)


@router.get("/{expense_id}/history", response_model=List[ApprovalHistoryResponse])
def get_expense_history(
    expense_id: UUID,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Get the approval ledger of an expense, oldest first."""
    try:
        entries = controller.history(expense_id)
    except WorkflowError as e:
        raise workflow_http_error(e)

    return [
        ApprovalHistoryResponse(
            id=entry.id,
            approver_id=entry.approver_id,
            approver_name=entry.approver_name,
            action=entry.action,
            step_number=entry.step_number,
            comment=entry.comment,
            timestamp=entry.timestamp,
        )
        for entry in entries
    ]


@router.post("/{expense_id}/approve", response_model=ActionResultResponse)
def approve_expense(
    expense_id: UUID,
    action: ApprovalActionRequest,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Approve an expense at its current step."""
    try:
        result = controller.record_action(
            expense_id, current_user.id, ApprovalAction.APPROVE, action.comment
        )
    except WorkflowError as e:
        raise workflow_http_error(e)

    return _result_response(result)


@router.post("/{expense_id}/reject", response_model=ActionResultResponse)
def reject_expense(
    expense_id: UUID,
    action: ApprovalActionRequest,
    current_user: User = Depends(get_current_user),
    controller: ExpenseStateController = Depends(get_controller),
):
    """Reject an expense. Ends the workflow."""
    if not action.comment:
        raise HTTPException(status_code=400, detail="Comment is required for rejections")

    try:
        result = controller.record_action(
            expense_id, current_user.id, ApprovalAction.REJECT, action.comment
        )
    except WorkflowError as e:
        raise workflow_http_error(e)

    return _result_response(result)
