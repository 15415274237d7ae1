"""Expense endpoints - create, list, read, update and delete obligations"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from branch_expenses.api.dependencies import get_business_today, get_request_id
from branch_expenses.api.v1.schemas import (
    PERIOD_PATTERN,
    ExpenseCreateRequest,
    ExpenseDetailResponse,
    ExpenseListResponse,
    ExpenseResponse,
    ExpenseUpdateRequest,
    PaymentResponse,
)
from branch_expenses.domain.exceptions import (
    BranchNotFoundError,
    DuplicateExpenseError,
    ExpenseNotFoundError,
    InvalidExpenseAmountError,
)
from branch_expenses.domain.models import ExpenseStatus, ExpenseType
from branch_expenses.infrastructure.database.models import Expense
from branch_expenses.infrastructure.database.repositories import ExpenseRepository, settlement_for
from branch_expenses.infrastructure.database.session import get_db
from branch_expenses.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, get_pagination

router = APIRouter()


def build_expense_response(expense: Expense, today: date) -> ExpenseResponse:
    """Serialize an expense with status recomputed from its payments"""
    state = settlement_for(expense, today)
    return ExpenseResponse(
        id=expense.id,
        branch_id=expense.branch_id,
        expense_type=expense.expense_type,
        period=expense.period,
        due_date=expense.due_date,
        amount=expense.amount,
        currency=expense.currency,
        status=state.status,
        vendor=expense.vendor,
        notes=expense.notes,
        total_paid=state.total_paid,
        balance_remaining=state.balance_remaining,
        days_to_due=state.days_to_due,
        is_overdue=state.status == ExpenseStatus.OVERDUE,
    )


@router.post("/expenses", response_model=ExpenseResponse, status_code=201)
def create_expense(
    request_body: ExpenseCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """Create an expense; status is derived from the due date and zero payments"""
    request_id = get_request_id(request)
    try:
        expense = ExpenseRepository(db).create_expense(
            branch_id=request_body.branch_id,
            expense_type=request_body.expense_type,
            period=request_body.period,
            due_date=request_body.due_date,
            amount=request_body.amount,
            today=today,
            currency=request_body.currency,
            vendor=request_body.vendor,
            notes=request_body.notes,
            created_by=request_body.created_by,
        )
        db.commit()
        db.refresh(expense)
        logging.info("Expense created", extra={"request_id": request_id, "expense_id": expense.id})
        return build_expense_response(expense, today)

    except BranchNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except DuplicateExpenseError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except InvalidExpenseAmountError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/expenses/{expense_id}", response_model=ExpenseDetailResponse)
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """Expense detail with payments, newest first"""
    expense = ExpenseRepository(db).get_expense(expense_id)
    if expense is None:
        raise HTTPException(status_code=404, detail="Expense not found")

    base = build_expense_response(expense, today)
    return ExpenseDetailResponse(
        **base.model_dump(),
        payments=[PaymentResponse.model_validate(p) for p in expense.payments],
    )


@router.patch("/expenses/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int,
    request_body: ExpenseUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """Update expense fields and re-derive its status"""
    request_id = get_request_id(request)
    try:
        expense = ExpenseRepository(db).update_expense(
            expense_id,
            request_body.model_dump(exclude_unset=True),
            today,
        )
        db.commit()
        db.refresh(expense)
        logging.info("Expense updated", extra={"request_id": request_id, "expense_id": expense_id})
        return build_expense_response(expense, today)

    except ExpenseNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except DuplicateExpenseError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except InvalidExpenseAmountError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/expenses", response_model=ExpenseListResponse)
def list_expenses(
    branch_id: Optional[int] = Query(None),
    expense_type: Optional[ExpenseType] = Query(None),
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN),
    status: Optional[ExpenseStatus] = Query(None),
    due_from: Optional[date] = Query(None),
    due_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """Filtered, paginated expenses ordered by due date"""
    pagination = get_pagination(page, page_size)
    total, rows = ExpenseRepository(db).list_expenses(
        today,
        pagination,
        branch_id=branch_id,
        expense_type=expense_type,
        period=period,
        status=status,
        due_from=due_from,
        due_to=due_to,
    )
    return ExpenseListResponse(
        items=[build_expense_response(row, today) for row in rows],
        page=pagination.page,
        page_size=pagination.page_size,
        total=total,
    )


@router.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: int, request: Request, db: Session = Depends(get_db)):
    """Delete an expense with its payments and alert history"""
    try:
        ExpenseRepository(db).delete_expense(expense_id)
        db.commit()
    except ExpenseNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    logging.info("Expense deleted", extra={"request_id": get_request_id(request), "expense_id": expense_id})
    return Response(status_code=204)
