"""Payment endpoints - apply, list and remove payments against expenses"""

import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from branch_expenses.api.dependencies import get_business_today, get_request_id
from branch_expenses.api.v1.expenses import build_expense_response
from branch_expenses.api.v1.schemas import PaymentCreateRequest, PaymentCreateResponse, PaymentResponse
from branch_expenses.domain.exceptions import (
    ExpenseNotFoundError,
    InvalidPaymentAmountError,
    OverpaymentError,
    PaymentNotFoundError,
)
from branch_expenses.infrastructure.database.repositories import PaymentRepository
from branch_expenses.infrastructure.database.session import get_db
from branch_expenses.infrastructure.observability.metrics import (
    payments_applied_counter,
    payments_rejected_counter,
)

router = APIRouter()


@router.post("/expenses/{expense_id}/payments", response_model=PaymentCreateResponse, status_code=201)
def create_payment(
    expense_id: int,
    request_body: PaymentCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """
    Apply a payment to an expense.

    Flow:
    1. Lock the expense row
    2. Reject non-positive amounts and overpayment against the running total
    3. Record the payment and re-derive the expense status
    """
    request_id = get_request_id(request)

    try:
        payment, state = PaymentRepository(db).apply_payment(
            expense_id=expense_id,
            paid_date=request_body.paid_date,
            amount_paid=request_body.amount_paid,
            today=today,
            currency=request_body.currency,
            reference=request_body.reference,
            notes=request_body.notes,
            created_by=request_body.created_by,
        )
        db.commit()
        db.refresh(payment)

        payments_applied_counter.labels(resulting_status=state.status.value).inc()
        logging.info(
            "Payment applied",
            extra={
                "request_id": request_id,
                "expense_id": expense_id,
                "payment_id": payment.id,
                "resulting_status": state.status.value,
            },
        )

        return PaymentCreateResponse(
            payment=PaymentResponse.model_validate(payment),
            expense=build_expense_response(payment.expense, today),
        )

    except ExpenseNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except InvalidPaymentAmountError as e:
        db.rollback()
        payments_rejected_counter.labels(reason="invalid_amount").inc()
        logging.warning(f"Invalid payment amount: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except OverpaymentError as e:
        db.rollback()
        payments_rejected_counter.labels(reason="overpayment").inc()
        logging.warning(f"Overpayment rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/expenses/{expense_id}/payments", response_model=List[PaymentResponse])
def list_payments(expense_id: int, db: Session = Depends(get_db)):
    """Payments for an expense, newest first"""
    try:
        payments = PaymentRepository(db).list_for_expense(expense_id)
    except ExpenseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [PaymentResponse.model_validate(p) for p in payments]


@router.delete("/payments/{payment_id}", status_code=204)
def delete_payment(
    payment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    """Remove a payment; the owning expense's status is recomputed"""
    request_id = get_request_id(request)
    try:
        state = PaymentRepository(db).delete_payment(payment_id, today)
        db.commit()
    except PaymentNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    logging.info(
        "Payment deleted",
        extra={"request_id": request_id, "payment_id": payment_id, "resulting_status": state.status.value},
    )
    return Response(status_code=204)
