"""Settlement calculator - derives status and balance from payment history"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from branch_expenses.domain.exceptions import (
    InvalidExpenseAmountError,
    InvalidPaymentAmountError,
    OverpaymentError,
)
from branch_expenses.domain.models import Expense, ExpenseStatus, Payment, SettlementState
from branch_expenses.utils.date_utils import days_between

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def derive_status(amount: Decimal, total_paid: Decimal, due_date: date, today: date) -> ExpenseStatus:
    """
    Map (amount, total paid, due date, today) to a settlement status.

    - PAID once total paid covers the amount, whatever the date
    - OVERDUE when unpaid and the due date is strictly before today
    - PENDING otherwise (due today or later)
    """
    if total_paid >= amount:
        return ExpenseStatus.PAID

    if days_between(today, due_date) < 0:
        return ExpenseStatus.OVERDUE

    return ExpenseStatus.PENDING


def compute_settlement(
    amount: Decimal,
    payment_amounts: Iterable[Decimal],
    due_date: date,
    today: date,
) -> SettlementState:
    """
    Compute total paid, remaining balance, status and days-to-due.

    Pure: callers validate amounts before payments are recorded, so no
    checks happen here. Money values come back at cent scale.
    """
    total_paid = sum((Decimal(p) for p in payment_amounts), ZERO).quantize(CENTS)
    balance = (Decimal(amount) - total_paid).quantize(CENTS)

    return SettlementState(
        total_paid=total_paid,
        balance_remaining=balance if balance > ZERO else ZERO.quantize(CENTS),
        status=derive_status(Decimal(amount), total_paid, due_date, today),
        days_to_due=days_between(today, due_date),
    )


def recompute(expense: Expense, payments: Iterable[Payment], today: date) -> SettlementState:
    """Settlement projection of `expense` to persist after any payment mutation"""
    return compute_settlement(
        expense.amount,
        (p.amount_paid for p in payments),
        expense.due_date,
        today,
    )


def validate_expense_amount(amount: Decimal) -> Decimal:
    if amount < ZERO:
        raise InvalidExpenseAmountError(f"Expense amount must be >= 0, got {amount}")
    return amount


def validate_payment(amount: Decimal, total_paid_before: Decimal, requested: Decimal) -> Decimal:
    """
    Check a payment against the running total and return the new total.

    Raises:
        InvalidPaymentAmountError: requested amount is not positive
        OverpaymentError: new total would exceed the expense amount
    """
    if requested <= ZERO:
        raise InvalidPaymentAmountError("amount_paid must be greater than 0")

    total_after = total_paid_before + requested
    if total_after > amount:
        raise OverpaymentError(
            f"Overpayment not allowed: {total_after} exceeds expense amount {amount}"
        )

    return total_after
