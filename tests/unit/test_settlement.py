"""Unit tests for settlement status and payment validation"""

import pytest
from datetime import date
from decimal import Decimal
from branch_expenses.domain.exceptions import (
    InvalidExpenseAmountError,
    InvalidPaymentAmountError,
    OverpaymentError,
)
from branch_expenses.domain.models import Expense, ExpenseStatus, ExpenseType, Payment
from branch_expenses.domain.settlement import (
    compute_settlement,
    recompute,
    validate_expense_amount,
    validate_payment,
)

TODAY = date(2026, 2, 20)


def test_unpaid_future_expense_is_pending():
    state = compute_settlement(Decimal("1000"), [], date(2026, 2, 27), TODAY)

    assert state.status == ExpenseStatus.PENDING
    assert state.total_paid == Decimal("0")
    assert state.balance_remaining == Decimal("1000")
    assert state.days_to_due == 7


def test_due_today_is_pending_not_overdue():
    state = compute_settlement(Decimal("1000"), [Decimal("400")], TODAY, TODAY)

    assert state.status == ExpenseStatus.PENDING
    assert state.days_to_due == 0


def test_past_due_partially_paid_is_overdue():
    state = compute_settlement(Decimal("1000"), [Decimal("250"), Decimal("250")], date(2026, 2, 19), TODAY)

    assert state.status == ExpenseStatus.OVERDUE
    assert state.total_paid == Decimal("500")
    assert state.balance_remaining == Decimal("500")
    assert state.days_to_due == -1


def test_fully_paid_is_paid_regardless_of_date():
    """PAID sticks even long after the due date"""
    past = compute_settlement(Decimal("1000"), [Decimal("1000")], date(2025, 12, 1), TODAY)
    future = compute_settlement(Decimal("1000"), [Decimal("600"), Decimal("400")], date(2026, 3, 1), TODAY)

    assert past.status == ExpenseStatus.PAID
    assert future.status == ExpenseStatus.PAID
    assert past.balance_remaining == Decimal("0")


def test_balance_is_clamped_at_zero():
    """Amount lowered below what was already paid never shows a negative balance"""
    state = compute_settlement(Decimal("800"), [Decimal("1000")], date(2026, 2, 27), TODAY)

    assert state.balance_remaining == Decimal("0")
    assert state.status == ExpenseStatus.PAID


def test_zero_amount_expense_is_paid():
    state = compute_settlement(Decimal("0"), [], date(2026, 2, 1), TODAY)
    assert state.status == ExpenseStatus.PAID
    assert state.balance_remaining == Decimal("0")


def test_cents_are_exact():
    state = compute_settlement(Decimal("100.03"), [Decimal("33.01"), Decimal("33.01"), Decimal("34.01")], TODAY, TODAY)
    assert state.total_paid == Decimal("100.03")
    assert state.status == ExpenseStatus.PAID


def test_recompute_ignores_stored_status():
    expense = Expense(
        id=1,
        branch_id=1,
        expense_type=ExpenseType.RENT,
        period="2026-02",
        due_date=date(2026, 2, 10),
        amount=Decimal("1000"),
        status=ExpenseStatus.PAID,  # stale
    )
    payments = [Payment(id=1, expense_id=1, paid_date=date(2026, 2, 5), amount_paid=Decimal("100"))]

    state = recompute(expense, payments, TODAY)

    assert state.status == ExpenseStatus.OVERDUE
    assert state.balance_remaining == Decimal("900")


def test_validate_payment_returns_new_total():
    assert validate_payment(Decimal("1000"), Decimal("400"), Decimal("600")) == Decimal("1000")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
def test_validate_payment_rejects_non_positive(amount):
    with pytest.raises(InvalidPaymentAmountError):
        validate_payment(Decimal("1000"), Decimal("0"), amount)


def test_validate_payment_rejects_overpayment():
    with pytest.raises(OverpaymentError):
        validate_payment(Decimal("1000"), Decimal("900"), Decimal("100.01"))


def test_validate_expense_amount():
    assert validate_expense_amount(Decimal("0")) == Decimal("0")
    with pytest.raises(InvalidExpenseAmountError):
        validate_expense_amount(Decimal("-1"))


def test_money_values_use_cent_scale():
    state = compute_settlement(Decimal("100.00"), [], date(2026, 2, 27), TODAY)
    assert str(state.total_paid) == "0.00"
    assert str(state.balance_remaining) == "100.00"

    settled = compute_settlement(Decimal("100"), [Decimal("100")], date(2026, 2, 27), TODAY)
    assert str(settled.balance_remaining) == "0.00"
