"""Unit tests for alert rule matching and evaluation"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from branch_expenses.domain.alerts import (
    describe_rule,
    does_rule_match,
    evaluate_alerts,
    evaluate_alerts_now,
    generate_alert_key,
    is_expense_eligible,
)
from branch_expenses.domain.models import (
    AlertRule,
    AlertRuleType,
    Expense,
    ExpenseStatus,
    ExpenseType,
    Payment,
    SettlementState,
)


def make_expense(**overrides) -> Expense:
    fields = dict(
        id=1,
        branch_id=1,
        expense_type=ExpenseType.RENT,
        period="2026-02",
        due_date=date(2026, 2, 27),
        amount=Decimal("1000"),
        status=ExpenseStatus.PENDING,
    )
    fields.update(overrides)
    return Expense(**fields)


def make_rule(**overrides) -> AlertRule:
    fields = dict(id=1, rule_type=AlertRuleType.DUE_REMINDER, day_offset=-7, is_active=True)
    fields.update(overrides)
    return AlertRule(**fields)


def make_state(status: ExpenseStatus, balance: str, days_to_due: int = 7) -> SettlementState:
    return SettlementState(
        total_paid=Decimal("1000") - Decimal(balance),
        balance_remaining=Decimal(balance),
        status=status,
        days_to_due=days_to_due,
    )


def test_generate_alert_key():
    assert generate_alert_key(100, 1, "2026-02-20") == "100:1:2026-02-20"


def test_generate_alert_key_is_stable():
    keys = {generate_alert_key(100, 1, "2026-02-20") for _ in range(5)}
    assert keys == {"100:1:2026-02-20"}


def test_eligible_when_unpaid_with_balance():
    assert is_expense_eligible(make_state(ExpenseStatus.PENDING, "500"))
    assert is_expense_eligible(make_state(ExpenseStatus.OVERDUE, "500"))


def test_not_eligible_when_paid():
    assert not is_expense_eligible(make_state(ExpenseStatus.PAID, "0"))


def test_not_eligible_with_zero_balance():
    """A zero balance is never eligible, even if status has not caught up"""
    assert not is_expense_eligible(make_state(ExpenseStatus.PENDING, "0"))


@pytest.mark.parametrize("days_to_due,expected", [(7, True), (6, False), (8, False), (-7, False), (0, False)])
def test_due_reminder_matches_exact_day_before_due(days_to_due, expected):
    rule = make_rule(rule_type=AlertRuleType.DUE_REMINDER, day_offset=-7)
    assert does_rule_match(rule, days_to_due) is expected


def test_due_reminder_with_zero_offset_never_fires_on_due_date():
    rule = make_rule(rule_type=AlertRuleType.DUE_REMINDER, day_offset=0)
    assert not does_rule_match(rule, 0)


@pytest.mark.parametrize("days_to_due,expected", [(-1, True), (0, False), (1, False), (-2, False)])
def test_overdue_escalation_matches_exact_day_after_due(days_to_due, expected):
    rule = make_rule(rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=1)
    assert does_rule_match(rule, days_to_due) is expected


def test_inactive_rule_never_matches():
    for rule_type, days in [(AlertRuleType.DUE_REMINDER, 7), (AlertRuleType.OVERDUE_ESCALATION, -7)]:
        rule = make_rule(rule_type=rule_type, day_offset=-7 if days > 0 else 7, is_active=False)
        assert not does_rule_match(rule, days)


def test_unknown_rule_type_fails_closed():
    rule = make_rule(rule_type="WEEKLY_DIGEST", day_offset=-7)
    assert not does_rule_match(rule, 7)
    assert not does_rule_match(rule, -7)


def test_rule_type_given_as_plain_string_still_matches():
    rule = make_rule(rule_type="DUE_REMINDER", day_offset=-3)
    assert does_rule_match(rule, 3)


def test_evaluate_reminder_seven_days_before_due():
    today = date(2026, 2, 20)
    expenses = [make_expense(id=100, due_date=date(2026, 2, 27))]
    rules = [
        make_rule(id=1, rule_type=AlertRuleType.DUE_REMINDER, day_offset=-7),
        make_rule(id=2, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=1),
    ]

    result = evaluate_alerts(today, expenses, rules)

    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.expense_id == 100
    assert candidate.rule_id == 1
    assert candidate.rule_type == AlertRuleType.DUE_REMINDER
    assert candidate.days_to_due == 7
    assert candidate.trigger_date == "2026-02-20"
    assert candidate.alert_key == "100:1:2026-02-20"
    assert candidate.balance_remaining == Decimal("1000")
    assert result.evaluation_date == "2026-02-20"
    assert result.timezone == "UTC+02:00"


def test_evaluate_escalation_one_day_overdue():
    today = date(2026, 2, 21)
    expenses = [make_expense(id=200, due_date=date(2026, 2, 20), status=ExpenseStatus.OVERDUE)]
    rules = [make_rule(id=10, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=1)]

    result = evaluate_alerts(today, expenses, rules)

    assert len(result.candidates) == 1
    assert result.candidates[0].expense_id == 200
    assert result.candidates[0].rule_type == AlertRuleType.OVERDUE_ESCALATION
    assert result.candidates[0].days_to_due == -1


def test_evaluate_no_matching_rule_still_counts_eligible():
    today = date(2026, 2, 20)
    expenses = [make_expense(due_date=date(2026, 2, 25))]

    result = evaluate_alerts(today, expenses, [make_rule(day_offset=-7)])

    assert result.candidates == []
    assert result.eligible_expense_count == 1
    assert result.total_expenses_evaluated == 1


def test_evaluate_picks_only_matching_escalation_tier():
    today = date(2026, 2, 28)
    expenses = [make_expense(id=300, due_date=date(2026, 2, 21))]
    rules = [
        make_rule(id=1, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=1),
        make_rule(id=2, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=7),
        make_rule(id=3, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=14),
    ]

    result = evaluate_alerts(today, expenses, rules)

    assert [c.rule_id for c in result.candidates] == [2]


def test_evaluate_skips_fully_paid_expense_even_if_rule_matches():
    today = date(2026, 2, 20)
    expense = make_expense(
        due_date=date(2026, 2, 27),
        payments=[Payment(id=1, expense_id=1, paid_date=today, amount_paid=Decimal("1000"))],
    )

    result = evaluate_alerts(today, [expense], [make_rule(day_offset=-7)])

    assert result.candidates == []
    assert result.eligible_expense_count == 0


def test_evaluate_uses_live_balance_not_stored_status():
    """Stale stored status in either direction does not change eligibility"""
    today = date(2026, 2, 20)
    stale_paid = make_expense(id=1, status=ExpenseStatus.PAID)  # no payments at all
    stale_pending = make_expense(
        id=2,
        status=ExpenseStatus.PENDING,
        payments=[Payment(id=9, expense_id=2, paid_date=today, amount_paid=Decimal("1000"))],
    )

    result = evaluate_alerts(today, [stale_paid, stale_pending], [make_rule(id=5, day_offset=-7)])

    assert [c.expense_id for c in result.candidates] == [1]
    assert result.eligible_expense_count == 1


def test_evaluate_partial_payment_reports_remaining_balance():
    today = date(2026, 2, 20)
    expense = make_expense(
        payments=[Payment(id=1, expense_id=1, paid_date=today, amount_paid=Decimal("250.50"))],
    )

    result = evaluate_alerts(today, [expense], [make_rule(day_offset=-7)])

    assert result.candidates[0].balance_remaining == Decimal("749.50")


def test_evaluate_ignores_inactive_rules():
    today = date(2026, 2, 20)
    result = evaluate_alerts(today, [make_expense()], [make_rule(is_active=False)])
    assert result.candidates == []


def test_evaluate_many_expenses_and_rules_in_input_order():
    today = date(2026, 2, 20)
    expenses = [
        make_expense(id=1, due_date=date(2026, 2, 27)),  # 7 days away
        make_expense(id=2, due_date=date(2026, 2, 23)),  # 3 days away
        make_expense(id=3, due_date=date(2026, 2, 21)),  # 1 day away
        make_expense(id=4, due_date=date(2026, 2, 19)),  # 1 day overdue
    ]
    rules = [
        make_rule(id=1, rule_type=AlertRuleType.DUE_REMINDER, day_offset=-7),
        make_rule(id=2, rule_type=AlertRuleType.DUE_REMINDER, day_offset=-3),
        make_rule(id=3, rule_type=AlertRuleType.DUE_REMINDER, day_offset=-1),
        make_rule(id=4, rule_type=AlertRuleType.OVERDUE_ESCALATION, day_offset=1),
    ]

    result = evaluate_alerts(today, expenses, rules)

    assert [(c.expense_id, c.rule_id) for c in result.candidates] == [(1, 1), (2, 2), (3, 3), (4, 4)]
    assert result.eligible_expense_count == 4
    assert result.total_expenses_evaluated == 4


def test_evaluate_same_expense_matches_duplicate_offset_rules():
    """Two rules with the same offset each produce their own candidate"""
    today = date(2026, 2, 20)
    rules = [make_rule(id=1, day_offset=-7), make_rule(id=2, day_offset=7)]

    result = evaluate_alerts(today, [make_expense(id=42)], rules)

    assert [c.alert_key for c in result.candidates] == ["42:1:2026-02-20", "42:2:2026-02-20"]


def test_evaluate_is_repeatable():
    today = date(2026, 2, 20)
    expenses = [make_expense(id=7)]
    rules = [make_rule(id=3)]

    first = evaluate_alerts(today, expenses, rules)
    second = evaluate_alerts(today, expenses, rules)

    assert first == second


def test_evaluate_now_uses_business_day():
    """23:00 UTC on Feb 20 is already Feb 21 at UTC+2"""
    now = datetime(2026, 2, 20, 23, 0, tzinfo=timezone.utc)
    expenses = [make_expense(id=5, due_date=date(2026, 2, 28))]

    result = evaluate_alerts_now(expenses, [make_rule(id=1, day_offset=-7)], now=now)

    assert result.evaluation_date == "2026-02-21"
    assert result.candidates[0].alert_key == "5:1:2026-02-21"


@pytest.mark.parametrize(
    "rule_type,day_offset,expected",
    [
        ("DUE_REMINDER", -7, "7 days before due"),
        ("DUE_REMINDER", -1, "1 day before due"),
        ("OVERDUE_ESCALATION", 14, "14 days overdue"),
        ("WEEKLY_DIGEST", 3, "WEEKLY_DIGEST (offset: 3)"),
    ],
)
def test_describe_rule(rule_type, day_offset, expected):
    assert describe_rule(rule_type, day_offset) == expected
