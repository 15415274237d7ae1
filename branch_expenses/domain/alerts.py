"""Alert rule evaluation engine - decides which expenses notify today"""

from datetime import date, datetime
from typing import List, Sequence

from branch_expenses.domain.models import (
    AlertCandidate,
    AlertRule,
    AlertRuleType,
    EvaluationResult,
    Expense,
    ExpenseStatus,
    SettlementState,
)
from branch_expenses.domain.settlement import ZERO, recompute
from branch_expenses.utils.date_utils import (
    DEFAULT_OFFSET_MINUTES,
    format_date,
    timezone_label,
    today_in_business_tz,
)

KEY_DELIMITER = ":"


def generate_alert_key(expense_id: int, rule_id: int, trigger_date: str) -> str:
    """
    Stable dedupe key for one (expense, rule, day).

    Format: "{expense_id}:{rule_id}:{trigger_date}"
    """
    return KEY_DELIMITER.join((str(expense_id), str(rule_id), trigger_date))


def describe_rule(rule_type: str, day_offset: int) -> str:
    """Human label for a rule such as '7 days before due'"""
    days = abs(day_offset)
    unit = "day" if days == 1 else "days"
    if rule_type == AlertRuleType.DUE_REMINDER:
        return f"{days} {unit} before due"
    if rule_type == AlertRuleType.OVERDUE_ESCALATION:
        return f"{days} {unit} overdue"
    return f"{rule_type} (offset: {day_offset})"


def is_expense_eligible(state: SettlementState) -> bool:
    """
    Eligible for alerts when not paid and a positive balance remains.

    Works on the live settlement state; the stored status column may lag.
    """
    if state.status == ExpenseStatus.PAID:
        return False
    return state.balance_remaining > ZERO


def does_rule_match(rule: AlertRule, days_to_due: int) -> bool:
    """
    Exact-day match of a rule against an expense's days-to-due.

    - DUE_REMINDER(-7) matches only when the due date is 7 days away
    - OVERDUE_ESCALATION(1) matches only when the due date was 1 day ago
    - inactive rules and unknown rule types never match
    """
    if not rule.is_active:
        return False

    if rule.rule_type == AlertRuleType.DUE_REMINDER:
        return days_to_due > 0 and days_to_due == abs(rule.day_offset)

    if rule.rule_type == AlertRuleType.OVERDUE_ESCALATION:
        return days_to_due < 0 and days_to_due == -rule.day_offset

    return False


def evaluate_alerts(
    today: date,
    expenses: Sequence[Expense],
    rules: Sequence[AlertRule],
    timezone: str = timezone_label(DEFAULT_OFFSET_MINUTES),
) -> EvaluationResult:
    """
    One evaluation pass over all expenses and rules.

    Candidates come out in expense order, then rule order. Settlement is
    recomputed from each expense's payments, so the stored status never
    decides eligibility. No I/O.
    """
    trigger_date = format_date(today)
    active_rules = [rule for rule in rules if rule.is_active]

    candidates: List[AlertCandidate] = []
    eligible_count = 0

    for expense in expenses:
        state = recompute(expense, expense.payments, today)
        if not is_expense_eligible(state):
            continue

        eligible_count += 1

        for rule in active_rules:
            if not does_rule_match(rule, state.days_to_due):
                continue

            candidates.append(
                AlertCandidate(
                    alert_key=generate_alert_key(expense.id, rule.id, trigger_date),
                    expense_id=expense.id,
                    branch_id=expense.branch_id,
                    expense_type=expense.expense_type,
                    period=expense.period,
                    due_date=expense.due_date,
                    balance_remaining=state.balance_remaining,
                    rule_id=rule.id,
                    rule_type=AlertRuleType(rule.rule_type),
                    day_offset=rule.day_offset,
                    trigger_date=trigger_date,
                    days_to_due=state.days_to_due,
                )
            )

    return EvaluationResult(
        evaluation_date=trigger_date,
        timezone=timezone,
        total_expenses_evaluated=len(expenses),
        eligible_expense_count=eligible_count,
        candidates=candidates,
    )


def evaluate_alerts_now(
    expenses: Sequence[Expense],
    rules: Sequence[AlertRule],
    now: datetime | None = None,
    offset_minutes: int = DEFAULT_OFFSET_MINUTES,
) -> EvaluationResult:
    """Evaluate using the current business-zone day"""
    today = today_in_business_tz(now, offset_minutes)
    return evaluate_alerts(today, expenses, rules, timezone=timezone_label(offset_minutes))
