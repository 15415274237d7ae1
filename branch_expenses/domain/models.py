"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union


class ExpenseType(str, Enum):
    """Category of a branch obligation"""

    RENT = "RENT"
    UTILITY = "UTILITY"
    CONNECTIVITY = "CONNECTIVITY"
    OTHER = "OTHER"


class ExpenseStatus(str, Enum):
    """Settlement status of an expense"""

    PENDING = "PENDING"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


class AlertRuleType(str, Enum):
    """Kinds of alert rule understood by the matcher"""

    DUE_REMINDER = "DUE_REMINDER"
    OVERDUE_ESCALATION = "OVERDUE_ESCALATION"


class AlertSendStatus(str, Enum):
    """Outcome recorded in the alert log"""

    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class Payment:
    """Money applied against an expense"""

    id: int
    expense_id: int
    paid_date: date
    amount_paid: Decimal
    currency: str = "USD"
    reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Expense:
    """Branch obligation with its payment history"""

    id: int
    branch_id: int
    expense_type: ExpenseType
    period: str  # YYYY-MM
    due_date: date
    amount: Decimal
    currency: str = "USD"
    status: ExpenseStatus = ExpenseStatus.PENDING  # cached projection, never authoritative
    vendor: Optional[str] = None
    notes: Optional[str] = None
    payments: List[Payment] = field(default_factory=list)


@dataclass
class AlertRule:
    """When, relative to the due date, a notification fires"""

    id: int
    # str allowed so rows with unrecognized types reach the matcher and fail closed
    rule_type: Union[AlertRuleType, str]
    day_offset: int
    is_active: bool = True
    description: str = ""


@dataclass(frozen=True)
class SettlementState:
    """Derived settlement projection of one expense on one day"""

    total_paid: Decimal
    balance_remaining: Decimal
    status: ExpenseStatus
    days_to_due: int  # negative when overdue


@dataclass(frozen=True)
class AlertCandidate:
    """An (expense, rule) match for a single evaluation day"""

    alert_key: str
    expense_id: int
    branch_id: int
    expense_type: ExpenseType
    period: str
    due_date: date
    balance_remaining: Decimal
    rule_id: int
    rule_type: AlertRuleType
    day_offset: int
    trigger_date: str  # YYYY-MM-DD in business time zone
    days_to_due: int


@dataclass
class EvaluationResult:
    """Output of one evaluation pass"""

    evaluation_date: str
    timezone: str
    total_expenses_evaluated: int
    eligible_expense_count: int
    candidates: List[AlertCandidate] = field(default_factory=list)
