"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from branch_expenses.domain.models import AlertRuleType, AlertSendStatus, ExpenseStatus, ExpenseType

PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
CURRENCY_PATTERN = r"^[A-Z]{3}$"


class ExpenseCreateRequest(BaseModel):
    """Request body for POST /v1/expenses"""

    branch_id: int = Field(..., gt=0)
    expense_type: ExpenseType
    period: str = Field(..., pattern=PERIOD_PATTERN, description="Billing period YYYY-MM")
    due_date: date
    amount: Decimal = Field(..., ge=0, max_digits=18, decimal_places=2)
    currency: str = Field("USD", pattern=CURRENCY_PATTERN)
    vendor: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = Field(None, max_length=500)
    created_by: Optional[str] = Field(None, max_length=120)


class ExpenseUpdateRequest(BaseModel):
    """Request body for PATCH /v1/expenses/{expense_id}; omitted fields are unchanged"""

    expense_type: Optional[ExpenseType] = None
    period: Optional[str] = Field(None, pattern=PERIOD_PATTERN)
    due_date: Optional[date] = None
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=18, decimal_places=2)
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    vendor: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = Field(None, max_length=500)


class PaymentCreateRequest(BaseModel):
    """Request body for POST /v1/expenses/{expense_id}/payments"""

    paid_date: date
    # Positivity is checked by the domain so the rejection path is shared with other callers
    amount_paid: Decimal = Field(..., max_digits=18, decimal_places=2)
    currency: str = Field("USD", pattern=CURRENCY_PATTERN)
    reference: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = Field(None, max_length=300)
    created_by: Optional[str] = Field(None, max_length=120)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: int
    paid_date: date
    amount_paid: Decimal
    currency: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


class ExpenseResponse(BaseModel):
    """Expense with its live settlement projection"""

    id: int
    branch_id: int
    expense_type: ExpenseType
    period: str
    due_date: date
    amount: Decimal
    currency: str
    status: ExpenseStatus
    vendor: Optional[str] = None
    notes: Optional[str] = None
    total_paid: Decimal
    balance_remaining: Decimal
    days_to_due: int
    is_overdue: bool


class ExpenseDetailResponse(ExpenseResponse):
    payments: List[PaymentResponse]


class PaymentCreateResponse(BaseModel):
    payment: PaymentResponse
    expense: ExpenseResponse


class AlertCandidateSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    trigger_date: str
    days_to_due: int


class AlertPreviewResponse(BaseModel):
    """Response for GET /v1/alerts/preview"""

    evaluation_date: str
    timezone: str
    total_expenses_evaluated: int
    eligible_expense_count: int
    candidates: List[AlertCandidateSchema]


class AlertRunResponse(BaseModel):
    """Response for POST /v1/alerts/run"""

    executed: bool
    evaluation_date: Optional[str] = None
    total_candidates: int = 0
    sent_count: int = 0
    failed_count: int = 0
    skipped_already_sent: int = 0
    skipped_no_recipients: int = 0
    errors: List[str] = []


class ExpenseListResponse(BaseModel):
    """Response for GET /v1/expenses"""

    items: List[ExpenseResponse]
    page: int
    page_size: int
    total: int


class AlertLogBranchSummary(BaseModel):
    id: int
    display_name: str
    city: str
    label: str


class AlertLogExpenseSummary(BaseModel):
    id: int
    expense_type: ExpenseType
    period: str
    due_date: date
    amount: Decimal
    balance_remaining: Decimal
    status: ExpenseStatus


class AlertLogRuleSummary(BaseModel):
    rule_id: int
    rule_type: str
    day_offset: int
    description: str


class AlertLogResponse(BaseModel):
    id: int
    alert_key: str
    trigger_date: date
    branch: AlertLogBranchSummary
    expense: AlertLogExpenseSummary
    rule: AlertLogRuleSummary
    sent_to: str
    sent_at: datetime
    status: AlertSendStatus
    error_message: Optional[str] = None


class AlertLogListResponse(BaseModel):
    """Response for GET /v1/alerts/logs"""

    items: List[AlertLogResponse]
    page: int
    page_size: int
    total: int


class AlertStatsResponse(BaseModel):
    total_sent: int
    total_failed: int
    sent_today: int
    sent_this_week: int


class ScheduledJobSchema(BaseModel):
    id: str
    trigger: str


class ScheduledJobsResponse(BaseModel):
    jobs: List[ScheduledJobSchema]


class RecipientCreateRequest(BaseModel):
    """Request body for POST /v1/branches/{branch_id}/recipients"""

    email: str = Field(..., max_length=190)
    name: Optional[str] = Field(None, max_length=120)
    is_active: bool = True


class RecipientUpdateRequest(BaseModel):
    """Request body for PATCH /v1/recipients/{recipient_id}"""

    email: Optional[str] = Field(None, max_length=190)
    name: Optional[str] = Field(None, max_length=120)
    is_active: Optional[bool] = None


class RecipientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    email: str
    name: Optional[str] = None
    is_active: bool
