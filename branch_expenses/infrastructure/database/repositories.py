"""Data access layer for expenses, payments and alerting entities"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from branch_expenses.domain import models as domain
from branch_expenses.domain.exceptions import (
    BranchNotFoundError,
    DuplicateExpenseError,
    DuplicateRecipientError,
    ExpenseNotFoundError,
    InvalidEmailError,
    PaymentNotFoundError,
    RecipientNotFoundError,
)
from branch_expenses.domain.settlement import (
    ZERO,
    compute_settlement,
    validate_expense_amount,
    validate_payment,
)
from branch_expenses.infrastructure.database.models import (
    AlertLog,
    AlertRule,
    Branch,
    BranchRecipient,
    Expense,
    JobLock,
    Payment,
)
from branch_expenses.utils.pagination import Pagination

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 500
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

UPDATABLE_EXPENSE_FIELDS = ("expense_type", "period", "due_date", "amount", "currency", "vendor", "notes")
# Only these may be cleared with an explicit None
NULLABLE_EXPENSE_FIELDS = ("vendor", "notes")


def to_domain_payment(row: Payment) -> domain.Payment:
    return domain.Payment(
        id=row.id,
        expense_id=row.expense_id,
        paid_date=row.paid_date,
        amount_paid=Decimal(row.amount_paid),
        currency=row.currency,
        reference=row.reference,
        notes=row.notes,
    )


def to_domain_expense(row: Expense) -> domain.Expense:
    return domain.Expense(
        id=row.id,
        branch_id=row.branch_id,
        expense_type=domain.ExpenseType(row.expense_type),
        period=row.period,
        due_date=row.due_date,
        amount=Decimal(row.amount),
        currency=row.currency,
        status=domain.ExpenseStatus(row.status),
        vendor=row.vendor,
        notes=row.notes,
        payments=[to_domain_payment(p) for p in row.payments],
    )


def settlement_for(row: Expense, today: date) -> domain.SettlementState:
    """Live settlement projection of an ORM expense"""
    return compute_settlement(
        Decimal(row.amount),
        (Decimal(p.amount_paid) for p in row.payments),
        row.due_date,
        today,
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored here is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExpenseRepository:
    """Repository for expenses; keeps the cached status column in sync"""

    def __init__(self, db: Session):
        self.db = db

    def create_expense(
        self,
        branch_id: int,
        expense_type: domain.ExpenseType,
        period: str,
        due_date: date,
        amount: Decimal,
        today: date,
        currency: str = "USD",
        vendor: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Expense:
        """Persist a new expense with status derived from zero payments"""
        validate_expense_amount(amount)

        if self.db.get(Branch, branch_id) is None:
            raise BranchNotFoundError(f"Branch {branch_id} not found")

        duplicate = (
            self.db.query(Expense.id)
            .filter(
                Expense.branch_id == branch_id,
                Expense.expense_type == domain.ExpenseType(expense_type).value,
                Expense.period == period,
            )
            .first()
        )
        if duplicate:
            raise DuplicateExpenseError(
                f"Expense {expense_type} for period {period} already exists for branch {branch_id}"
            )

        state = compute_settlement(amount, [], due_date, today)
        db_expense = Expense(
            branch_id=branch_id,
            expense_type=domain.ExpenseType(expense_type).value,
            period=period,
            due_date=due_date,
            amount=amount,
            currency=currency,
            status=state.status.value,
            vendor=vendor,
            notes=notes,
            created_by=created_by,
        )
        self.db.add(db_expense)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise DuplicateExpenseError(f"Expense {expense_type} for period {period} already exists") from e
        return db_expense

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self.db.get(Expense, expense_id)

    def get_expense_or_raise(self, expense_id: int) -> Expense:
        expense = self.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def update_expense(self, expense_id: int, changes: Dict[str, Any], today: date) -> Expense:
        """
        Apply field changes, then re-derive status from payments.

        Keys absent from `changes` are left alone. None clears vendor and
        notes and is ignored for required fields.
        """
        expense = self.get_expense_or_raise(expense_id)

        for field_name in UPDATABLE_EXPENSE_FIELDS:
            if field_name not in changes:
                continue
            if changes[field_name] is None and field_name not in NULLABLE_EXPENSE_FIELDS:
                continue
            value = changes[field_name]
            if field_name == "amount":
                validate_expense_amount(value)
            if field_name == "expense_type":
                value = domain.ExpenseType(value).value
            setattr(expense, field_name, value)

        try:
            self.db.flush()
        except IntegrityError as e:
            raise DuplicateExpenseError("Another expense already uses this branch, type and period") from e

        self.refresh_status(expense, today)
        return expense

    def refresh_status(self, expense: Expense, today: date) -> domain.SettlementState:
        """Recompute settlement and write the status column when it changed"""
        state = settlement_for(expense, today)
        if expense.status != state.status.value:
            logger.info(
                "Expense status changed",
                extra={"expense_id": expense.id, "from_status": expense.status, "to_status": state.status.value},
            )
            expense.status = state.status.value
            self.db.flush()
        return state

    def list_for_evaluation(self, today: date, window_days: int) -> List[domain.Expense]:
        """
        Expenses due within `window_days` either side of today, with payments.

        Filters on due date only; the cached status is not trusted to exclude
        paid expenses.
        """
        range_start = today - timedelta(days=window_days)
        range_end = today + timedelta(days=window_days)
        rows = (
            self.db.query(Expense)
            .options(selectinload(Expense.payments))
            .filter(Expense.due_date >= range_start, Expense.due_date <= range_end)
            .order_by(Expense.due_date.asc(), Expense.id.asc())
            .all()
        )
        return [to_domain_expense(row) for row in rows]

    def list_expenses(
        self,
        today: date,
        pagination: Pagination,
        branch_id: Optional[int] = None,
        expense_type: Optional[domain.ExpenseType] = None,
        period: Optional[str] = None,
        status: Optional[domain.ExpenseStatus] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
    ) -> Tuple[int, List[Expense]]:
        """
        Filtered page of expenses ordered by due date.

        Status filters combine the stored PAID flag with the due date, so an
        unpaid expense whose due date has passed lists as OVERDUE even before
        its status column is refreshed.
        """
        query = self.db.query(Expense)

        if branch_id is not None:
            query = query.filter(Expense.branch_id == branch_id)
        if expense_type is not None:
            query = query.filter(Expense.expense_type == domain.ExpenseType(expense_type).value)
        if period is not None:
            query = query.filter(Expense.period == period)
        if due_from is not None:
            query = query.filter(Expense.due_date >= due_from)
        if due_to is not None:
            query = query.filter(Expense.due_date <= due_to)

        if status == domain.ExpenseStatus.PAID:
            query = query.filter(Expense.status == domain.ExpenseStatus.PAID.value)
        elif status is not None:
            query = query.filter(Expense.status != domain.ExpenseStatus.PAID.value)
            if status == domain.ExpenseStatus.OVERDUE:
                query = query.filter(Expense.due_date < today)
            else:
                query = query.filter(Expense.due_date >= today)

        total = query.count()
        rows = (
            query.options(selectinload(Expense.payments))
            .order_by(Expense.due_date.asc(), Expense.id.desc())
            .offset(pagination.offset)
            .limit(pagination.page_size)
            .all()
        )
        return total, rows

    def delete_expense(self, expense_id: int) -> None:
        """Delete an expense together with its payments and alert logs"""
        expense = self.get_expense_or_raise(expense_id)
        self.db.delete(expense)
        self.db.flush()
        logger.info("Expense deleted", extra={"expense_id": expense_id})


class PaymentRepository:
    """Repository for payments; every write re-derives the expense status"""

    def __init__(self, db: Session):
        self.db = db
        self.expenses = ExpenseRepository(db)

    def apply_payment(
        self,
        expense_id: int,
        paid_date: date,
        amount_paid: Decimal,
        today: date,
        currency: str = "USD",
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Tuple[Payment, domain.SettlementState]:
        """
        Validate the running total and record a payment.

        The expense row is locked for the rest of the transaction so
        concurrent payments on one expense serialize.

        Raises:
            ExpenseNotFoundError, InvalidPaymentAmountError, OverpaymentError
        """
        expense = (
            self.db.query(Expense)
            .filter(Expense.id == expense_id)
            .with_for_update()
            .first()
        )
        if expense is None:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")

        total_before = (
            self.db.query(func.coalesce(func.sum(Payment.amount_paid), 0))
            .filter(Payment.expense_id == expense_id)
            .scalar()
        )
        validate_payment(Decimal(expense.amount), Decimal(total_before or ZERO), amount_paid)

        db_payment = Payment(
            paid_date=paid_date,
            amount_paid=amount_paid,
            currency=currency,
            reference=reference,
            notes=notes,
            created_by=created_by,
        )
        expense.payments.append(db_payment)
        self.db.flush()

        state = self.expenses.refresh_status(expense, today)
        return db_payment, state

    def list_for_expense(self, expense_id: int) -> List[Payment]:
        """Payments for an expense, newest first"""
        self.expenses.get_expense_or_raise(expense_id)
        return (
            self.db.query(Payment)
            .filter(Payment.expense_id == expense_id)
            .order_by(Payment.paid_date.desc(), Payment.id.desc())
            .all()
        )

    def delete_payment(self, payment_id: int, today: date) -> domain.SettlementState:
        """Remove a payment and re-derive its expense's status"""
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")

        expense = payment.expense
        expense.payments.remove(payment)
        self.db.flush()

        return self.expenses.refresh_status(expense, today)


class AlertRuleRepository:
    """Read access to alert rule configuration"""

    def __init__(self, db: Session):
        self.db = db

    def list_active(self) -> List[domain.AlertRule]:
        """
        Active rules in id order.

        Rows with an unrecognized rule type are passed through unchanged (the
        matcher never fires them) and reported as a data-integrity warning.
        """
        rows = (
            self.db.query(AlertRule)
            .filter(AlertRule.is_active.is_(True))
            .order_by(AlertRule.id.asc())
            .all()
        )

        known = {t.value for t in domain.AlertRuleType}
        rules = []
        for row in rows:
            rule_type: Any = row.rule_type
            if rule_type in known:
                rule_type = domain.AlertRuleType(rule_type)
            else:
                logger.warning(
                    "Alert rule has unknown rule type",
                    extra={"rule_id": row.id, "rule_type": row.rule_type, "step": "data_integrity"},
                )
            rules.append(
                domain.AlertRule(
                    id=row.id,
                    rule_type=rule_type,
                    day_offset=row.day_offset,
                    is_active=row.is_active,
                    description=row.description or "",
                )
            )
        return rules


class AlertLogRepository:
    """Delivery log used to suppress duplicate sends"""

    def __init__(self, db: Session):
        self.db = db

    def is_already_sent(self, candidate: domain.AlertCandidate, trigger_local_date: date) -> bool:
        """True when a SENT row exists for (expense, rule, trigger day)"""
        count = (
            self.db.query(func.count(AlertLog.id))
            .filter(
                AlertLog.expense_id == candidate.expense_id,
                AlertLog.rule_id == candidate.rule_id,
                AlertLog.trigger_local_date == trigger_local_date,
                AlertLog.status == domain.AlertSendStatus.SENT.value,
            )
            .scalar()
        )
        return count > 0

    def log_result(
        self,
        candidate: domain.AlertCandidate,
        trigger_local_date: date,
        sent_to: str,
        status: domain.AlertSendStatus,
        error_message: Optional[str] = None,
    ) -> AlertLog:
        db_log = AlertLog(
            expense_id=candidate.expense_id,
            rule_id=candidate.rule_id,
            rule_type=candidate.rule_type.value,
            day_offset=candidate.day_offset,
            trigger_local_date=trigger_local_date,
            alert_key=candidate.alert_key,
            sent_to=sent_to,
            status=status.value,
            error_message=error_message[:ERROR_MESSAGE_MAX_LENGTH] if error_message else None,
        )
        self.db.add(db_log)
        self.db.flush()
        return db_log

    def get_log(self, log_id: int) -> Optional[AlertLog]:
        return self.db.get(AlertLog, log_id)

    def list_logs(
        self,
        pagination: Pagination,
        branch_id: Optional[int] = None,
        expense_id: Optional[int] = None,
        rule_type: Optional[domain.AlertRuleType] = None,
        status: Optional[domain.AlertSendStatus] = None,
        sent_since: Optional[datetime] = None,
        sent_until: Optional[datetime] = None,
    ) -> Tuple[int, List[AlertLog]]:
        """Filtered page of delivery log rows, newest first; `sent_until` is exclusive"""
        query = self.db.query(AlertLog)

        if branch_id is not None:
            query = query.join(Expense, AlertLog.expense_id == Expense.id).filter(Expense.branch_id == branch_id)
        if expense_id is not None:
            query = query.filter(AlertLog.expense_id == expense_id)
        if rule_type is not None:
            query = query.filter(AlertLog.rule_type == domain.AlertRuleType(rule_type).value)
        if status is not None:
            query = query.filter(AlertLog.status == domain.AlertSendStatus(status).value)
        if sent_since is not None:
            query = query.filter(AlertLog.sent_at >= sent_since.astimezone(timezone.utc))
        if sent_until is not None:
            query = query.filter(AlertLog.sent_at < sent_until.astimezone(timezone.utc))

        total = query.count()
        rows = (
            query.options(selectinload(AlertLog.expense).selectinload(Expense.payments))
            .order_by(AlertLog.sent_at.desc(), AlertLog.id.desc())
            .offset(pagination.offset)
            .limit(pagination.page_size)
            .all()
        )
        return total, rows

    def stats(self, today_start: datetime) -> Dict[str, int]:
        """
        Delivery counters.

        `today_start` is the start of the business day as an aware instant;
        the week window is the seven days before it.
        """
        today_start = today_start.astimezone(timezone.utc)
        week_start = today_start - timedelta(days=7)

        def count(*criteria: Any) -> int:
            return self.db.query(func.count(AlertLog.id)).filter(*criteria).scalar()

        sent = AlertLog.status == domain.AlertSendStatus.SENT.value
        return {
            "total_sent": count(sent),
            "total_failed": count(AlertLog.status == domain.AlertSendStatus.FAILED.value),
            "sent_today": count(sent, AlertLog.sent_at >= today_start),
            "sent_this_week": count(sent, AlertLog.sent_at >= week_start),
        }


class BranchRepository:
    """Branch lookups for alert recipients and display names"""

    def __init__(self, db: Session):
        self.db = db

    def get_display_name(self, branch_id: int) -> Optional[str]:
        branch = self.db.get(Branch, branch_id)
        return branch.display_name if branch else None

    def get_active_recipients(self, branch_id: int) -> List[str]:
        rows = (
            self.db.query(BranchRecipient.email)
            .filter(BranchRecipient.branch_id == branch_id, BranchRecipient.is_active.is_(True))
            .order_by(BranchRecipient.id.asc())
            .all()
        )
        return [row.email for row in rows]


class RecipientRepository:
    """Alert recipients per branch; emails are stored trimmed and lower-cased"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_branch(self, branch_id: int) -> List[BranchRecipient]:
        """Active recipients first, then by email"""
        if self.db.get(Branch, branch_id) is None:
            raise BranchNotFoundError(f"Branch {branch_id} not found")
        return (
            self.db.query(BranchRecipient)
            .filter(BranchRecipient.branch_id == branch_id)
            .order_by(BranchRecipient.is_active.desc(), BranchRecipient.email.asc())
            .all()
        )

    def get_or_raise(self, recipient_id: int) -> BranchRecipient:
        recipient = self.db.get(BranchRecipient, recipient_id)
        if recipient is None:
            raise RecipientNotFoundError(f"Recipient {recipient_id} not found")
        return recipient

    def create(
        self,
        branch_id: int,
        email: str,
        name: Optional[str] = None,
        is_active: bool = True,
    ) -> BranchRecipient:
        email = normalize_email(email)
        if self.db.get(Branch, branch_id) is None:
            raise BranchNotFoundError(f"Branch {branch_id} not found")
        self._ensure_unique(branch_id, email)

        recipient = BranchRecipient(
            branch_id=branch_id,
            email=email,
            name=(name or "").strip() or None,
            is_active=is_active,
        )
        self.db.add(recipient)
        self.db.flush()
        return recipient

    def update(self, recipient_id: int, changes: Dict[str, Any]) -> BranchRecipient:
        """Apply email, name and is_active changes present in `changes`"""
        recipient = self.get_or_raise(recipient_id)

        if changes.get("email") is not None:
            email = normalize_email(changes["email"])
            if email != recipient.email:
                self._ensure_unique(recipient.branch_id, email)
            recipient.email = email
        if "name" in changes:
            recipient.name = (changes["name"] or "").strip() or None
        if changes.get("is_active") is not None:
            recipient.is_active = changes["is_active"]

        self.db.flush()
        return recipient

    def delete(self, recipient_id: int) -> None:
        self.db.delete(self.get_or_raise(recipient_id))
        self.db.flush()

    def _ensure_unique(self, branch_id: int, email: str) -> None:
        exists = (
            self.db.query(BranchRecipient.id)
            .filter(BranchRecipient.branch_id == branch_id, BranchRecipient.email == email)
            .first()
        )
        if exists:
            raise DuplicateRecipientError(f"Recipient {email} already exists for branch {branch_id}")


def normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise InvalidEmailError(f"Invalid email address: {email!r}")
    return normalized


class JobLockRepository:
    """Lease-based lock rows for scheduled jobs"""

    def __init__(self, db: Session):
        self.db = db

    def acquire(self, job_name: str, worker_id: str, lease_seconds: int, now: datetime) -> bool:
        """Take the lock when it is free or its lease has expired"""
        locked_until = now + timedelta(seconds=lease_seconds)
        lock = (
            self.db.query(JobLock)
            .filter(JobLock.job_name == job_name)
            .with_for_update()
            .first()
        )

        if lock is None:
            self.db.add(JobLock(job_name=job_name, locked_by=worker_id, locked_until=locked_until))
        elif _as_utc(lock.locked_until) < now:
            lock.locked_by = worker_id
            lock.locked_until = locked_until
        else:
            self.db.rollback()
            return False

        try:
            self.db.commit()
        except IntegrityError:
            # Another worker inserted the row first
            self.db.rollback()
            return False
        return True

    def renew(self, job_name: str, worker_id: str, lease_seconds: int, now: datetime) -> bool:
        """Extend the lease; fails if the caller no longer owns an unexpired lock"""
        lock = (
            self.db.query(JobLock)
            .filter(JobLock.job_name == job_name, JobLock.locked_by == worker_id)
            .with_for_update()
            .first()
        )
        if lock is None or _as_utc(lock.locked_until) < now:
            self.db.rollback()
            return False

        lock.locked_until = now + timedelta(seconds=lease_seconds)
        self.db.commit()
        return True

    def release(self, job_name: str, worker_id: str) -> bool:
        updated = (
            self.db.query(JobLock)
            .filter(JobLock.job_name == job_name, JobLock.locked_by == worker_id)
            .update({JobLock.locked_until: datetime(1970, 1, 1, tzinfo=timezone.utc)}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0
