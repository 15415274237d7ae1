"""SQLAlchemy ORM models for branches, expenses, payments and alerting"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# BIGINT ids in production; SQLite only autoincrements INTEGER primary keys
Id = BigInteger().with_variant(Integer, "sqlite")
Money = Numeric(18, 2)


class Branch(Base):
    """Physical branch owning expenses and alert recipients"""

    __tablename__ = "branch"
    __table_args__ = (UniqueConstraint("city", "label", name="uq_branch_city_label"),)

    id = Column(Id, primary_key=True, autoincrement=True)
    city = Column(String(80), nullable=False, index=True)
    label = Column(String(80), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    expenses = relationship("Expense", back_populates="branch", cascade="all, delete-orphan")
    recipients = relationship("BranchRecipient", back_populates="branch", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return f"{self.city} - {self.label}"


class BranchRecipient(Base):
    """Email address notified about a branch's expenses"""

    __tablename__ = "branch_recipient"
    __table_args__ = (UniqueConstraint("branch_id", "email", name="uq_recipient_branch_email"),)

    id = Column(Id, primary_key=True, autoincrement=True)
    branch_id = Column(Id, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(190), nullable=False, index=True)
    name = Column(String(120), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    branch = relationship("Branch", back_populates="recipients")


class Expense(Base):
    """Recurring branch obligation; status column caches the settlement projection"""

    __tablename__ = "expense"
    __table_args__ = (
        UniqueConstraint("branch_id", "expense_type", "period", name="uq_expense_branch_type_period"),
        Index("ix_expense_due_date_status", "due_date", "status"),
    )

    id = Column(Id, primary_key=True, autoincrement=True)
    branch_id = Column(Id, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False)
    expense_type = Column(String(20), nullable=False, index=True)
    period = Column(String(7), nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(10), nullable=False, default="PENDING", index=True)
    vendor = Column(String(120), nullable=True)
    notes = Column(String(500), nullable=True)
    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    branch = relationship("Branch", back_populates="expenses")
    payments = relationship(
        "Payment",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="Payment.paid_date.desc()",
    )
    alert_logs = relationship("AlertLog", back_populates="expense", cascade="all, delete-orphan")


class Payment(Base):
    """Amount applied against an expense"""

    __tablename__ = "payment"

    id = Column(Id, primary_key=True, autoincrement=True)
    expense_id = Column(Id, ForeignKey("expense.id", ondelete="CASCADE"), nullable=False, index=True)
    paid_date = Column(Date, nullable=False, index=True)
    amount_paid = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    reference = Column(String(120), nullable=True)
    notes = Column(String(300), nullable=True)
    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    expense = relationship("Expense", back_populates="payments")


class AlertRule(Base):
    """Alert configuration row"""

    __tablename__ = "alert_rule"
    __table_args__ = (UniqueConstraint("rule_type", "day_offset", name="uq_rule_type_offset"),)

    id = Column(Id, primary_key=True, autoincrement=True)
    rule_type = Column(String(30), nullable=False)
    day_offset = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AlertLog(Base):
    """One delivery attempt (or skip) for an alert candidate"""

    __tablename__ = "alert_log"
    __table_args__ = (
        Index("ix_alert_dedupe_lookup", "expense_id", "rule_id", "trigger_local_date", "status"),
    )

    id = Column(Id, primary_key=True, autoincrement=True)
    expense_id = Column(Id, ForeignKey("expense.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(Id, ForeignKey("alert_rule.id", ondelete="RESTRICT"), nullable=False, index=True)
    rule_type = Column(String(30), nullable=False)
    day_offset = Column(Integer, nullable=False)
    trigger_local_date = Column(Date, nullable=False)
    alert_key = Column(String(120), nullable=False, index=True)
    sent_to = Column(String(190), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    status = Column(String(10), nullable=False, default="SENT")
    error_message = Column(String(500), nullable=True)

    expense = relationship("Expense", back_populates="alert_logs")


class JobLock(Base):
    """Lease row preventing concurrent runs of the same scheduled job"""

    __tablename__ = "job_lock"

    id = Column(Id, primary_key=True, autoincrement=True)
    job_name = Column(String(100), nullable=False, unique=True)
    locked_by = Column(String(120), nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
