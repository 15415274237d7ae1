"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from branch_expenses.api.dependencies import get_business_today, get_db_session_factory, get_email_client
from branch_expenses.api.main import create_app
from branch_expenses.config import Settings
from branch_expenses.infrastructure.clients.email import AlertEmailPayload, EmailSendResult
from branch_expenses.infrastructure.database.models import AlertRule, Base, Branch, BranchRecipient
from branch_expenses.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed business day used by API tests
TODAY = date(2026, 2, 20)


class FakeEmailClient:
    """Records payloads; addresses containing `fail_marker` simulate delivery failure"""

    def __init__(self, fail_marker: Optional[str] = "fail@"):
        self.sent: List[AlertEmailPayload] = []
        self.fail_marker = fail_marker

    async def send_alert_email(self, payload: AlertEmailPayload) -> EmailSendResult:
        if self.fail_marker and self.fail_marker in payload.to:
            return EmailSendResult(success=False, error="Simulated email failure")
        self.sent.append(payload)
        return EmailSendResult(success=True)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for code that opens its own sessions (job runs, locks)"""
    return TestingSessionLocal


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        email_webhook_url=None,
        enable_scheduler=False,
        job_lock_duration_seconds=60,
    )


@pytest.fixture
def email_client() -> FakeEmailClient:
    return FakeEmailClient()


@pytest.fixture
def client(db: Session, email_client: FakeEmailClient) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app(enable_scheduler=False)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_business_today] = lambda: TODAY
    app.dependency_overrides[get_db_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_email_client] = lambda: email_client
    return TestClient(app)


@pytest.fixture
def branch(db: Session) -> Branch:
    """Branch with one active and one inactive recipient"""
    branch = Branch(city="Harare", label="CBD")
    branch.recipients = [
        BranchRecipient(email="manager@example.com", is_active=True),
        BranchRecipient(email="former@example.com", is_active=False),
    ]
    db.add(branch)
    db.commit()
    return branch


@pytest.fixture
def default_rules(db: Session) -> List[AlertRule]:
    """Rule set shipped with a fresh install"""
    rules = [
        AlertRule(rule_type="DUE_REMINDER", day_offset=-7, description="7 days before due"),
        AlertRule(rule_type="DUE_REMINDER", day_offset=-3, description="3 days before due"),
        AlertRule(rule_type="DUE_REMINDER", day_offset=-1, description="1 day before due"),
        AlertRule(rule_type="OVERDUE_ESCALATION", day_offset=1, description="1 day overdue"),
        AlertRule(rule_type="OVERDUE_ESCALATION", day_offset=7, description="7 days overdue"),
        AlertRule(rule_type="OVERDUE_ESCALATION", day_offset=14, description="14 days overdue"),
    ]
    db.add_all(rules)
    db.commit()
    return rules
