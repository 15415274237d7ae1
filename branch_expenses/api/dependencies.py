"""Dependency injection for FastAPI endpoints"""

from datetime import date

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from branch_expenses.config import Settings, get_settings
from branch_expenses.infrastructure.clients.email import EmailClient
from branch_expenses.infrastructure.database.session import get_session_factory
from branch_expenses.utils.date_utils import today_in_business_tz


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_business_today(settings: Settings = Depends(get_settings)) -> date:
    """Current calendar day in the business time zone"""
    return today_in_business_tz(offset_minutes=settings.business_utc_offset_minutes)


def get_email_client(settings: Settings = Depends(get_settings)) -> EmailClient:
    """Provide alert email client instance"""
    return EmailClient(settings)


def get_db_session_factory() -> sessionmaker:
    """Session factory for work that manages its own sessions (job runs)"""
    return get_session_factory()
