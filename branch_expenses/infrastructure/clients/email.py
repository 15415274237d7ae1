"""Alert email delivery client with exponential backoff retry logic"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from branch_expenses.config import Settings, get_settings
from branch_expenses.domain.models import AlertRuleType
from branch_expenses.infrastructure.observability.metrics import email_latency_histogram

logger = logging.getLogger(__name__)


@dataclass
class AlertEmailPayload:
    """Everything needed to render one alert email"""

    to: str
    branch_name: str
    expense_type: str
    period: str
    due_date: str
    amount: str
    balance_remaining: str
    alert_type: AlertRuleType
    day_offset: int


@dataclass
class EmailSendResult:
    success: bool
    error: Optional[str] = None


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def format_subject(payload: AlertEmailPayload) -> str:
    days = abs(payload.day_offset)
    if payload.alert_type == AlertRuleType.DUE_REMINDER:
        return (
            f"[Reminder] {payload.branch_name}: {payload.expense_type} for {payload.period} "
            f"due in {days} day{_plural(days)}"
        )
    return (
        f"[OVERDUE] {payload.branch_name}: {payload.expense_type} for {payload.period} "
        f"is {days} day{_plural(days)} overdue"
    )


def format_body(payload: AlertEmailPayload) -> str:
    if payload.alert_type == AlertRuleType.DUE_REMINDER:
        header = f"This is a reminder that {payload.expense_type} for {payload.branch_name} is due soon."
        footer = "Please ensure payment is made before the due date."
    else:
        header = f"ATTENTION: {payload.expense_type} for {payload.branch_name} is now overdue."
        footer = f"This expense is {abs(payload.day_offset)} day(s) overdue. Please take immediate action."

    return "\n".join(
        [
            header,
            "",
            f"Branch: {payload.branch_name}",
            f"Expense Type: {payload.expense_type}",
            f"Period: {payload.period}",
            f"Due Date: {payload.due_date}",
            f"Total Amount: {payload.amount}",
            f"Balance Remaining: {payload.balance_remaining}",
            "",
            footer,
            "",
            "---",
            "Branch Expenses - Automated Alert",
        ]
    )


class EmailClient:
    """Client for the outbound email webhook"""

    def __init__(self, settings: Settings | None = None, webhook_url: str | None = None):
        settings = settings or get_settings()
        self.webhook_url = webhook_url or settings.email_webhook_url
        self.sender = settings.email_from
        self.timeout = settings.http_timeout_seconds
        self.max_retries = settings.email_max_retries
        self.backoff_base = settings.email_backoff_base

    async def send_alert_email(self, payload: AlertEmailPayload) -> EmailSendResult:
        """
        Deliver one alert email.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ... (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - 4xx responses fail immediately
        - Without a webhook URL the message is only logged

        Returns a failed EmailSendResult after the last attempt instead of raising.
        """
        message: Dict[str, Any] = {
            "from": self.sender,
            "to": payload.to,
            "subject": format_subject(payload),
            "body": format_body(payload),
        }

        if not self.webhook_url:
            logger.info(
                "Email delivery disabled, logging message",
                extra={"to": payload.to, "subject": message["subject"], "step": "email_logged"},
            )
            return EmailSendResult(success=True)

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with email_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=message)
                        response.raise_for_status()
                    return EmailSendResult(success=True)

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        logger.warning(
                            f"Email rejected by webhook: {e}",
                            extra={"to": payload.to, "status_code": e.response.status_code},
                        )
                        return EmailSendResult(success=False, error=str(e))

                    logger.warning(
                        f"Email delivery attempt {attempt} failed: {e}",
                        extra={"to": payload.to, "attempt": attempt},
                    )

                    if attempt >= self.max_retries:
                        return EmailSendResult(success=False, error=str(e))

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
