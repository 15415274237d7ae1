"""Prometheus metrics for alert evaluation, email delivery and payments"""

from prometheus_client import Counter, Histogram

# Alert evaluation metrics
alert_candidates_counter = Counter(
    "branch_alert_candidates_total",
    "Alert candidates produced by evaluation passes",
    ["rule_type"],  # DUE_REMINDER | OVERDUE_ESCALATION
)

alert_email_counter = Counter(
    "branch_alert_emails_total",
    "Alert email outcomes",
    ["outcome"],  # sent | failed | skipped_already_sent | skipped_no_recipients
)

alert_job_counter = Counter(
    "branch_alert_job_runs_total",
    "Alert evaluator job runs",
    ["outcome"],  # completed | failed | skipped_locked
)

alert_job_duration_histogram = Histogram(
    "branch_alert_job_duration_seconds",
    "Alert evaluator job duration",
    buckets=[0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0],
)

# Email delivery metrics
email_latency_histogram = Histogram(
    "email_delivery_latency_seconds",
    "Email webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Payment metrics
payments_applied_counter = Counter(
    "branch_payments_applied_total",
    "Payments recorded against expenses",
    ["resulting_status"],  # PENDING | OVERDUE | PAID
)

payments_rejected_counter = Counter(
    "branch_payments_rejected_total",
    "Payment applications rejected by validation",
    ["reason"],  # invalid_amount | overpayment
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_candidates(candidates) -> None:
    """Count candidates per rule type for one evaluation pass"""
    for candidate in candidates:
        alert_candidates_counter.labels(rule_type=candidate.rule_type.value).inc()
