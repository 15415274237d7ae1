"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args: Any, service_name: str = "branch-expenses", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "branch-expenses") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_job_result(job_name: str, result: Any, duration_ms: float) -> None:
    """Log structured alert job summary for analysis"""
    logging.info(
        "Alert job completed",
        extra={
            "job_name": job_name,
            "step": "alert_job_complete",
            "evaluation_date": result.evaluation_date,
            "total_candidates": result.total_candidates,
            "sent_count": result.sent_count,
            "failed_count": result.failed_count,
            "skipped_already_sent": result.skipped_already_sent,
            "skipped_no_recipients": result.skipped_no_recipients,
            "error_count": len(result.errors),
            "duration_ms": duration_ms,
        },
    )
