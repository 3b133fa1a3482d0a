"""Structured JSON logging for workflow observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from cashier_workflow.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(workflow_id: str, kind: str, from_step: str, to_step: str, event: str) -> None:
    """Log a workflow step change"""
    logging.info(
        "Workflow transition",
        extra={
            "workflow_id": workflow_id,
            "kind": kind,
            "event": event,
            "from_step": from_step,
            "to_step": to_step,
        },
    )


def log_submission(
    workflow_id: str,
    user_id: str,
    method_id: str,
    outcome: str,
    duration_ms: float,
    transaction_id: Optional[str] = None,
    error_kind: Optional[str] = None,
) -> None:
    """Log structured submission outcome for analysis"""
    logging.info(
        "Submission completed",
        extra={
            "workflow_id": workflow_id,
            "user_id": user_id,
            "step": "submission_complete",
            "method_id": method_id,
            "outcome": outcome,
            "transaction_id": transaction_id,
            "error_kind": error_kind,
            "duration_ms": duration_ms,
        },
    )
