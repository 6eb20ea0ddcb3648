"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from splitpay_gateway.config import settings
from splitpay_gateway.utils.date_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
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


def log_transition(
    entity: str,
    entity_id: str,
    from_status: str,
    to_status: str,
    trigger: str,
    request_id: Optional[str] = None,
) -> None:
    """Log one status change of a payer, payment or collection"""
    logging.info(
        f"{entity} status changed",
        extra={
            "request_id": request_id,
            "entity": entity,
            "entity_id": entity_id,
            "from_status": from_status,
            "to_status": to_status,
            "trigger": trigger,
        },
    )


def log_settlement(
    payment_id: str,
    all_completed: bool,
    failed_allocations: int,
    duration_ms: float,
    request_id: Optional[str] = None,
) -> None:
    """Log structured multi-card settlement outcome"""
    logging.info(
        "Multi-card settlement completed",
        extra={
            "request_id": request_id,
            "payment_id": payment_id,
            "step": "settlement_complete",
            "settlement_outcome": "succeeded" if all_completed else "failed",
            "failed_allocations": failed_allocations,
            "duration_ms": duration_ms,
        },
    )
