"""Structured JSON logging for ledger operations"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from agro_ledger.config import settings


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
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_money_movement(
    operation: str,
    firm_id: str,
    amount: Decimal,
    currency: str,
    document_id: Optional[str] = None,
    account_id: Optional[str] = None,
    balance_after: Optional[Decimal] = None,
) -> None:
    """Log one committed payment, collection, order execution or adjustment"""
    logging.getLogger("agro_ledger.ledger").info(
        "Money movement committed",
        extra={
            "step": operation,
            "firm_id": firm_id,
            "amount": str(amount),
            "currency": currency,
            "document_id": document_id,
            "account_id": account_id,
            "balance_after": str(balance_after) if balance_after is not None else None,
        },
    )


def log_transition(entity: str, entity_id: str, from_status: str, to_status: str, actor_id: Optional[str]) -> None:
    """Log a committed status change"""
    logging.getLogger("agro_ledger.ledger").info(
        "Status changed",
        extra={
            "step": "status_transition",
            "entity": entity,
            "entity_id": entity_id,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
        },
    )
