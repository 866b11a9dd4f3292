"""Audit trail webhook client with exponential backoff retry logic"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from agro_ledger.config import settings
from agro_ledger.infrastructure.observability.metrics import audit_failure_counter, audit_latency_histogram

logger = logging.getLogger(__name__)


def audit_event(
    event_type: str,
    firm_id: str,
    reference: str,
    actor_id: Optional[str],
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the audit record posted after a committed operation"""
    return {
        "tipo": event_type,
        "firm_id": firm_id,
        "referencia": reference,
        "usuario": actor_id or "sistema",
        "descripcion": description,
        "modulo_origen": "modulo_08_finanzas",
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "metadata": metadata or {},
    }


class AuditClient:
    """Client for sending audit records to the external audit log"""

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url or settings.audit_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send an audit record with retry logic.

        Runs after the ledger transaction has committed, so a delivery
        failure never affects balances. Does nothing when no URL is set.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^attempt)
        - Retries on 5xx errors and network failures
        """
        if not self.enabled:
            return

        attempt = 0
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            while attempt < self.max_retries:
                try:
                    with audit_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    audit_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            "Audit delivery failed after retries",
                            extra={"event_type": payload.get("tipo"), "attempts": attempt},
                        )
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
