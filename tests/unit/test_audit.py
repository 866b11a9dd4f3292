"""Unit tests for the audit trail client"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from agro_ledger.infrastructure.clients.audit import AuditClient, audit_event


def test_audit_event_shape():
    event = audit_event("factura_aprobada", "firm-1", "exp-1", None, "A-1001 aprobada", {"status": "APPROVED"})

    assert event["tipo"] == "factura_aprobada"
    assert event["referencia"] == "exp-1"
    assert event["usuario"] == "sistema"
    assert event["metadata"] == {"status": "APPROVED"}
    assert "occurred_at" in event


def test_disabled_client_sends_nothing():
    client = AuditClient(webhook_url=None)
    client.webhook_url = None

    with patch("agro_ledger.infrastructure.clients.audit.httpx.AsyncClient") as async_client:
        asyncio.run(client.send_event({"tipo": "x"}))

    assert not client.enabled
    async_client.assert_not_called()


def _mock_async_client(post: AsyncMock) -> MagicMock:
    http = MagicMock()
    http.post = post
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=http)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


@patch("agro_ledger.infrastructure.clients.audit.asyncio.sleep", new_callable=AsyncMock)
def test_retries_then_succeeds(mock_sleep: AsyncMock):
    ok = MagicMock()
    post = AsyncMock(side_effect=[httpx.ConnectError("down"), ok])
    client = AuditClient(webhook_url="http://audit.local/events")

    with patch("agro_ledger.infrastructure.clients.audit.httpx.AsyncClient", _mock_async_client(post)):
        asyncio.run(client.send_event({"tipo": "x"}))

    assert post.await_count == 2
    mock_sleep.assert_awaited_once_with(client.backoff_base)


@patch("agro_ledger.infrastructure.clients.audit.asyncio.sleep", new_callable=AsyncMock)
def test_gives_up_after_max_retries(mock_sleep: AsyncMock):
    post = AsyncMock(side_effect=httpx.ConnectError("down"))
    client = AuditClient(webhook_url="http://audit.local/events")
    client.max_retries = 3

    with patch("agro_ledger.infrastructure.clients.audit.httpx.AsyncClient", _mock_async_client(post)):
        with pytest.raises(httpx.ConnectError):
            asyncio.run(client.send_event({"tipo": "x"}))

    assert post.await_count == 3
    assert mock_sleep.await_count == 2
