"""
Tests for the n8n event dispatcher, retries and inbound n8n webhooks.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import AsyncClient

from app.core.config import get_settings
from app.models.event import WebhookEvent
from app.services import events as event_service
from app.services.events import (
    dispatch_event,
    event_stats,
    generate_signature,
    list_events,
    retry_failed_events,
    verify_signature,
)
from app.tasks.webhook_retry import WorkerSettings, retry_failed_webhooks

from psicomapa_shared.schemas.events import DeliveryStatus, EventType

N8N_URL = "https://n8n.test/webhook/psicomapa"
N8N_SECRET = "n8n-test-secret"


@pytest.fixture
def n8n_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "n8n_webhook_url", N8N_URL)
    monkeypatch.setattr(settings, "n8n_webhook_secret", N8N_SECRET)
    monkeypatch.setattr(event_service, "RETRY_PAUSE_SECONDS", 0)
    return settings


class TestSignatures:
    def test_roundtrip(self):
        body = '{"event":"diagnostic.created"}'
        signature = generate_signature(body, N8N_SECRET)
        assert len(signature) == 64
        assert verify_signature(body, signature, N8N_SECRET)
        assert not verify_signature(body + " ", signature, N8N_SECRET)

    def test_no_secret_passes_in_development(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "n8n_webhook_secret", "")
        assert verify_signature("{}", "anything")

    def test_no_secret_fails_in_production(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "n8n_webhook_secret", "")
        monkeypatch.setattr(settings, "environment", "production")
        assert not verify_signature("{}", "anything")


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unconfigured_url_records_failure(self, session, tenant, monkeypatch):
        monkeypatch.setattr(get_settings(), "n8n_webhook_url", "")
        with patch("app.services.events._send", AsyncMock()) as send:
            result = await dispatch_event(session, EventType.DIAGNOSTIC_CREATED, tenant.org.id, {"title": "Ciclo 1"})
        send.assert_not_awaited()
        assert not result.success
        assert result.error == "N8N_WEBHOOK_URL not configured"

        event = await session.get(WebhookEvent, result.event_id)
        assert event.status == "failed"
        assert event.attempts == 0

    @pytest.mark.asyncio
    async def test_signed_delivery(self, session, tenant, n8n_settings):
        send = AsyncMock(return_value=httpx.Response(200))
        with patch("app.services.events._send", send):
            result = await dispatch_event(
                session, EventType.DIAGNOSTIC_ACTIVATED, tenant.org.id, {"assessment_id": "a-1"}
            )
        assert result.success

        url, body, headers = send.await_args.args
        assert url == N8N_URL
        payload = json.loads(body)
        assert payload["event"] == "diagnostic.activated"
        assert payload["organization_id"] == str(tenant.org.id)
        assert payload["metadata"]["source"] == "psicomapa"
        assert headers["X-Webhook-Signature"] == generate_signature(body, N8N_SECRET)
        assert headers["X-Event-ID"] == str(result.event_id)
        assert headers["X-Organization-ID"] == str(tenant.org.id)

        event = await session.get(WebhookEvent, result.event_id)
        assert (event.status, event.attempts) == ("sent", 1)

    @pytest.mark.asyncio
    async def test_http_error_is_not_raised(self, session, tenant, n8n_settings):
        send = AsyncMock(return_value=httpx.Response(502, text="bad gateway"))
        with patch("app.services.events._send", send):
            result = await dispatch_event(session, EventType.PAYMENT_FAILED, tenant.org.id, {})
        assert not result.success
        assert result.error == "HTTP 502: bad gateway"

    @pytest.mark.asyncio
    async def test_transport_error_is_not_raised(self, session, tenant, n8n_settings):
        send = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        with patch("app.services.events._send", send):
            result = await dispatch_event(session, EventType.PAYMENT_FAILED, tenant.org.id, {})
        assert not result.success
        assert "connection refused" in result.error


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_until_max_attempts(self, session, tenant, n8n_settings):
        exhausted = WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="failed", attempts=3)
        retryable = WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="failed", attempts=1)
        delivered = WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="sent", attempts=1)
        session.add_all([exhausted, retryable, delivered])
        await session.commit()

        send = AsyncMock(return_value=httpx.Response(200))
        with patch("app.services.events._send", send):
            assert await retry_failed_events(session) == 1

        assert send.await_count == 1
        assert send.await_args.args[2]["X-Retry-Attempt"] == "2"
        assert (retryable.status, retryable.attempts, retryable.error_message) == ("sent", 2, None)
        assert exhausted.attempts == 3

    @pytest.mark.asyncio
    async def test_failed_retry_counts_attempt(self, session, tenant, n8n_settings):
        event = WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="failed", attempts=0)
        session.add(event)
        await session.commit()

        with patch("app.services.events._send", AsyncMock(return_value=httpx.Response(500, text="erro"))):
            assert await retry_failed_events(session) == 0
        assert (event.status, event.attempts) == ("failed", 1)
        assert event.error_message == "HTTP 500: erro"


class TestRetryWorker:
    def test_cron_every_quarter_hour(self):
        job = WorkerSettings.cron_jobs[0]
        assert job.minute == {0, 15, 30, 45}
        assert retry_failed_webhooks in WorkerSettings.functions

    @pytest.mark.asyncio
    async def test_worker_pass_uses_own_session(self, session, tenant, n8n_settings):
        event = WebhookEvent(org_id=tenant.org.id, event_type="payment.failed", status="failed", attempts=1)
        session.add(event)
        await session.commit()

        @asynccontextmanager
        async def session_context():
            yield session

        with patch("app.tasks.webhook_retry.get_session_context", session_context), \
                patch("app.services.events._send", AsyncMock(return_value=httpx.Response(200))):
            assert await retry_failed_webhooks({}) == 1
        assert event.status == "sent"


class TestEventQueries:
    @pytest.mark.asyncio
    async def test_list_and_stats(self, session, tenant):
        session.add_all([
            WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="sent"),
            WebhookEvent(org_id=tenant.org.id, event_type="user.invited", status="failed"),
            WebhookEvent(org_id=tenant.org.id, event_type="payment.failed", status="delivered"),
            WebhookEvent(org_id=None, event_type="payment.failed", status="sent"),
        ])
        await session.commit()

        events, total = await list_events(session, tenant.org.id, status=DeliveryStatus.FAILED)
        assert total == 1
        assert events[0].event_type == "user.invited"

        stats = await event_stats(session, tenant.org.id)
        assert stats.total == 3
        assert stats.by_type == {"user.invited": 2, "payment.failed": 1}
        assert stats.by_status["pending"] == 0
        assert stats.success_rate == 66.67

    @pytest.mark.asyncio
    async def test_endpoints_require_responsavel(self, client: AsyncClient, tenant):
        resp = await client.get(f"{tenant.base}/webhooks/stats", headers=tenant.member_headers)
        assert resp.status_code == 403
        resp = await client.get(f"{tenant.base}/webhooks/events", headers=tenant.owner_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 0


class TestInboundN8n:
    @pytest.mark.asyncio
    async def test_delivery_confirmation(self, client: AsyncClient, session, tenant, n8n_settings):
        event = WebhookEvent(org_id=tenant.org.id, event_type="diagnostic.created", status="sent")
        session.add(event)
        await session.commit()

        body = json.dumps({"ok": True})
        resp = await client.post(
            "/api/webhooks/n8n",
            content=body,
            headers={
                "x-webhook-signature": generate_signature(body, N8N_SECRET),
                "x-event-id": str(event.id),
                "x-n8n-action": "delivery_confirmation",
            },
        )
        assert resp.status_code == 200
        assert resp.json()["action"] == "delivery_confirmed"
        await session.refresh(event)
        assert event.status == "delivered"
        assert event.delivered_at is not None

    @pytest.mark.asyncio
    async def test_bad_signature(self, client: AsyncClient, n8n_settings):
        resp = await client.post("/api/webhooks/n8n", content="{}", headers={"x-webhook-signature": "0" * 64})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_generic_callback(self, client: AsyncClient, n8n_settings):
        body = json.dumps({"status": "done"})
        resp = await client.post(
            "/api/webhooks/n8n",
            content=body,
            headers={"x-webhook-signature": generate_signature(body, N8N_SECRET)},
        )
        assert resp.status_code == 200
        assert resp.json()["action"] == "generic"
