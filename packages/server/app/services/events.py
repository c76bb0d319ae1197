"""
Outbound event dispatcher (n8n).

Every event is persisted to ``webhook_events`` before delivery so failed
deliveries can be retried by the cron pass. Delivery is signed with
HMAC-SHA256 over the exact JSON body.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.event import WebhookEvent

from psicomapa_shared.schemas.events import DeliveryStatus, DispatchResult, EventStats, EventType

log = structlog.get_logger()

EVENT_SOURCE = "psicomapa"
EVENT_VERSION = "1.0.0"
USER_AGENT = "PsicoMapa-Webhook/1.0"
REQUEST_TIMEOUT = 10.0
RETRY_PAUSE_SECONDS = 0.5
MAX_ERROR_LENGTH = 500


def generate_signature(body: str, secret: str) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def verify_signature(body: str, signature: str, secret: Optional[str] = None) -> bool:
    """Check an inbound n8n signature.

    Without a configured secret the check fails closed in production and
    passes in development.
    """
    settings = get_settings()
    secret = secret or settings.n8n_webhook_secret
    if not secret:
        if settings.is_production:
            log.error("events.signature_secret_missing")
            return False
        log.warning("events.signature_unchecked")
        return True
    expected = generate_signature(body, secret)
    return hmac.compare_digest(signature.encode(), expected.encode())


def _encode(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def _headers(event: WebhookEvent, body: str, secret: str) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-Event-Type": event.event_type,
        "X-Event-ID": str(event.id),
    }
    if event.org_id:
        headers["X-Organization-ID"] = str(event.org_id)
    if secret:
        headers["X-Webhook-Signature"] = generate_signature(body, secret)
    return headers


async def _send(url: str, body: str, headers: dict[str, str]) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT)) as client:
        return await client.post(url, content=body.encode(), headers=headers)


def _delivery_blocker() -> Optional[str]:
    """Reason delivery cannot be attempted with the current settings, if any."""
    settings = get_settings()
    if not settings.n8n_webhook_url:
        return "N8N_WEBHOOK_URL not configured"
    if not settings.n8n_webhook_secret and settings.is_production:
        return "N8N_WEBHOOK_SECRET not configured in production"
    return None


async def _attempt(event: WebhookEvent, extra_headers: Optional[dict[str, str]] = None) -> Optional[str]:
    """POST the stored payload once. Returns the error message, or None on success."""
    settings = get_settings()
    body = _encode(event.payload)
    headers = _headers(event, body, settings.n8n_webhook_secret)
    if extra_headers:
        headers.update(extra_headers)

    try:
        response = await _send(settings.n8n_webhook_url, body, headers)
    except httpx.HTTPError as exc:
        return str(exc) or exc.__class__.__name__

    if response.is_success:
        return None
    return f"HTTP {response.status_code}: {response.text[:MAX_ERROR_LENGTH]}"


async def dispatch_event(
    session: AsyncSession,
    event_type: EventType,
    org_id: Optional[uuid.UUID],
    data: dict[str, Any],
    metadata: Optional[dict[str, Any]] = None,
) -> DispatchResult:
    """Store an event and try to deliver it to n8n right away.

    Delivery failures are recorded on the row and never raised to the caller.
    """
    settings = get_settings()
    payload = {
        "event": event_type.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "organization_id": str(org_id) if org_id else None,
        "data": data,
        "metadata": {
            "source": EVENT_SOURCE,
            "version": EVENT_VERSION,
            "environment": settings.environment,
            **(metadata or {}),
        },
    }

    event = WebhookEvent(
        org_id=org_id,
        event_type=event_type.value,
        payload=payload,
        status=DeliveryStatus.PENDING.value,
    )
    session.add(event)
    await session.flush()

    blocker = _delivery_blocker()
    if blocker:
        event.status = DeliveryStatus.FAILED.value
        event.error_message = blocker
        session.add(event)
        await session.flush()
        log.warning("events.dispatch_skipped", event_type=event_type.value, reason=blocker)
        return DispatchResult(success=False, event_id=event.id, error=blocker)

    error = await _attempt(event)
    event.attempts = 1
    event.last_attempt_at = datetime.now(timezone.utc)
    if error is None:
        event.status = DeliveryStatus.SENT.value
        log.info("events.dispatched", event_type=event_type.value, event_id=str(event.id))
    else:
        event.status = DeliveryStatus.FAILED.value
        event.error_message = error
        log.error(
            "events.dispatch_failed",
            event_type=event_type.value,
            event_id=str(event.id),
            error=error[:200],
        )
    session.add(event)
    await session.flush()
    return DispatchResult(success=error is None, event_id=event.id, error=error)


async def retry_failed_events(
    session: AsyncSession, max_attempts: int = 3, limit: int = 10
) -> int:
    """Resend failed events that still have attempts left. Returns how many succeeded."""
    result = await session.execute(
        select(WebhookEvent)
        .where(
            WebhookEvent.status == DeliveryStatus.FAILED.value,
            WebhookEvent.attempts < max_attempts,
        )
        .order_by(WebhookEvent.created_at)
        .limit(limit)
    )
    events = result.scalars().all()
    if not events:
        return 0

    blocker = _delivery_blocker()
    if blocker:
        log.warning("events.retry_skipped", reason=blocker, pending=len(events))
        return 0

    retried = 0
    for event in events:
        error = await _attempt(event, {"X-Retry-Attempt": str(event.attempts + 1)})
        event.attempts += 1
        event.last_attempt_at = datetime.now(timezone.utc)
        if error is None:
            event.status = DeliveryStatus.SENT.value
            event.error_message = None
            retried += 1
            log.info("events.retry_succeeded", event_id=str(event.id), attempt=event.attempts)
        else:
            event.error_message = error
            log.warning("events.retry_failed", event_id=str(event.id), attempt=event.attempts)
        session.add(event)
        await session.flush()
        await asyncio.sleep(RETRY_PAUSE_SECONDS)

    return retried


async def mark_event_delivered(session: AsyncSession, event_id: uuid.UUID) -> bool:
    result = await session.execute(select(WebhookEvent).where(WebhookEvent.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        log.warning("events.delivery_unknown_event", event_id=str(event_id))
        return False
    event.status = DeliveryStatus.DELIVERED.value
    event.delivered_at = datetime.now(timezone.utc)
    session.add(event)
    await session.flush()
    return True


async def list_events(
    session: AsyncSession,
    org_id: uuid.UUID,
    status: Optional[DeliveryStatus] = None,
    event_type: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[WebhookEvent], int]:
    conditions = [WebhookEvent.org_id == org_id]
    if status:
        conditions.append(WebhookEvent.status == status.value)
    if event_type:
        conditions.append(WebhookEvent.event_type == event_type)

    total = (
        await session.execute(select(func.count()).select_from(WebhookEvent).where(*conditions))
    ).scalar_one()
    result = await session.execute(
        select(WebhookEvent)
        .where(*conditions)
        .order_by(WebhookEvent.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def event_stats(session: AsyncSession, org_id: uuid.UUID) -> EventStats:
    result = await session.execute(
        select(WebhookEvent.status, WebhookEvent.event_type, func.count())
        .where(WebhookEvent.org_id == org_id)
        .group_by(WebhookEvent.status, WebhookEvent.event_type)
    )
    by_status = {s.value: 0 for s in DeliveryStatus}
    by_type: dict[str, int] = {}
    for status, event_type, count in result.all():
        by_status[status] = by_status.get(status, 0) + count
        by_type[event_type] = by_type.get(event_type, 0) + count

    total = sum(by_status.values())
    succeeded = by_status[DeliveryStatus.SENT.value] + by_status[DeliveryStatus.DELIVERED.value]
    return EventStats(
        total=total,
        by_status=by_status,
        by_type=by_type,
        success_rate=round(succeeded / total * 100, 2) if total else 0.0,
    )
