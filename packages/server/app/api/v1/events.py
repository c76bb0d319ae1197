"""
Outbound webhook event log (events dispatched to n8n).

- GET /webhooks/events — Paginated event history, filterable by status/type
- GET /webhooks/stats  — Totals by status and type
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_responsavel
from app.core.database import get_session
from app.services import events as event_service

from psicomapa_shared.schemas.events import (
    DeliveryStatus,
    EventStats,
    WebhookEventListResponse,
    WebhookEventResponse,
)

router = APIRouter()


@router.get("/events", response_model=WebhookEventListResponse)
async def list_webhook_events(
    status: Optional[DeliveryStatus] = Query(None),
    event_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    events, total = await event_service.list_events(
        session, auth.org_id, status=status, event_type=event_type, page=page, per_page=per_page
    )
    return WebhookEventListResponse(
        data=[WebhookEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=EventStats)
async def webhook_stats(
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await event_service.event_stats(session, auth.org_id)
