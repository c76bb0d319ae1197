"""
Inbound machine-to-machine endpoints.

POST   /api/webhooks/stripe        — Stripe events (signed)
POST   /api/webhooks/n8n           — n8n callbacks and delivery confirmations
GET    /api/webhooks/n8n           — n8n health check
GET    /api/n8n/participants       — Participants waiting for the invitation email
PATCH  /api/n8n/participants       — Status reported back by the mailing workflow
"""

from __future__ import annotations

import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.services import assessments as assessment_service
from app.services import stripe_webhooks
from app.services.events import mark_event_delivered, verify_signature

from psicomapa_shared.schemas.assessments import (
    ParticipantResponse,
    ParticipantStatus,
    ParticipantStatusUpdate,
)

log = structlog.get_logger()

webhooks_router = APIRouter()
n8n_router = APIRouter()


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------

@webhooks_router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    session: AsyncSession = Depends(get_session),
):
    """Verify, de-duplicate and apply a Stripe event."""
    payload = await request.body()
    event = stripe_webhooks.construct_event(payload, stripe_signature)

    if not await stripe_webhooks.claim_event(session, event):
        return {"received": True, "duplicate": True, "event_id": event["id"]}

    try:
        await stripe_webhooks.handle_event(session, event)
    except Exception as exc:
        # Rolling back drops the idempotency row too, so Stripe's retry is processed again
        log.exception(
            "stripe.webhook.handler_failed",
            event_id=event.get("id"),
            event_type=event.get("type"),
            error=str(exc),
        )
        await session.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    return {"received": True}


# ---------------------------------------------------------------------------
# n8n callbacks
# ---------------------------------------------------------------------------

@webhooks_router.post("/n8n")
async def n8n_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias="x-webhook-signature"),
    event_id: Optional[str] = Header(None, alias="x-event-id"),
    action: Optional[str] = Header(None, alias="x-n8n-action"),
    session: AsyncSession = Depends(get_session),
):
    body = (await request.body()).decode("utf-8")
    settings = get_settings()

    if settings.is_production and not signature:
        log.error("n8n.webhook.missing_signature")
        raise HTTPException(status_code=401, detail="Signature required in production")
    if signature and not verify_signature(body, signature):
        log.warning("n8n.webhook.invalid_signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    if action == "delivery_confirmation" and event_id:
        try:
            parsed_id = uuid.UUID(event_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid event id")
        if not await mark_event_delivered(session, parsed_id):
            raise HTTPException(status_code=404, detail="Event not found")
        log.info("n8n.webhook.delivery_confirmed", event_id=event_id)
        return {"success": True, "action": "delivery_confirmed", "event_id": event_id}

    try:
        has_payload = bool(json.loads(body)) if body else False
    except json.JSONDecodeError:
        has_payload = False
    log.info("n8n.webhook.received", action=action or "unknown", event_id=event_id, has_payload=has_payload)
    return {
        "success": True,
        "received": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action or "generic",
    }


@webhooks_router.get("/n8n")
async def n8n_webhook_health():
    return {
        "status": "ok",
        "service": "pm-n8n-webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }


# ---------------------------------------------------------------------------
# n8n participants API
# ---------------------------------------------------------------------------

async def require_n8n_credentials(
    request: Request,
    api_key: Optional[str] = Header(None, alias="x-api-key"),
    signature: Optional[str] = Header(None, alias="x-webhook-signature"),
) -> None:
    """API key or body signature. Only enforced in production."""
    settings = get_settings()
    if not settings.is_production:
        return
    if not api_key and not signature:
        raise HTTPException(status_code=401, detail="Authentication required")
    if api_key and not (
        settings.n8n_api_key and hmac.compare_digest(api_key.encode(), settings.n8n_api_key.encode())
    ):
        raise HTTPException(status_code=401, detail="Invalid API key")
    if signature:
        body = (await request.body()).decode("utf-8")
        if not verify_signature(body, signature):
            raise HTTPException(status_code=401, detail="Invalid signature")


@n8n_router.get("/participants", dependencies=[Depends(require_n8n_credentials)])
async def list_participants(
    status: ParticipantStatus = Query(ParticipantStatus.PENDING),
    assessment_id: Optional[uuid.UUID] = Query(None),
    organization_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
):
    participants = await assessment_service.find_participants(
        session, status=status, assessment_id=assessment_id, org_id=organization_id, limit=limit
    )

    assessment_info = None
    if participants and assessment_id:
        assessment = await assessment_service.get_assessment(participants[0].org_id, assessment_id, session)
        assessment_info = {
            "id": str(assessment.id),
            "title": assessment.title,
            "status": assessment.status,
            "public_url": f"{get_settings().site_url.rstrip('/')}/assessments/{assessment.id}/respond",
        }

    return {
        "success": True,
        "count": len(participants),
        "assessment": assessment_info,
        "participants": [
            ParticipantResponse.model_validate(p).model_dump(mode="json") for p in participants
        ],
    }


@n8n_router.patch("/participants", dependencies=[Depends(require_n8n_credentials)])
async def update_participants(
    body: ParticipantStatusUpdate,
    session: AsyncSession = Depends(get_session),
):
    updated = await assessment_service.update_participant_status(body.participant_ids, body.status, session)
    log.info(
        "n8n.participants_updated",
        status=body.status.value,
        requested=len(body.participant_ids),
        updated=updated,
        error=body.error_message,
    )
    return {"success": True, "updated": updated, "failed": len(body.participant_ids) - updated}
