"""
Operational endpoints: health, cron and development seeding.

GET    /api/health                 — Dependency health (database, stripe, n8n)
GET    /api/cron/retry-webhooks    — Resend failed n8n events
GET    /api/dev/seed-responses     — Recent assessments with response counts
POST   /api/dev/seed-responses     — Generate synthetic answers
"""

from __future__ import annotations

import hmac
import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_optional_user
from app.core.config import get_settings
from app.core.database import get_session, ping_db
from app.models.user import User
from app.services import seed as seed_service
from app.services.events import retry_failed_events

from psicomapa_shared.schemas.assessments import (
    SeedAssessmentItem,
    SeedResponsesRequest,
    SeedResponsesResult,
)

log = structlog.get_logger()
router = APIRouter()

APP_VERSION = "1.0.0"
_started_at = time.monotonic()


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    return bool(provided and expected) and hmac.compare_digest(provided.encode(), expected.encode())


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    settings = get_settings()
    services = {
        "database": "up",
        "stripe": "configured" if settings.stripe_secret_key else "not_configured",
        "n8n": "configured" if settings.n8n_webhook_url else "not_configured",
    }
    try:
        await ping_db(session)
    except (SQLAlchemyError, OSError) as exc:
        log.error("health.database_down", error=str(exc))
        services["database"] = "down"

    status = "healthy" if services["database"] == "up" else "unhealthy"
    body = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "services": services,
        "uptime": int(time.monotonic() - _started_at),
    }
    return JSONResponse(status_code=200 if status != "unhealthy" else 503, content=body)


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------

@router.get("/cron/retry-webhooks")
async def retry_webhooks(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
):
    settings = get_settings()
    if settings.is_production:
        token = authorization[7:] if authorization and authorization.startswith("Bearer ") else None
        if not _secret_matches(token, settings.cron_secret):
            raise HTTPException(status_code=401, detail="Unauthorized")

    retried = await retry_failed_events(session)
    log.info("cron.retry_webhooks", retried=retried)
    return {"success": True, "retried": retried, "timestamp": datetime.now(timezone.utc).isoformat()}


# ---------------------------------------------------------------------------
# Development seeding
# ---------------------------------------------------------------------------

async def require_seed_access(
    admin_secret: Optional[str] = Header(None, alias="x-admin-secret"),
    user: Optional[User] = Depends(get_optional_user),
) -> None:
    settings = get_settings()
    if settings.enable_dev_tools:
        return
    if _secret_matches(admin_secret, settings.admin_secret):
        return
    if user and user.is_super_admin:
        return
    raise HTTPException(
        status_code=403,
        detail="Not authorized - development only, admin secret, or super_admin required",
    )


@router.get(
    "/dev/seed-responses",
    response_model=list[SeedAssessmentItem],
    dependencies=[Depends(require_seed_access)],
)
async def list_seedable_assessments(session: AsyncSession = Depends(get_session)):
    return await seed_service.recent_assessments(session)


@router.post(
    "/dev/seed-responses",
    response_model=SeedResponsesResult,
    dependencies=[Depends(require_seed_access)],
)
async def seed_responses(
    body: SeedResponsesRequest,
    session: AsyncSession = Depends(get_session),
):
    return await seed_service.seed_responses(body.assessment_id, body.participant_count, session)
