"""
Organization API endpoints.

GET    /api/v1/orgs                                  — List orgs for the session user
GET    /api/v1/orgs/{orgSlug}                        — Get org details
PATCH  /api/v1/orgs/{orgSlug}                        — Update org profile/settings
GET    /api/v1/orgs/{orgSlug}/settings/profile       — The caller's profile
PATCH  /api/v1/orgs/{orgSlug}/settings/profile       — Update the caller's name
POST   /api/v1/orgs/{orgSlug}/settings/password      — Change the caller's password
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    get_current_user,
    require_member,
    require_responsavel,
)
from app.core.database import get_session
from app.models.organization import Organization
from app.models.user import User
from app.services import organizations as org_service
from app.services import users as user_service
from app.services.events import dispatch_event

from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.organizations import (
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
)
from psicomapa_shared.schemas.users import (
    PasswordChangeRequest,
    ProfileResponse,
    ProfileUpdateRequest,
)

log = structlog.get_logger()


def _org_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        industry=org.industry,
        size=org.size,
        status=org.status,
        settings=org_service.org_settings(org),
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(user.id, session)
    return OrgListResponse(data=items)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgSlug in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(auth: AuthenticatedUser = Depends(require_member)):
    """Get org details including settings."""
    return _org_response(auth.org)


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    body: OrgUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Update org profile or settings (responsavel only). Settings are deep-merged."""
    try:
        org = await org_service.update_org(auth.org, body, session)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False))

    await dispatch_event(
        session,
        EventType.ORGANIZATION_UPDATED,
        org.id,
        {"fields": sorted(body.model_dump(exclude_unset=True)), "updated_by": str(auth.user_id)},
    )
    return _org_response(org)


@router_scoped.get("/settings/profile", response_model=ProfileResponse, tags=["Settings"])
async def get_profile(auth: AuthenticatedUser = Depends(require_member)):
    return user_service.get_profile(auth)


@router_scoped.patch("/settings/profile", response_model=ProfileResponse, tags=["Settings"])
async def update_profile(
    body: ProfileUpdateRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.update_profile(auth, body.full_name, session)


@router_scoped.post("/settings/password", tags=["Settings"])
async def change_password(
    body: PasswordChangeRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await user_service.change_password(auth.user, body, session)
    return {"message": "Senha alterada com sucesso"}
