"""
User Management API endpoints.

GET    /api/v1/orgs/{orgSlug}/users                       — List org members
POST   /api/v1/orgs/{orgSlug}/users/invite                — Invite a member
PATCH  /api/v1/orgs/{orgSlug}/users/{userId}/role         — Change role
POST   /api/v1/orgs/{orgSlug}/users/{userId}/deactivate   — Revoke access
POST   /api/v1/orgs/{orgSlug}/users/{userId}/reactivate   — Restore access
POST   /api/v1/orgs/{orgSlug}/users/import                — Bulk import from CSV
GET    /api/v1/orgs/{orgSlug}/users/import/template       — CSV template
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.core.rate_limit import rate_limit
from app.services import imports as import_service
from app.services import users as user_service

from psicomapa_shared.schemas.users import (
    BulkImportResult,
    InviteRequest,
    MemberListResponse,
    MemberResponse,
    RoleUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=MemberListResponse)
async def list_users(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List all members of the org."""
    return MemberListResponse(data=await user_service.list_members(auth.org_id, session))


@router.post(
    "/invite",
    response_model=MemberResponse,
    status_code=201,
    dependencies=[Depends(rate_limit("user_management"))],
)
async def invite_user(
    body: InviteRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Invite a person to the org. They receive an email with a set-password link."""
    return await user_service.invite_member(auth, body, session)


@router.post(
    "/import",
    response_model=BulkImportResult,
    dependencies=[Depends(rate_limit("user_management"))],
)
async def import_users(
    file: UploadFile = File(...),
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    content = import_service.decode_upload(await file.read())
    return await user_service.bulk_import(auth, content, session)


@router.get("/import/template")
async def import_template(auth: AuthenticatedUser = Depends(require_responsavel)):
    return Response(
        content=import_service.users_template(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="modelo_importacao_usuarios.csv"'},
    )


@router.patch("/{user_id}/role", response_model=MemberResponse)
async def update_role(
    user_id: uuid.UUID,
    body: RoleUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.update_role(auth, user_id, body.role, session)


@router.post("/{user_id}/deactivate", response_model=MemberResponse)
async def deactivate_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.set_active(auth, user_id, False, session)


@router.post("/{user_id}/reactivate", response_model=MemberResponse)
async def reactivate_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.set_active(auth, user_id, True, session)
