"""
Department endpoints.

GET    /api/v1/orgs/{orgSlug}/departments
POST   /api/v1/orgs/{orgSlug}/departments
PATCH  /api/v1/orgs/{orgSlug}/departments/{departmentId}
DELETE /api/v1/orgs/{orgSlug}/departments/{departmentId}
POST   /api/v1/orgs/{orgSlug}/departments/seed
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.services import organizations as org_service

from psicomapa_shared.schemas.organizations import (
    DepartmentCreateRequest,
    DepartmentListResponse,
    DepartmentResponse,
    DepartmentSeedResponse,
    DepartmentUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=DepartmentListResponse)
async def list_departments(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return DepartmentListResponse(data=await org_service.list_departments(auth.org_id, session))


@router.post("", response_model=DepartmentResponse, status_code=201)
async def create_department(
    body: DepartmentCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    department = await org_service.create_department(auth.org_id, body, session)
    return DepartmentResponse.model_validate(department)


@router.post("/seed", response_model=DepartmentSeedResponse)
async def seed_departments(
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Add the default departments the org doesn't have yet."""
    return await org_service.seed_default_departments(auth.org_id, session)


@router.patch("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    department = await org_service.update_department(auth.org_id, department_id, body, session)
    return DepartmentResponse.model_validate(department)


@router.delete("/{department_id}", status_code=204)
async def delete_department(
    department_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    await org_service.delete_department(auth.org_id, department_id, session)
    return Response(status_code=204)
