"""
Organization service — tenant provisioning, settings and departments.
"""

from __future__ import annotations

import re
import unicodedata
import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.department import Department, DepartmentMember
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg

from psicomapa_shared.schemas.common import Role
from psicomapa_shared.schemas.organizations import (
    DEFAULT_DEPARTMENTS,
    DepartmentCreateRequest,
    DepartmentResponse,
    DepartmentSeedResponse,
    DepartmentUpdateRequest,
    OrgSettings,
    OrgStatus,
    OrgUpdateRequest,
)

log = structlog.get_logger()

SLUG_MAX_LENGTH = 50


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def slugify(name: str) -> str:
    """ASCII, lowercase, hyphen-separated slug ("Empresa São João" -> "empresa-sao-joao")."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].strip("-") or "empresa"


async def unique_slug(name: str, session: AsyncSession) -> str:
    base = slugify(name)
    slug = base
    suffix = 1
    while True:
        result = await session.execute(select(Organization.id).where(Organization.slug == slug))
        if result.scalar_one_or_none() is None:
            return slug
        suffix += 1
        slug = f"{base}-{suffix}"


async def provision_organization(
    session: AsyncSession,
    owner: User,
    name: str,
    industry: Optional[str] = None,
    size: Optional[str] = None,
    employee_count: Optional[int] = None,
) -> Organization:
    """Create an org with the owner as responsavel and the default departments."""
    settings = OrgSettings(employee_count=employee_count)
    org = Organization(
        name=name,
        slug=await unique_slug(name, session),
        industry=industry,
        size=size,
        status=OrgStatus.ACTIVE.value,
        settings=settings.model_dump(mode="json"),
    )
    session.add(org)
    await session.flush()

    session.add(UserOrg(user_id=owner.id, org_id=org.id, role=Role.RESPONSAVEL.value))
    await session.flush()

    await seed_default_departments(org.id, session)

    log.info("org.created", org_id=str(org.id), slug=org.slug, owner=str(owner.id))
    return org


async def list_user_orgs(user_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """List all orgs a user actively belongs to, with their role."""
    result = await session.execute(
        select(Organization, UserOrg.role)
        .join(UserOrg, UserOrg.org_id == Organization.id)
        .where(UserOrg.user_id == user_id, UserOrg.is_active.is_(True))
        .order_by(Organization.name)
    )
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "status": org.status,
            "role": role,
        }
        for org, role in result.all()
    ]


async def update_org(
    org: Organization,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Update org profile and/or settings (deep merge)."""
    if req.name is not None:
        org.name = req.name
    if req.industry is not None:
        org.industry = req.industry
    if req.size is not None:
        org.size = req.size.value

    if req.settings is not None:
        merged = _deep_merge(org.settings or {}, req.settings)
        # Validate the merged result; raises ValidationError (422) if invalid
        org.settings = OrgSettings.model_validate(merged).model_dump(mode="json")

    session.add(org)
    await session.flush()
    await session.refresh(org)

    log.info("org.updated", org_id=str(org.id), slug=org.slug)
    return org


def org_settings(org: Organization) -> OrgSettings:
    return OrgSettings.model_validate(org.settings or {})


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

async def _get_department(
    org_id: uuid.UUID, department_id: uuid.UUID, session: AsyncSession
) -> Department:
    result = await session.execute(
        select(Department).where(Department.id == department_id, Department.org_id == org_id)
    )
    department = result.scalar_one_or_none()
    if not department:
        raise HTTPException(status_code=404, detail="Departamento não encontrado")
    return department


async def _ensure_unique_name(
    org_id: uuid.UUID,
    name: str,
    session: AsyncSession,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(Department.id).where(
        Department.org_id == org_id, func.lower(Department.name) == name.strip().lower()
    )
    if exclude_id:
        query = query.where(Department.id != exclude_id)
    result = await session.execute(query)
    if result.first():
        raise HTTPException(status_code=409, detail="Já existe um departamento com este nome")


async def list_departments(org_id: uuid.UUID, session: AsyncSession) -> list[DepartmentResponse]:
    member_counts = (
        select(DepartmentMember.department_id, func.count().label("member_count"))
        .group_by(DepartmentMember.department_id)
        .subquery()
    )
    result = await session.execute(
        select(Department, func.coalesce(member_counts.c.member_count, 0))
        .outerjoin(member_counts, member_counts.c.department_id == Department.id)
        .where(Department.org_id == org_id)
        .order_by(Department.name)
    )
    return [
        DepartmentResponse(
            id=dept.id,
            name=dept.name,
            description=dept.description,
            parent_id=dept.parent_id,
            member_count=count,
            created_at=dept.created_at,
        )
        for dept, count in result.all()
    ]


async def create_department(
    org_id: uuid.UUID, req: DepartmentCreateRequest, session: AsyncSession
) -> Department:
    await _ensure_unique_name(org_id, req.name, session)
    if req.parent_id:
        await _get_department(org_id, req.parent_id, session)

    department = Department(
        org_id=org_id,
        name=req.name.strip(),
        description=req.description,
        parent_id=req.parent_id,
    )
    session.add(department)
    await session.flush()
    log.info("department.created", org_id=str(org_id), department_id=str(department.id))
    return department


async def update_department(
    org_id: uuid.UUID,
    department_id: uuid.UUID,
    req: DepartmentUpdateRequest,
    session: AsyncSession,
) -> Department:
    department = await _get_department(org_id, department_id, session)
    if req.name is not None:
        await _ensure_unique_name(org_id, req.name, session, exclude_id=department.id)
        department.name = req.name.strip()
    if req.description is not None:
        department.description = req.description
    if req.parent_id is not None:
        if req.parent_id == department.id:
            raise HTTPException(status_code=400, detail="Um departamento não pode ser pai de si mesmo")
        parent = await _get_department(org_id, req.parent_id, session)
        while parent.parent_id is not None:
            if parent.parent_id == department.id:
                raise HTTPException(
                    status_code=400, detail="A hierarquia de departamentos não pode formar um ciclo"
                )
            parent = await _get_department(org_id, parent.parent_id, session)
        department.parent_id = req.parent_id

    session.add(department)
    await session.flush()
    await session.refresh(department)
    return department


async def delete_department(
    org_id: uuid.UUID, department_id: uuid.UUID, session: AsyncSession
) -> None:
    department = await _get_department(org_id, department_id, session)
    result = await session.execute(select(Department.id).where(Department.parent_id == department.id))
    if result.first():
        raise HTTPException(
            status_code=409,
            detail="Este departamento possui subdepartamentos. Remova-os primeiro.",
        )

    members = await session.execute(
        select(DepartmentMember).where(DepartmentMember.department_id == department.id)
    )
    for member in members.scalars().all():
        await session.delete(member)
    await session.delete(department)
    await session.flush()
    log.info("department.deleted", org_id=str(org_id), department_id=str(department_id))


async def seed_default_departments(org_id: uuid.UUID, session: AsyncSession) -> DepartmentSeedResponse:
    """Insert the default departments the org does not have yet (matched by name)."""
    result = await session.execute(select(Department.name).where(Department.org_id == org_id))
    existing = {name.strip().lower() for name in result.scalars().all()}

    created = 0
    for default in DEFAULT_DEPARTMENTS:
        if default["name"].lower() in existing:
            continue
        session.add(Department(org_id=org_id, name=default["name"], description=default["description"]))
        created += 1
    await session.flush()

    return DepartmentSeedResponse(created=created, skipped=len(DEFAULT_DEPARTMENTS) - created)
