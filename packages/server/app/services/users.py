"""
User management service — members, invitations, bulk import and the caller's profile.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    PURPOSE_PASSWORD_SETUP,
    AuthenticatedUser,
    create_password_token,
    hash_password,
    password_link,
    verify_password,
)
from app.models.department import Department, DepartmentMember
from app.models.user import User
from app.models.user_org import UserOrg
from app.services import email as email_service
from app.services.billing import check_limit, get_plan_features
from app.services.events import dispatch_event
from app.services.imports import parse_user_rows

from psicomapa_shared.schemas.common import Role
from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.users import (
    BulkImportResult,
    BulkImportRowError,
    InviteRequest,
    MemberResponse,
    PasswordChangeRequest,
    ProfileResponse,
)

log = structlog.get_logger()

TEAM_LIMIT_MESSAGE = "Limite de membros da equipe atingido para o seu plano. Faça upgrade para convidar mais pessoas."


def _member(user: User, uo: UserOrg) -> MemberResponse:
    return MemberResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=uo.role,
        is_active=uo.is_active,
        created_at=user.created_at,
    )


async def list_members(org_id: uuid.UUID, session: AsyncSession) -> list[MemberResponse]:
    """List all users in an org with their membership info."""
    result = await session.execute(
        select(User, UserOrg)
        .join(UserOrg, UserOrg.user_id == User.id)
        .where(UserOrg.org_id == org_id)
        .order_by(User.full_name)
    )
    return [_member(user, uo) for user, uo in result.all()]


async def _get_membership(
    org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> tuple[User, UserOrg]:
    result = await session.execute(
        select(User, UserOrg)
        .join(UserOrg, UserOrg.user_id == User.id)
        .where(UserOrg.org_id == org_id, User.id == user_id)
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return row[0], row[1]


async def count_active_members(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(UserOrg)
        .where(UserOrg.org_id == org_id, UserOrg.is_active.is_(True))
    )
    return result.scalar_one()


async def _team_limit(org_id: uuid.UUID, session: AsyncSession) -> Optional[int]:
    features = await get_plan_features(org_id, session)
    return features.config.limits.max_team_members if features.config else None


async def _find_department(
    org_id: uuid.UUID, name: str, session: AsyncSession
) -> Optional[Department]:
    result = await session.execute(
        select(Department).where(
            Department.org_id == org_id, func.lower(Department.name) == name.strip().lower()
        )
    )
    return result.scalar_one_or_none()


async def _add_member(
    auth: AuthenticatedUser,
    email: str,
    full_name: str,
    role: Role,
    department_id: Optional[uuid.UUID],
    session: AsyncSession,
) -> tuple[User, UserOrg]:
    """Create the user if needed and attach a membership. Raises 409 if already a member."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        existing = await session.execute(
            select(UserOrg).where(UserOrg.user_id == user.id, UserOrg.org_id == auth.org_id)
        )
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=409, detail="Este usuário já faz parte da organização")
    else:
        user = User(email=email, full_name=full_name)
        session.add(user)
        await session.flush()

    uo = UserOrg(user_id=user.id, org_id=auth.org_id, role=role.value)
    session.add(uo)
    if department_id:
        session.add(DepartmentMember(department_id=department_id, user_id=user.id))
    await session.flush()

    token = create_password_token(user.id, PURPOSE_PASSWORD_SETUP)
    await email_service.send_invitation_email(
        email, user.full_name, auth.org.name, auth.user.full_name, password_link(token)
    )
    await dispatch_event(
        session,
        EventType.USER_INVITED,
        auth.org_id,
        {"user_id": str(user.id), "email": email, "role": role.value, "invited_by": str(auth.user_id)},
    )
    return user, uo


async def invite_member(
    auth: AuthenticatedUser, req: InviteRequest, session: AsyncSession
) -> MemberResponse:
    check_limit(
        await _team_limit(auth.org_id, session),
        await count_active_members(auth.org_id, session),
        TEAM_LIMIT_MESSAGE,
    )

    if req.department_id:
        result = await session.execute(
            select(Department.id).where(
                Department.id == req.department_id, Department.org_id == auth.org_id
            )
        )
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Departamento não encontrado")

    user, uo = await _add_member(auth, req.email, req.full_name, req.role, req.department_id, session)
    log.info("user.invited", org_id=str(auth.org_id), user_id=str(user.id), role=uo.role)
    return _member(user, uo)


async def update_role(
    auth: AuthenticatedUser, user_id: uuid.UUID, role: Role, session: AsyncSession
) -> MemberResponse:
    if user_id == auth.user_id:
        raise HTTPException(status_code=400, detail="Você não pode alterar seu próprio cargo")
    user, uo = await _get_membership(auth.org_id, user_id, session)
    uo.role = role.value
    session.add(uo)
    await session.flush()
    log.info("user.role_changed", org_id=str(auth.org_id), user_id=str(user_id), role=role.value)
    return _member(user, uo)


async def set_active(
    auth: AuthenticatedUser, user_id: uuid.UUID, active: bool, session: AsyncSession
) -> MemberResponse:
    """Deactivate or reactivate a membership. Deactivated members cannot sign in to the org."""
    if user_id == auth.user_id and not active:
        raise HTTPException(status_code=400, detail="Você não pode desativar sua própria conta")
    user, uo = await _get_membership(auth.org_id, user_id, session)
    if active:
        check_limit(
            await _team_limit(auth.org_id, session),
            await count_active_members(auth.org_id, session),
            TEAM_LIMIT_MESSAGE,
        )
    uo.is_active = active
    session.add(uo)
    await session.flush()

    log.info("user.active_changed", org_id=str(auth.org_id), user_id=str(user_id), active=active)
    if not active:
        await dispatch_event(
            session,
            EventType.USER_REMOVED,
            auth.org_id,
            {"user_id": str(user_id), "email": user.email, "removed_by": str(auth.user_id)},
        )
    return _member(user, uo)


async def bulk_import(
    auth: AuthenticatedUser, content: str, session: AsyncSession
) -> BulkImportResult:
    rows, parse_errors = parse_user_rows(content)
    errors = [BulkImportRowError(line=line, email=email, error=error) for line, email, error in parse_errors]

    limit = await _team_limit(auth.org_id, session)
    active = await count_active_members(auth.org_id, session)
    created = 0
    skipped = 0
    for row in rows:
        if limit is not None and active >= limit:
            errors.append(BulkImportRowError(line=row.line, email=row.email, error=TEAM_LIMIT_MESSAGE))
            continue

        department_id = None
        if row.department:
            department = await _find_department(auth.org_id, row.department, session)
            department_id = department.id if department else None

        try:
            await _add_member(auth, row.email, row.full_name, row.role, department_id, session)
        except HTTPException as exc:
            if exc.status_code != 409:
                raise
            skipped += 1
            continue
        created += 1
        active += 1

    log.info(
        "user.bulk_import",
        org_id=str(auth.org_id),
        created=created,
        skipped=skipped,
        errors=len(errors),
    )
    return BulkImportResult(
        total_rows=len(rows) + len(parse_errors),
        created=created,
        skipped=skipped,
        errors=errors,
    )


# ---------------------------------------------------------------------------
# Profile (the caller's own account)
# ---------------------------------------------------------------------------

def get_profile(auth: AuthenticatedUser) -> ProfileResponse:
    return ProfileResponse(
        id=auth.user.id,
        email=auth.user.email,
        full_name=auth.user.full_name,
        role=auth.role,
        is_super_admin=auth.is_super_admin,
    )


async def update_profile(
    auth: AuthenticatedUser, full_name: str, session: AsyncSession
) -> ProfileResponse:
    auth.user.full_name = full_name.strip()
    session.add(auth.user)
    await session.flush()
    return get_profile(auth)


async def change_password(
    user: User, req: PasswordChangeRequest, session: AsyncSession
) -> None:
    if not user.password_hash or not verify_password(req.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Senha atual incorreta")
    user.password_hash = hash_password(req.new_password)
    session.add(user)
    await session.flush()
    log.info("user.password_changed", user_id=str(user.id))
