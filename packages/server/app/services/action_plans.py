"""Action plan service."""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.report import ActionPlan
from app.services.assessments import get_assessment
from app.services.billing import check_limit, get_plan_features

from psicomapa_shared.schemas.reports import ActionPlanCreateRequest, ActionPlanUpdateRequest

log = structlog.get_logger()

ACTION_PLAN_LIMIT_MESSAGE = "Limite de planos de ação atingido para o seu plano."


async def list_action_plans(
    org_id: uuid.UUID, session: AsyncSession, assessment_id: Optional[uuid.UUID] = None
) -> list[ActionPlan]:
    query = select(ActionPlan).where(ActionPlan.org_id == org_id)
    if assessment_id:
        query = query.where(ActionPlan.assessment_id == assessment_id)
    result = await session.execute(query.order_by(ActionPlan.created_at.desc()))
    return list(result.scalars().all())


async def _get_plan(org_id: uuid.UUID, plan_id: uuid.UUID, session: AsyncSession) -> ActionPlan:
    result = await session.execute(
        select(ActionPlan).where(ActionPlan.id == plan_id, ActionPlan.org_id == org_id)
    )
    plan = result.scalar_one_or_none()
    if not plan:
        raise HTTPException(status_code=404, detail="Plano de ação não encontrado")
    return plan


async def create_action_plan(
    auth: AuthenticatedUser, req: ActionPlanCreateRequest, session: AsyncSession
) -> ActionPlan:
    features = await get_plan_features(auth.org_id, session)
    if features.config:
        result = await session.execute(
            select(func.count()).select_from(ActionPlan).where(ActionPlan.org_id == auth.org_id)
        )
        check_limit(
            features.config.limits.ai_action_plans_per_month,
            result.scalar_one(),
            ACTION_PLAN_LIMIT_MESSAGE,
        )

    if req.assessment_id:
        await get_assessment(auth.org_id, req.assessment_id, session)

    plan = ActionPlan(
        org_id=auth.org_id,
        assessment_id=req.assessment_id,
        title=req.title,
        description=req.description,
        responsible=req.responsible,
        deadline=req.deadline,
        status=req.status.value,
        risk_block=req.risk_block.value if req.risk_block else None,
        comments=req.comments,
        created_by=auth.user_id,
    )
    session.add(plan)
    await session.flush()
    await session.refresh(plan)
    log.info("action_plan.created", org_id=str(auth.org_id), plan_id=str(plan.id))
    return plan


async def update_action_plan(
    org_id: uuid.UUID, plan_id: uuid.UUID, req: ActionPlanUpdateRequest, session: AsyncSession
) -> ActionPlan:
    plan = await _get_plan(org_id, plan_id, session)
    for field_name, value in req.model_dump(exclude_unset=True).items():
        setattr(plan, field_name, value.value if hasattr(value, "value") else value)
    session.add(plan)
    await session.flush()
    await session.refresh(plan)
    return plan


async def delete_action_plan(org_id: uuid.UUID, plan_id: uuid.UUID, session: AsyncSession) -> None:
    plan = await _get_plan(org_id, plan_id, session)
    await session.delete(plan)
    await session.flush()
    log.info("action_plan.deleted", org_id=str(org_id), plan_id=str(plan_id))
