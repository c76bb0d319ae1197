"""Action plan endpoints (NR-1 risk mitigation actions)."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.services import action_plans as action_plan_service

from psicomapa_shared.schemas.reports import (
    ActionPlanCreateRequest,
    ActionPlanListResponse,
    ActionPlanResponse,
    ActionPlanUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=ActionPlanListResponse)
async def list_action_plans(
    assessment_id: Optional[uuid.UUID] = Query(None),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    plans = await action_plan_service.list_action_plans(auth.org_id, session, assessment_id)
    return ActionPlanListResponse(data=[ActionPlanResponse.model_validate(p) for p in plans])


@router.post("", response_model=ActionPlanResponse, status_code=201)
async def create_action_plan(
    body: ActionPlanCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    plan = await action_plan_service.create_action_plan(auth, body, session)
    return ActionPlanResponse.model_validate(plan)


@router.patch("/{plan_id}", response_model=ActionPlanResponse)
async def update_action_plan(
    plan_id: uuid.UUID,
    body: ActionPlanUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    plan = await action_plan_service.update_action_plan(auth.org_id, plan_id, body, session)
    return ActionPlanResponse.model_validate(plan)


@router.delete("/{plan_id}", status_code=204)
async def delete_action_plan(
    plan_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    await action_plan_service.delete_action_plan(auth.org_id, plan_id, session)
    return Response(status_code=204)
