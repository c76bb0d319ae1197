"""
Analytics endpoints. Every aggregate honours the anonymity thresholds.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.services import analytics as analytics_service

from psicomapa_shared.schemas.analytics import (
    AssessmentAnalytics,
    ClimaAnalytics,
    DepartmentAnalytics,
    QuestionDistribution,
    RiskAlertResult,
)

router = APIRouter()


@router.get("/{assessment_id}", response_model=AssessmentAnalytics)
async def assessment_analytics(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Totals, completion rate and NR-1 category scores."""
    assessment = await analytics_service.get_org_assessment(assessment_id, auth.org_id, session)
    return await analytics_service.get_assessment_analytics(assessment, session)


@router.get("/{assessment_id}/questions", response_model=list[QuestionDistribution])
async def question_distributions(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await analytics_service.get_org_assessment(assessment_id, auth.org_id, session)
    return await analytics_service.get_question_distributions(assessment, session)


@router.get("/{assessment_id}/departments", response_model=list[DepartmentAnalytics])
async def department_analytics(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await analytics_service.get_org_assessment(assessment_id, auth.org_id, session)
    return await analytics_service.get_department_analytics(assessment, session)


@router.get("/{assessment_id}/clima", response_model=ClimaAnalytics)
async def clima_analytics(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await analytics_service.get_org_assessment(assessment_id, auth.org_id, session)
    return await analytics_service.get_clima_analytics(assessment, session)


@router.post("/{assessment_id}/risk-alerts", response_model=RiskAlertResult)
async def risk_alerts(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Notify n8n about every category at or above the high-risk score."""
    assessment = await analytics_service.get_org_assessment(assessment_id, auth.org_id, session)
    return await analytics_service.check_risk_alerts(assessment, session)
