"""
Report service — snapshot analytics of a closed assessment into a GeneratedReport.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.assessment import Assessment
from app.models.report import ActionPlan, GeneratedReport
from app.services import analytics as analytics_service
from app.services.assessments import closure_status, get_assessment
from app.services.events import dispatch_event

from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.reports import (
    ACTION_PLAN_STATUS_LABELS,
    REPORT_TYPE_LABELS,
    ActionPlanStatus,
    ReportCreateRequest,
    ReportStatus,
    ReportType,
)

log = structlog.get_logger()


async def _risk_content(assessment: Assessment, session: AsyncSession) -> dict:
    analytics = await analytics_service.get_assessment_analytics(assessment, session)
    departments = await analytics_service.get_department_analytics(assessment, session)
    visible = [c for c in analytics.categories if not c.is_suppressed and c.response_count > 0]
    ranked = sorted(visible, key=lambda c: c.average_score, reverse=True)
    return {
        "analytics": analytics.model_dump(mode="json"),
        "departments": [d.model_dump(mode="json") for d in departments],
        "alerts": [a.model_dump(mode="json") for a in analytics_service.find_risk_alerts(analytics.categories)],
        "top_risks": [c.category for c in ranked[:3]],
    }


async def _clima_content(assessment: Assessment, session: AsyncSession) -> dict:
    clima = await analytics_service.get_clima_analytics(assessment, session)
    return {"clima": clima.model_dump(mode="json")}


async def _action_plan_content(assessment: Assessment, session: AsyncSession) -> dict:
    content = await _risk_content(assessment, session)
    result = await session.execute(
        select(ActionPlan)
        .where(ActionPlan.org_id == assessment.org_id, ActionPlan.assessment_id == assessment.id)
        .order_by(ActionPlan.deadline)
    )
    plans = result.scalars().all()
    content["action_plans"] = [
        {
            "title": plan.title,
            "responsible": plan.responsible,
            "deadline": plan.deadline.isoformat() if plan.deadline else None,
            "status": plan.status,
            "status_label": ACTION_PLAN_STATUS_LABELS.get(ActionPlanStatus(plan.status), plan.status),
            "risk_block": plan.risk_block,
        }
        for plan in plans
    ]
    return content


CONTENT_BUILDERS = {
    ReportType.RISCOS_PSICOSSOCIAIS: _risk_content,
    ReportType.EXECUTIVO_LIDERANCA: _risk_content,
    ReportType.CORRELACAO: _risk_content,
    ReportType.CLIMA_MENSAL: _clima_content,
    ReportType.PLANO_ACAO: _action_plan_content,
}


async def create_report(
    auth: AuthenticatedUser, req: ReportCreateRequest, session: AsyncSession
) -> GeneratedReport:
    assessment = await get_assessment(auth.org_id, req.assessment_id, session)
    closure = await closure_status(assessment, session)
    if not closure.is_closed:
        raise HTTPException(
            status_code=409,
            detail=f"A avaliação precisa estar encerrada para gerar relatórios. {closure.message}",
        )

    content = await CONTENT_BUILDERS[req.report_type](assessment, session)
    content.update(
        {
            "assessment": {
                "id": str(assessment.id),
                "title": assessment.title,
                "start_date": assessment.start_date.isoformat(),
                "end_date": assessment.end_date.isoformat(),
            },
            "organization_name": auth.org.name,
            "closure": closure.model_dump(mode="json"),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
    )

    report = GeneratedReport(
        org_id=auth.org_id,
        assessment_id=assessment.id,
        report_type=req.report_type.value,
        title=req.title or f"{REPORT_TYPE_LABELS[req.report_type]} - {assessment.title}",
        status=ReportStatus.COMPLETED.value,
        content=content,
        generated_by=auth.user_id,
    )
    session.add(report)
    await session.flush()
    await session.refresh(report)

    log.info(
        "report.generated",
        org_id=str(auth.org_id),
        report_id=str(report.id),
        report_type=req.report_type.value,
    )
    await dispatch_event(
        session,
        EventType.RISK_REPORT_GENERATED,
        auth.org_id,
        {
            "report_id": str(report.id),
            "report_type": req.report_type.value,
            "assessment_id": str(assessment.id),
            "title": report.title,
        },
    )
    return report


async def list_reports(
    org_id: uuid.UUID,
    session: AsyncSession,
    report_type: Optional[ReportType] = None,
    assessment_id: Optional[uuid.UUID] = None,
) -> list[GeneratedReport]:
    query = select(GeneratedReport).where(GeneratedReport.org_id == org_id)
    if report_type:
        query = query.where(GeneratedReport.report_type == report_type.value)
    if assessment_id:
        query = query.where(GeneratedReport.assessment_id == assessment_id)
    result = await session.execute(query.order_by(GeneratedReport.created_at.desc()))
    return list(result.scalars().all())


async def get_report(org_id: uuid.UUID, report_id: uuid.UUID, session: AsyncSession) -> GeneratedReport:
    result = await session.execute(
        select(GeneratedReport).where(GeneratedReport.id == report_id, GeneratedReport.org_id == org_id)
    )
    report = result.scalar_one_or_none()
    if not report:
        raise HTTPException(status_code=404, detail="Relatório não encontrado")
    return report


async def archive_report(org_id: uuid.UUID, report_id: uuid.UUID, session: AsyncSession) -> GeneratedReport:
    report = await get_report(org_id, report_id, session)
    report.status = ReportStatus.ARCHIVED.value
    session.add(report)
    await session.flush()
    await session.refresh(report)
    return report
