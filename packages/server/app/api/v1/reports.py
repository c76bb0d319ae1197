"""
Report endpoints: saved report snapshots and file exports (PDF, Excel, CSV).

POST   /api/v1/orgs/{orgSlug}/reports
GET    /api/v1/orgs/{orgSlug}/reports
GET    /api/v1/orgs/{orgSlug}/reports/{reportId}
PATCH  /api/v1/orgs/{orgSlug}/reports/{reportId}/archive
GET    /api/v1/orgs/{orgSlug}/exports/{assessmentId}.{pdf|xlsx|csv}
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.core.rate_limit import rate_limit
from app.services import exports as export_service
from app.services import reports as report_service
from app.services.assessments import get_assessment
from app.services.billing import require_export

from psicomapa_shared.schemas.reports import (
    ReportCreateRequest,
    ReportListResponse,
    ReportResponse,
    ReportType,
)

router = APIRouter()
exports_router = APIRouter()


@router.post(
    "",
    response_model=ReportResponse,
    status_code=201,
    dependencies=[Depends(rate_limit("heavy"))],
)
async def create_report(
    body: ReportCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Snapshot the analytics of a closed assessment."""
    report = await report_service.create_report(auth, body, session)
    return ReportResponse.model_validate(report)


@router.get("", response_model=ReportListResponse)
async def list_reports(
    report_type: Optional[ReportType] = Query(None),
    assessment_id: Optional[uuid.UUID] = Query(None),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    reports = await report_service.list_reports(auth.org_id, session, report_type, assessment_id)
    return ReportListResponse(data=[ReportResponse.model_validate(r) for r in reports])


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ReportResponse.model_validate(await report_service.get_report(auth.org_id, report_id, session))


@router.patch("/{report_id}/archive", response_model=ReportResponse)
async def archive_report(
    report_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return ReportResponse.model_validate(await report_service.archive_report(auth.org_id, report_id, session))


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

@exports_router.get(
    "/{assessment_id}.{fmt}",
    dependencies=[Depends(rate_limit("heavy"))],
)
async def export_assessment(
    assessment_id: uuid.UUID,
    fmt: Literal["pdf", "xlsx", "csv"],
    kind: Literal["categories", "responses"] = Query("categories"),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Download the assessment report. Gated by plan and by the anonymity thresholds."""
    await require_export(auth.org_id, fmt, session)
    assessment = await get_assessment(auth.org_id, assessment_id, session)
    data = await export_service.load_export_data(assessment, session)
    content, media_type = export_service.build_export(data, fmt, kind)

    filename = export_service.export_filename(assessment, fmt)
    if fmt == "csv" and kind == "responses":
        filename = filename.replace("relatorio-", "respostas-", 1)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
