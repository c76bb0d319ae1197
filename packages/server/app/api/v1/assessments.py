"""
Assessment (survey campaign) endpoints.

Lifecycle: draft -> active -> completed, with soft delete and super-admin restore.
Participants and historical responses can be imported from CSV.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    require_member,
    require_responsavel,
    require_super_admin,
)
from app.core.database import get_session
from app.services import assessments as assessment_service
from app.services import imports as import_service

from psicomapa_shared.schemas.assessments import (
    AssessmentCreateRequest,
    AssessmentListResponse,
    AssessmentResponse,
    AssessmentStatus,
    AssessmentUpdateRequest,
    ClosureStatusResponse,
    ImportResult,
    ParticipantListResponse,
    ParticipantResponse,
    ParticipantStatus,
)

router = APIRouter()


def _csv_download(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("", response_model=AssessmentListResponse)
async def list_assessments(
    include_deleted: bool = Query(False),
    status: Optional[AssessmentStatus] = Query(None),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    if include_deleted and not auth.is_responsavel:
        raise HTTPException(
            status_code=403,
            detail="Apenas o responsável pela empresa pode ver avaliações excluídas",
        )
    items = await assessment_service.list_assessments(auth.org_id, session, include_deleted, status)
    return AssessmentListResponse(data=items)


@router.post("", response_model=AssessmentResponse, status_code=201)
async def create_assessment(
    body: AssessmentCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.create_assessment(auth, body, session)
    return await assessment_service.to_response(assessment, session)


@router.get("/participants/template")
async def participants_template(auth: AuthenticatedUser = Depends(require_member)):
    return _csv_download(import_service.participants_template(), "modelo_participantes.csv")


@router.get("/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(
        auth.org_id, assessment_id, session, include_deleted=auth.is_responsavel
    )
    return await assessment_service.to_response(assessment, session)


@router.patch("/{assessment_id}", response_model=AssessmentResponse)
async def update_assessment(
    assessment_id: uuid.UUID,
    body: AssessmentUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.update_assessment(auth.org_id, assessment_id, body, session)
    return await assessment_service.to_response(assessment, session)


@router.delete("/{assessment_id}", status_code=204)
async def delete_assessment(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Soft delete. The row stays, flagged with deleted_at/deleted_by."""
    await assessment_service.soft_delete_assessment(auth, assessment_id, session)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@router.post("/{assessment_id}/activate", response_model=AssessmentResponse)
async def activate_assessment(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.activate_assessment(auth.org_id, assessment_id, session)
    return await assessment_service.to_response(assessment, session)


@router.post("/{assessment_id}/complete", response_model=AssessmentResponse)
async def complete_assessment(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.complete_assessment(auth.org_id, assessment_id, session)
    return await assessment_service.to_response(assessment, session)


@router.post("/{assessment_id}/restore", response_model=AssessmentResponse)
async def restore_assessment(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.restore_assessment(auth.org_id, assessment_id, session)
    return await assessment_service.to_response(assessment, session)


@router.get("/{assessment_id}/closure", response_model=ClosureStatusResponse)
async def get_closure_status(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(auth.org_id, assessment_id, session)
    return await assessment_service.closure_status(assessment, session)


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@router.get("/{assessment_id}/participants", response_model=ParticipantListResponse)
async def list_participants(
    assessment_id: uuid.UUID,
    status: Optional[ParticipantStatus] = Query(None),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(auth.org_id, assessment_id, session)
    participants = await assessment_service.list_participants(assessment, session, status)
    return ParticipantListResponse(data=[ParticipantResponse.model_validate(p) for p in participants])


@router.post("/{assessment_id}/participants/import", response_model=ImportResult)
async def import_participants(
    assessment_id: uuid.UUID,
    file: UploadFile = File(...),
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(auth.org_id, assessment_id, session)
    content = import_service.decode_upload(await file.read())
    return await assessment_service.import_participants(auth, assessment, content, session)


# ---------------------------------------------------------------------------
# Historical responses import
# ---------------------------------------------------------------------------

@router.post("/{assessment_id}/responses/import", response_model=ImportResult)
async def import_responses(
    assessment_id: uuid.UUID,
    file: UploadFile = File(...),
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(auth.org_id, assessment_id, session)
    content = import_service.decode_upload(await file.read())
    return await assessment_service.import_responses(assessment, content, session)


@router.get("/{assessment_id}/responses/template")
async def responses_template(
    assessment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    assessment = await assessment_service.get_assessment(auth.org_id, assessment_id, session)
    content = await assessment_service.responses_template(assessment, session)
    return _csv_download(content, f"modelo_respostas_{assessment.id}.csv")
