"""
Questionnaire endpoints (org questionnaires plus the shared read-only templates).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.services import questionnaires as questionnaire_service

from psicomapa_shared.schemas.questionnaires import (
    QuestionCreateRequest,
    QuestionnaireCreateRequest,
    QuestionnaireListResponse,
    QuestionnaireResponse,
    QuestionnaireUpdateRequest,
    QuestionResponse,
    QuestionUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=QuestionnaireListResponse)
async def list_questionnaires(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """The org's questionnaires followed by the global templates."""
    return QuestionnaireListResponse(
        data=await questionnaire_service.list_questionnaires(auth.org_id, session)
    )


@router.post("", response_model=QuestionnaireResponse, status_code=201)
async def create_questionnaire(
    body: QuestionnaireCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await questionnaire_service.create_questionnaire(auth, body, session)


@router.get("/{questionnaire_id}", response_model=QuestionnaireResponse)
async def get_questionnaire(
    questionnaire_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    questionnaire = await questionnaire_service.get_accessible_questionnaire(
        auth.org_id, questionnaire_id, session
    )
    return await questionnaire_service.to_response(questionnaire, session)


@router.patch("/{questionnaire_id}", response_model=QuestionnaireResponse)
async def update_questionnaire(
    questionnaire_id: uuid.UUID,
    body: QuestionnaireUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await questionnaire_service.update_questionnaire(auth.org_id, questionnaire_id, body, session)


@router.delete("/{questionnaire_id}", status_code=204)
async def delete_questionnaire(
    questionnaire_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    await questionnaire_service.delete_questionnaire(auth.org_id, questionnaire_id, session)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

@router.post("/{questionnaire_id}/questions", response_model=QuestionResponse, status_code=201)
async def add_question(
    questionnaire_id: uuid.UUID,
    body: QuestionCreateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    question = await questionnaire_service.add_question(auth.org_id, questionnaire_id, body, session)
    return QuestionResponse.model_validate(question)


@router.patch("/{questionnaire_id}/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    questionnaire_id: uuid.UUID,
    question_id: uuid.UUID,
    body: QuestionUpdateRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    question = await questionnaire_service.update_question(
        auth.org_id, questionnaire_id, question_id, body, session
    )
    return QuestionResponse.model_validate(question)


@router.delete("/{questionnaire_id}/questions/{question_id}", status_code=204)
async def delete_question(
    questionnaire_id: uuid.UUID,
    question_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    await questionnaire_service.delete_question(auth.org_id, questionnaire_id, question_id, session)
    return Response(status_code=204)
