"""
Public (unauthenticated) survey access: fetch an active assessment and submit answers.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.assessment import Assessment, AssessmentParticipant, Response
from app.models.department import Department
from app.models.organization import Organization
from app.models.questionnaire import Question, Questionnaire
from app.services.analytics import scale_value
from app.services.events import dispatch_event
from app.services.organizations import org_settings
from app.services.questionnaires import list_questions

from psicomapa_shared.schemas.assessments import (
    AnswerValue,
    AssessmentStatus,
    ParticipantStatus,
    PublicAssessmentResponse,
    PublicSubmissionRequest,
    PublicSubmissionResponse,
)
from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.questionnaires import NUMERIC_QUESTION_TYPES, QuestionResponse

log = structlog.get_logger()

NOT_AVAILABLE = "Avaliação não encontrada ou não está ativa"


async def _load_open_assessment(
    assessment_id: uuid.UUID, session: AsyncSession, today: Optional[date] = None
) -> Assessment:
    today = today or date.today()
    result = await session.execute(
        select(Assessment).where(Assessment.id == assessment_id, Assessment.deleted_at.is_(None))
    )
    assessment = result.scalar_one_or_none()
    if not assessment or assessment.status != AssessmentStatus.ACTIVE.value:
        raise HTTPException(status_code=404, detail=NOT_AVAILABLE)
    if today < assessment.start_date:
        raise HTTPException(
            status_code=403,
            detail={"code": "not_started", "message": "Esta avaliação ainda não começou"},
        )
    if today > assessment.end_date:
        raise HTTPException(
            status_code=403,
            detail={"code": "expired", "message": "O prazo desta avaliação foi encerrado"},
        )
    return assessment


async def get_public_assessment(
    assessment_id: uuid.UUID, session: AsyncSession
) -> PublicAssessmentResponse:
    assessment = await _load_open_assessment(assessment_id, session)
    questionnaire = await session.get(Questionnaire, assessment.questionnaire_id)
    org = await session.get(Organization, assessment.org_id)
    questions = await list_questions(assessment.questionnaire_id, session)

    return PublicAssessmentResponse(
        id=assessment.id,
        title=assessment.title,
        description=assessment.description,
        organization_name=org.name,
        start_date=assessment.start_date,
        end_date=assessment.end_date,
        introduction_text=questionnaire.introduction_text if questionnaire else None,
        lgpd_consent_text=questionnaire.lgpd_consent_text if questionnaire else None,
        questions=[QuestionResponse.model_validate(q) for q in questions],
    )


def answer_text(answer: AnswerValue) -> Optional[str]:
    """Text form of an answer, or None when the question was left blank."""
    if answer is None:
        return None
    if isinstance(answer, list):
        parts = [str(item).strip() for item in answer if str(item).strip()]
        return ", ".join(parts) or None
    if isinstance(answer, float) and answer.is_integer():
        answer = int(answer)
    text = str(answer).strip()
    return text or None


def missing_required(questions: list[Question], answers: dict[uuid.UUID, AnswerValue]) -> list[uuid.UUID]:
    return [
        q.id
        for q in questions
        if q.is_required and not q.allow_skip and answer_text(answers.get(q.id)) is None
    ]


def out_of_scale_answers(
    questions: list[Question], answers: dict[uuid.UUID, AnswerValue]
) -> list[uuid.UUID]:
    invalid = []
    for question in questions:
        if question.question_type not in NUMERIC_QUESTION_TYPES:
            continue
        text = answer_text(answers.get(question.id))
        if text is not None and scale_value(question, text) is None:
            invalid.append(question.id)
    return invalid


def build_responses(
    assessment: Assessment,
    questions: list[Question],
    answers: dict[uuid.UUID, AnswerValue],
    anonymous_id: str,
    department_id: Optional[uuid.UUID],
) -> list[Response]:
    responses = []
    for question in questions:
        text = answer_text(answers.get(question.id))
        if text is None:
            continue
        value = None
        if question.question_type in NUMERIC_QUESTION_TYPES:
            value = scale_value(question, text)
        responses.append(
            Response(
                assessment_id=assessment.id,
                question_id=question.id,
                anonymous_id=anonymous_id,
                department_id=department_id,
                response_text=text,
                value=value,
            )
        )
    return responses


async def submit_responses(
    assessment_id: uuid.UUID, req: PublicSubmissionRequest, session: AsyncSession
) -> PublicSubmissionResponse:
    assessment = await _load_open_assessment(assessment_id, session)
    questionnaire = await session.get(Questionnaire, assessment.questionnaire_id)
    if questionnaire and questionnaire.lgpd_consent_text and not req.consent_given:
        raise HTTPException(status_code=400, detail="É necessário aceitar o termo de consentimento (LGPD)")

    questions = await list_questions(assessment.questionnaire_id, session)
    known = {q.id for q in questions}
    unknown = [str(qid) for qid in req.answers if qid not in known]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Perguntas inválidas: {', '.join(unknown)}")

    missing = missing_required(questions, req.answers)
    if missing:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Responda todas as perguntas obrigatórias",
                "missing_questions": [str(qid) for qid in missing],
            },
        )

    out_of_scale = out_of_scale_answers(questions, req.answers)
    if out_of_scale:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Há respostas fora da escala da pergunta",
                "invalid_questions": [str(qid) for qid in out_of_scale],
            },
        )

    department_id = req.department_id or assessment.department_id
    if req.department_id:
        result = await session.execute(
            select(Department.id).where(
                Department.id == req.department_id, Department.org_id == assessment.org_id
            )
        )
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Departamento inválido")

    anonymous_id = str(uuid.uuid4())
    responses = build_responses(assessment, questions, req.answers, anonymous_id, department_id)
    session.add_all(responses)

    if req.participant_email:
        result = await session.execute(
            select(AssessmentParticipant).where(
                AssessmentParticipant.assessment_id == assessment.id,
                AssessmentParticipant.email == req.participant_email.lower(),
            )
        )
        participant = result.scalar_one_or_none()
        if participant:
            participant.status = ParticipantStatus.RESPONDED.value
            participant.responded_at = datetime.now(timezone.utc)
            session.add(participant)
    await session.flush()

    log.info(
        "public.response_submitted",
        assessment_id=str(assessment.id),
        answers=len(responses),
    )

    org = await session.get(Organization, assessment.org_id)
    if org_settings(org).notifications.response_events_enabled:
        await dispatch_event(
            session,
            EventType.DIAGNOSTIC_RESPONSE_RECEIVED,
            assessment.org_id,
            {
                "assessment_id": str(assessment.id),
                "assessment_title": assessment.title,
                "anonymous_id": anonymous_id,
                "answers_saved": len(responses),
            },
        )

    return PublicSubmissionResponse(success=True, anonymous_id=anonymous_id, answers_saved=len(responses))
