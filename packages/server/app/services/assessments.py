"""
Assessment service — survey campaigns, their lifecycle, participants and imported responses.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.assessment import Assessment, AssessmentParticipant, Response
from app.models.department import Department
from app.models.questionnaire import Question
from app.services import imports
from app.services.analytics import scale_value
from app.services.billing import require_import
from app.services.events import dispatch_event
from app.services.questionnaires import get_accessible_questionnaire, list_questions

from psicomapa_shared.schemas.assessments import (
    ASSESSMENT_TRANSITIONS,
    AssessmentCreateRequest,
    AssessmentResponse,
    AssessmentStatus,
    AssessmentUpdateRequest,
    ClosureReason,
    ClosureStatusResponse,
    ImportResult,
    ParticipantStatus,
)
from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.questionnaires import NUMERIC_QUESTION_TYPES

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lookups and counts
# ---------------------------------------------------------------------------

async def get_assessment(
    org_id: uuid.UUID,
    assessment_id: uuid.UUID,
    session: AsyncSession,
    include_deleted: bool = False,
) -> Assessment:
    query = select(Assessment).where(Assessment.id == assessment_id, Assessment.org_id == org_id)
    if not include_deleted:
        query = query.where(Assessment.deleted_at.is_(None))
    result = await session.execute(query)
    assessment = result.scalar_one_or_none()
    if not assessment:
        raise HTTPException(status_code=404, detail="Avaliação não encontrada")
    return assessment


async def count_respondents(assessment_id: uuid.UUID, session: AsyncSession) -> int:
    """Distinct anonymous ids that answered the assessment."""
    result = await session.execute(
        select(func.count(func.distinct(Response.anonymous_id))).where(
            Response.assessment_id == assessment_id
        )
    )
    return result.scalar_one()


async def participant_counts(assessment_id: uuid.UUID, session: AsyncSession) -> dict[str, int]:
    result = await session.execute(
        select(AssessmentParticipant.status, func.count())
        .where(AssessmentParticipant.assessment_id == assessment_id)
        .group_by(AssessmentParticipant.status)
    )
    counts = {status.value: 0 for status in ParticipantStatus}
    for status, count in result.all():
        counts[status] = count
    counts["total"] = sum(counts.values())
    return counts


async def to_response(assessment: Assessment, session: AsyncSession) -> AssessmentResponse:
    response = AssessmentResponse.model_validate(assessment)
    response.response_count = await count_respondents(assessment.id, session)
    return response


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def list_assessments(
    org_id: uuid.UUID,
    session: AsyncSession,
    include_deleted: bool = False,
    status: Optional[AssessmentStatus] = None,
) -> list[AssessmentResponse]:
    counts = (
        select(
            Response.assessment_id,
            func.count(func.distinct(Response.anonymous_id)).label("respondents"),
        )
        .group_by(Response.assessment_id)
        .subquery()
    )
    query = (
        select(Assessment, func.coalesce(counts.c.respondents, 0))
        .outerjoin(counts, counts.c.assessment_id == Assessment.id)
        .where(Assessment.org_id == org_id)
        .order_by(Assessment.created_at.desc())
    )
    if not include_deleted:
        query = query.where(Assessment.deleted_at.is_(None))
    if status:
        query = query.where(Assessment.status == status.value)

    result = await session.execute(query)
    items = []
    for assessment, respondents in result.all():
        item = AssessmentResponse.model_validate(assessment)
        item.response_count = respondents
        items.append(item)
    return items


async def _check_department(org_id: uuid.UUID, department_id: uuid.UUID, session: AsyncSession) -> None:
    result = await session.execute(
        select(Department.id).where(Department.id == department_id, Department.org_id == org_id)
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Departamento não encontrado")


async def create_assessment(
    auth: AuthenticatedUser, req: AssessmentCreateRequest, session: AsyncSession
) -> Assessment:
    await get_accessible_questionnaire(auth.org_id, req.questionnaire_id, session)
    if req.department_id:
        await _check_department(auth.org_id, req.department_id, session)

    assessment = Assessment(
        org_id=auth.org_id,
        questionnaire_id=req.questionnaire_id,
        department_id=req.department_id,
        title=req.title,
        description=req.description,
        anonymous=req.anonymous,
        start_date=req.start_date,
        end_date=req.end_date,
        status=AssessmentStatus.DRAFT.value,
        created_by=auth.user_id,
    )
    session.add(assessment)
    await session.flush()
    await session.refresh(assessment)

    log.info("assessment.created", org_id=str(auth.org_id), assessment_id=str(assessment.id))
    await dispatch_event(
        session,
        EventType.DIAGNOSTIC_CREATED,
        auth.org_id,
        {"assessment_id": str(assessment.id), "title": assessment.title},
    )
    return assessment


async def update_assessment(
    org_id: uuid.UUID,
    assessment_id: uuid.UUID,
    req: AssessmentUpdateRequest,
    session: AsyncSession,
) -> Assessment:
    assessment = await get_assessment(org_id, assessment_id, session)
    if assessment.status in (AssessmentStatus.COMPLETED.value, AssessmentStatus.CANCELLED.value):
        raise HTTPException(status_code=409, detail="Avaliações encerradas não podem ser editadas")

    updates = req.model_dump(exclude_unset=True)
    if updates.get("department_id"):
        await _check_department(org_id, updates["department_id"], session)
    for field_name, value in updates.items():
        setattr(assessment, field_name, value)
    if assessment.end_date < assessment.start_date:
        raise HTTPException(status_code=400, detail="A data final deve ser igual ou posterior à data inicial")

    session.add(assessment)
    await session.flush()
    await session.refresh(assessment)
    return assessment


async def _transition(assessment: Assessment, target: AssessmentStatus, session: AsyncSession) -> None:
    current = AssessmentStatus(assessment.status)
    if target not in ASSESSMENT_TRANSITIONS[current]:
        raise HTTPException(
            status_code=409,
            detail=f"Não é possível alterar o status de '{current.value}' para '{target.value}'",
        )
    assessment.status = target.value
    session.add(assessment)
    await session.flush()
    await session.refresh(assessment)
    log.info("assessment.status_changed", assessment_id=str(assessment.id), status=target.value)


async def activate_assessment(
    org_id: uuid.UUID, assessment_id: uuid.UUID, session: AsyncSession
) -> Assessment:
    assessment = await get_assessment(org_id, assessment_id, session)
    questions = await list_questions(assessment.questionnaire_id, session)
    if not questions:
        raise HTTPException(status_code=400, detail="O questionário não possui perguntas")
    await _transition(assessment, AssessmentStatus.ACTIVE, session)

    await dispatch_event(
        session,
        EventType.DIAGNOSTIC_ACTIVATED,
        org_id,
        {
            "assessment_id": str(assessment.id),
            "title": assessment.title,
            "questionnaire_id": str(assessment.questionnaire_id),
            "start_date": assessment.start_date.isoformat(),
            "end_date": assessment.end_date.isoformat(),
            "question_count": len(questions),
        },
    )
    return assessment


async def complete_assessment(
    org_id: uuid.UUID, assessment_id: uuid.UUID, session: AsyncSession
) -> Assessment:
    assessment = await get_assessment(org_id, assessment_id, session)
    await _transition(assessment, AssessmentStatus.COMPLETED, session)

    counts = await participant_counts(assessment.id, session)
    await dispatch_event(
        session,
        EventType.DIAGNOSTIC_COMPLETED,
        org_id,
        {
            "assessment_id": str(assessment.id),
            "title": assessment.title,
            "total_participants": counts["total"],
            "responded_participants": counts[ParticipantStatus.RESPONDED.value],
            "total_respondents": await count_respondents(assessment.id, session),
        },
    )
    return assessment


async def soft_delete_assessment(
    auth: AuthenticatedUser, assessment_id: uuid.UUID, session: AsyncSession
) -> None:
    assessment = await get_assessment(auth.org_id, assessment_id, session)
    assessment.deleted_at = datetime.now(timezone.utc)
    assessment.deleted_by = auth.user_id
    session.add(assessment)
    await session.flush()
    log.info("assessment.deleted", org_id=str(auth.org_id), assessment_id=str(assessment_id))

    if assessment.status == AssessmentStatus.ACTIVE.value:
        await dispatch_event(
            session,
            EventType.DIAGNOSTIC_DEACTIVATED,
            auth.org_id,
            {"assessment_id": str(assessment.id), "title": assessment.title},
        )


async def restore_assessment(
    org_id: uuid.UUID, assessment_id: uuid.UUID, session: AsyncSession
) -> Assessment:
    assessment = await get_assessment(org_id, assessment_id, session, include_deleted=True)
    if assessment.deleted_at is None:
        raise HTTPException(status_code=400, detail="A avaliação não está excluída")
    assessment.deleted_at = None
    assessment.deleted_by = None
    session.add(assessment)
    await session.flush()
    await session.refresh(assessment)
    log.info("assessment.restored", org_id=str(org_id), assessment_id=str(assessment_id))
    return assessment


# ---------------------------------------------------------------------------
# Closure
# ---------------------------------------------------------------------------

def compute_closure(
    status: str,
    end_date: date,
    participant_count: int,
    respondent_count: int,
    today: Optional[date] = None,
) -> ClosureStatusResponse:
    today = today or date.today()

    def closed(reason: ClosureReason, message: str) -> ClosureStatusResponse:
        return ClosureStatusResponse(
            is_closed=True,
            reason=reason,
            message=message,
            participant_count=participant_count,
            respondent_count=respondent_count,
        )

    if status == AssessmentStatus.COMPLETED.value:
        return closed(ClosureReason.MANUAL, "Avaliação encerrada manualmente")
    if end_date < today:
        return closed(ClosureReason.EXPIRED, "Avaliação encerrada por data limite")
    if participant_count > 0 and respondent_count >= participant_count:
        return closed(ClosureReason.ALL_RESPONSES, "Todos os participantes responderam")

    return ClosureStatusResponse(
        is_closed=False,
        reason=ClosureReason.NOT_CLOSED,
        message=f"Aguardando respostas ({respondent_count}/{participant_count or '?'})",
        participant_count=participant_count,
        respondent_count=respondent_count,
    )


async def closure_status(assessment: Assessment, session: AsyncSession) -> ClosureStatusResponse:
    counts = await participant_counts(assessment.id, session)
    return compute_closure(
        assessment.status,
        assessment.end_date,
        counts["total"],
        await count_respondents(assessment.id, session),
    )


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

async def list_participants(
    assessment: Assessment,
    session: AsyncSession,
    status: Optional[ParticipantStatus] = None,
) -> list[AssessmentParticipant]:
    query = select(AssessmentParticipant).where(AssessmentParticipant.assessment_id == assessment.id)
    if status:
        query = query.where(AssessmentParticipant.status == status.value)
    result = await session.execute(query.order_by(AssessmentParticipant.name))
    return list(result.scalars().all())


async def import_participants(
    auth: AuthenticatedUser, assessment: Assessment, content: str, session: AsyncSession
) -> ImportResult:
    """Upsert participants by (assessment, email) and ask n8n to send the invitations."""
    rows, errors, total = imports.parse_participant_rows(content)
    if not rows:
        raise HTTPException(
            status_code=400,
            detail="; ".join(errors[:5]) or "Nenhum participante válido para importar",
        )

    result = await session.execute(
        select(AssessmentParticipant).where(AssessmentParticipant.assessment_id == assessment.id)
    )
    existing = {p.email: p for p in result.scalars().all()}

    for row in rows:
        participant = existing.get(row.email)
        if participant is None:
            participant = AssessmentParticipant(
                assessment_id=assessment.id,
                org_id=assessment.org_id,
                email=row.email,
                name=row.name,
            )
        participant.name = row.name
        participant.department = row.department
        participant.role = row.role
        session.add(participant)
    await session.flush()

    log.info(
        "participants.imported",
        assessment_id=str(assessment.id),
        imported=len(rows),
        skipped=total - len(rows),
    )
    await dispatch_event(
        session,
        EventType.PARTICIPANTS_IMPORTED,
        assessment.org_id,
        {
            "assessment_id": str(assessment.id),
            "assessment_title": assessment.title,
            "organization_name": auth.org.name,
            "imported_by": auth.user.full_name,
            "participant_count": len(rows),
            "end_date": assessment.end_date.isoformat(),
        },
    )
    return ImportResult(
        total_rows=total,
        imported=len(rows),
        skipped=total - len(rows),
        errors=errors,
    )


async def find_participants(
    session: AsyncSession,
    status: ParticipantStatus = ParticipantStatus.PENDING,
    assessment_id: Optional[uuid.UUID] = None,
    org_id: Optional[uuid.UUID] = None,
    limit: int = 100,
) -> list[AssessmentParticipant]:
    """Participants across orgs for the mailing workflow, oldest first."""
    query = select(AssessmentParticipant).where(AssessmentParticipant.status == status.value)
    if assessment_id:
        query = query.where(AssessmentParticipant.assessment_id == assessment_id)
    if org_id:
        query = query.where(AssessmentParticipant.org_id == org_id)
    result = await session.execute(query.order_by(AssessmentParticipant.created_at).limit(limit))
    return list(result.scalars().all())


async def update_participant_status(
    participant_ids: list[uuid.UUID],
    status: ParticipantStatus,
    session: AsyncSession,
) -> int:
    """Status callback from the mailing workflow. Returns the number of rows updated."""
    result = await session.execute(
        select(AssessmentParticipant).where(AssessmentParticipant.id.in_(participant_ids))
    )
    now = datetime.now(timezone.utc)
    updated = 0
    for participant in result.scalars().all():
        participant.status = status.value
        if status == ParticipantStatus.SENT:
            participant.sent_at = now
        elif status == ParticipantStatus.RESPONDED:
            participant.responded_at = now
        session.add(participant)
        updated += 1
    await session.flush()
    return updated


# ---------------------------------------------------------------------------
# Response import
# ---------------------------------------------------------------------------

def _scale_errors(rows: list[imports.ResponseImportRow], questions: dict[uuid.UUID, Question]) -> list[str]:
    errors = []
    for row in rows:
        question = questions[row.question_id]
        raw = row.value or row.response_text
        if question.question_type in NUMERIC_QUESTION_TYPES and raw and scale_value(question, raw) is None:
            errors.append(f"Linha {row.line}: valor fora da escala da pergunta ({raw})")
    return errors


async def import_responses(
    assessment: Assessment, content: str, session: AsyncSession
) -> ImportResult:
    await require_import(assessment.org_id, session)
    questions = {q.id: q for q in await list_questions(assessment.questionnaire_id, session)}
    rows, errors, warnings, total = imports.parse_response_rows(content, set(questions))
    errors = errors or _scale_errors(rows, questions)
    if errors:
        return ImportResult(total_rows=total, imported=0, skipped=total, errors=errors, warnings=warnings)

    for row in rows:
        question = questions[row.question_id]
        session.add(
            Response(
                assessment_id=assessment.id,
                question_id=row.question_id,
                anonymous_id=row.anonymous_id,
                department_id=assessment.department_id,
                response_text=row.response_text,
                value=(
                    scale_value(question, row.value or row.response_text)
                    if question.question_type in NUMERIC_QUESTION_TYPES
                    else None
                ),
                created_at=row.created_at,
            )
        )
    await session.flush()

    log.info("responses.imported", assessment_id=str(assessment.id), imported=len(rows))
    return ImportResult(
        total_rows=total,
        imported=len(rows),
        skipped=total - len(rows),
        warnings=warnings,
    )


async def responses_template(assessment: Assessment, session: AsyncSession) -> str:
    questions = await list_questions(assessment.questionnaire_id, session)
    return imports.responses_template([(q.id, q.text) for q in questions])
