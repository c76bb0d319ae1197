"""
Questionnaire service — org questionnaires, shared templates and their questions.

Global templates have ``org_id`` NULL and are readable by every org. Locked
questionnaires (the NR-1 regulatory templates) are read-only.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.assessment import Assessment
from app.models.questionnaire import Question, Questionnaire
from app.services.billing import check_limit, get_plan_features

from psicomapa_shared.schemas.questionnaires import (
    LOCKED_QUESTIONNAIRE_MESSAGES,
    QuestionCreateRequest,
    QuestionnaireCreateRequest,
    QuestionnaireResponse,
    QuestionnaireUpdateRequest,
    QuestionResponse,
    QuestionUpdateRequest,
    is_template_questionnaire,
)

log = structlog.get_logger()

QUESTION_LIMIT_MESSAGE = "Limite de perguntas por questionário atingido para o seu plano."


def is_locked(questionnaire: Questionnaire) -> bool:
    return questionnaire.is_locked or is_template_questionnaire(questionnaire.id)


def ensure_unlocked(questionnaire: Questionnaire, action: str) -> None:
    if is_locked(questionnaire):
        raise HTTPException(status_code=409, detail=LOCKED_QUESTIONNAIRE_MESSAGES[action])


async def get_accessible_questionnaire(
    org_id: uuid.UUID, questionnaire_id: uuid.UUID, session: AsyncSession
) -> Questionnaire:
    """An org's own questionnaire or a global template. 404 otherwise."""
    result = await session.execute(
        select(Questionnaire).where(
            Questionnaire.id == questionnaire_id,
            or_(Questionnaire.org_id == org_id, Questionnaire.org_id.is_(None)),
        )
    )
    questionnaire = result.scalar_one_or_none()
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionário não encontrado")
    return questionnaire


async def get_editable_questionnaire(
    org_id: uuid.UUID, questionnaire_id: uuid.UUID, session: AsyncSession, action: str
) -> Questionnaire:
    questionnaire = await get_accessible_questionnaire(org_id, questionnaire_id, session)
    ensure_unlocked(questionnaire, action)
    if questionnaire.org_id != org_id:
        raise HTTPException(status_code=409, detail=LOCKED_QUESTIONNAIRE_MESSAGES[action])
    return questionnaire


async def list_questions(questionnaire_id: uuid.UUID, session: AsyncSession) -> list[Question]:
    result = await session.execute(
        select(Question)
        .where(Question.questionnaire_id == questionnaire_id)
        .order_by(Question.order_index, Question.created_at)
    )
    return list(result.scalars().all())


async def to_response(
    questionnaire: Questionnaire, session: AsyncSession, with_questions: bool = True
) -> QuestionnaireResponse:
    response = QuestionnaireResponse.model_validate(questionnaire)
    if with_questions:
        questions = await list_questions(questionnaire.id, session)
        response.questions = [QuestionResponse.model_validate(q) for q in questions]
    response.is_locked = is_locked(questionnaire)
    return response


async def list_questionnaires(org_id: uuid.UUID, session: AsyncSession) -> list[QuestionnaireResponse]:
    result = await session.execute(
        select(Questionnaire)
        .where(or_(Questionnaire.org_id == org_id, Questionnaire.org_id.is_(None)))
        .order_by(Questionnaire.org_id.is_(None).desc(), Questionnaire.created_at.desc())
    )
    return [await to_response(q, session, with_questions=False) for q in result.scalars().all()]


async def _question_limit(org_id: uuid.UUID, session: AsyncSession) -> Optional[int]:
    features = await get_plan_features(org_id, session)
    return features.config.limits.max_questions_per_assessment if features.config else None


def _copy_question(source: Question, questionnaire_id: uuid.UUID) -> Question:
    return Question(
        questionnaire_id=questionnaire_id,
        text=source.text,
        question_type=source.question_type,
        category=source.category,
        order_index=source.order_index,
        is_required=source.is_required,
        allow_skip=source.allow_skip,
        risk_inverted=source.risk_inverted,
        min_value=source.min_value,
        max_value=source.max_value,
        options=source.options,
        scale_labels=source.scale_labels,
    )


async def create_questionnaire(
    auth: AuthenticatedUser, req: QuestionnaireCreateRequest, session: AsyncSession
) -> QuestionnaireResponse:
    questionnaire = Questionnaire(
        org_id=auth.org_id,
        title=req.title,
        description=req.description,
        introduction_text=req.introduction_text,
        lgpd_consent_text=req.lgpd_consent_text,
        questionnaire_type=req.questionnaire_type.value,
        template_based_on=req.template_based_on,
        created_by=auth.user_id,
    )

    source_questions: list[Question] = []
    if req.template_based_on:
        source = await get_accessible_questionnaire(auth.org_id, req.template_based_on, session)
        source_questions = await list_questions(source.id, session)
        limit = await _question_limit(auth.org_id, session)
        if limit is not None and len(source_questions) > limit:
            raise HTTPException(status_code=403, detail=QUESTION_LIMIT_MESSAGE)
        questionnaire.introduction_text = questionnaire.introduction_text or source.introduction_text
        questionnaire.lgpd_consent_text = questionnaire.lgpd_consent_text or source.lgpd_consent_text

    session.add(questionnaire)
    await session.flush()
    for source_question in source_questions:
        session.add(_copy_question(source_question, questionnaire.id))
    await session.flush()
    await session.refresh(questionnaire)

    log.info(
        "questionnaire.created",
        org_id=str(auth.org_id),
        questionnaire_id=str(questionnaire.id),
        copied_questions=len(source_questions),
    )
    return await to_response(questionnaire, session)


async def update_questionnaire(
    org_id: uuid.UUID,
    questionnaire_id: uuid.UUID,
    req: QuestionnaireUpdateRequest,
    session: AsyncSession,
) -> QuestionnaireResponse:
    questionnaire = await get_editable_questionnaire(org_id, questionnaire_id, session, "cannot_edit")
    for field_name, value in req.model_dump(exclude_unset=True).items():
        setattr(questionnaire, field_name, value.value if hasattr(value, "value") else value)
    session.add(questionnaire)
    await session.flush()
    await session.refresh(questionnaire)
    return await to_response(questionnaire, session)


async def delete_questionnaire(
    org_id: uuid.UUID, questionnaire_id: uuid.UUID, session: AsyncSession
) -> None:
    questionnaire = await get_editable_questionnaire(org_id, questionnaire_id, session, "cannot_delete")
    in_use = await session.execute(
        select(func.count()).select_from(Assessment).where(Assessment.questionnaire_id == questionnaire.id)
    )
    if in_use.scalar_one() > 0:
        raise HTTPException(
            status_code=409,
            detail="Este questionário está vinculado a avaliações e não pode ser excluído.",
        )

    for question in await list_questions(questionnaire.id, session):
        await session.delete(question)
    await session.delete(questionnaire)
    await session.flush()
    log.info("questionnaire.deleted", org_id=str(org_id), questionnaire_id=str(questionnaire_id))


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

async def add_question(
    org_id: uuid.UUID,
    questionnaire_id: uuid.UUID,
    req: QuestionCreateRequest,
    session: AsyncSession,
) -> Question:
    questionnaire = await get_editable_questionnaire(
        org_id, questionnaire_id, session, "cannot_add_questions"
    )
    questions = await list_questions(questionnaire.id, session)
    check_limit(await _question_limit(org_id, session), len(questions), QUESTION_LIMIT_MESSAGE)

    order_index = req.order_index
    if order_index is None:
        order_index = max((q.order_index for q in questions), default=-1) + 1

    question = Question(
        questionnaire_id=questionnaire.id,
        text=req.text,
        question_type=req.question_type.value,
        category=req.category.value if req.category else None,
        order_index=order_index,
        is_required=req.is_required,
        allow_skip=req.allow_skip,
        risk_inverted=req.risk_inverted,
        min_value=req.min_value,
        max_value=req.max_value,
        options=req.options,
        scale_labels=req.scale_labels,
    )
    session.add(question)
    await session.flush()
    return question


async def _get_question(
    questionnaire_id: uuid.UUID, question_id: uuid.UUID, session: AsyncSession
) -> Question:
    result = await session.execute(
        select(Question).where(Question.id == question_id, Question.questionnaire_id == questionnaire_id)
    )
    question = result.scalar_one_or_none()
    if not question:
        raise HTTPException(status_code=404, detail="Pergunta não encontrada")
    return question


async def update_question(
    org_id: uuid.UUID,
    questionnaire_id: uuid.UUID,
    question_id: uuid.UUID,
    req: QuestionUpdateRequest,
    session: AsyncSession,
) -> Question:
    questionnaire = await get_editable_questionnaire(
        org_id, questionnaire_id, session, "cannot_modify_questions"
    )
    question = await _get_question(questionnaire.id, question_id, session)
    for field_name, value in req.model_dump(exclude_unset=True).items():
        setattr(question, field_name, value.value if hasattr(value, "value") else value)
    session.add(question)
    await session.flush()
    await session.refresh(question)
    return question


async def delete_question(
    org_id: uuid.UUID,
    questionnaire_id: uuid.UUID,
    question_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    questionnaire = await get_editable_questionnaire(
        org_id, questionnaire_id, session, "cannot_modify_questions"
    )
    question = await _get_question(questionnaire.id, question_id, session)
    await session.delete(question)
    await session.flush()
