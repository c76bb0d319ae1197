"""
Development seeding: synthetic survey answers for demos and analytics testing.
"""

from __future__ import annotations

import json
import random
import time
import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.assessment import Assessment, Response
from app.models.questionnaire import Question
from app.services.questionnaires import list_questions

from psicomapa_shared.schemas.assessments import SeedAssessmentItem, SeedResponsesResult
from psicomapa_shared.schemas.questionnaires import QuestionType, TEXT_QUESTION_TYPES

log = structlog.get_logger()

TEXT_RESPONSES = [
    "A comunicação entre departamentos precisa melhorar significativamente.",
    "O ambiente de trabalho é bom, mas há muito estresse com prazos.",
    "Falta reconhecimento pelos esforços da equipe.",
    "A liderança poderia ser mais presente e acessível.",
    "Gostaria de mais oportunidades de desenvolvimento profissional.",
    "O equilíbrio entre vida pessoal e trabalho está comprometido.",
    "A empresa tem bons valores, mas nem sempre são praticados.",
    "Precisamos de mais ferramentas e recursos para trabalhar.",
    "O clima entre colegas é excelente.",
    "Há muita burocracia nos processos internos.",
    "A flexibilidade de horário ajuda muito.",
    "Sinto que meu trabalho faz diferença.",
]

# Skewed towards the middle of the scale
LIKERT_WEIGHTS = [0.1, 0.2, 0.3, 0.25, 0.15]


def likert_value(rng: random.Random) -> int:
    return rng.choices([1, 2, 3, 4, 5], weights=LIKERT_WEIGHTS)[0]


def nps_value(rng: random.Random) -> int:
    roll = rng.random()
    if roll < 0.2:
        return rng.randint(0, 6)
    if roll < 0.5:
        return rng.randint(7, 8)
    return rng.randint(9, 10)


def fake_answer(question: Question, rng: random.Random) -> tuple[str, Optional[int]]:
    """Return (response_text, value) for one synthetic answer."""
    qtype = question.question_type
    if qtype == QuestionType.NPS_SCALE.value or (
        qtype == QuestionType.LIKERT_SCALE.value and question.max_value == 10
    ):
        value = nps_value(rng)
        return str(value), value
    if qtype == QuestionType.LIKERT_SCALE.value:
        value = likert_value(rng)
        return str(value), value
    if qtype == QuestionType.NUMBER.value:
        low = question.min_value if question.min_value is not None else 0
        high = question.max_value if question.max_value is not None else 10
        value = rng.randint(low, max(low, high))
        return str(value), value
    if qtype in TEXT_QUESTION_TYPES:
        return rng.choice(TEXT_RESPONSES), None
    if qtype == QuestionType.SINGLE_CHOICE.value and question.options:
        return str(rng.choice(question.options)), None
    if qtype == QuestionType.MULTIPLE_CHOICE.value:
        options = question.options or ["Opção A", "Opção B"]
        picked = rng.sample(options, k=rng.randint(1, len(options)))
        return json.dumps(picked, ensure_ascii=False), None
    if qtype == QuestionType.DATE.value:
        return time.strftime("%Y-%m-%d"), None
    return ("Sim" if rng.random() > 0.5 else "Não"), None


async def count_responses(assessment_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(Response).where(Response.assessment_id == assessment_id)
    )
    return result.scalar_one()


async def seed_responses(
    assessment_id: uuid.UUID,
    participant_count: int,
    session: AsyncSession,
    rng: Optional[random.Random] = None,
) -> SeedResponsesResult:
    rng = rng or random.Random()
    assessment = await session.get(Assessment, assessment_id)
    if not assessment or assessment.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Avaliação não encontrada")
    questions = await list_questions(assessment.questionnaire_id, session)

    added = 0
    stamp = int(time.time() * 1000)
    for p in range(participant_count):
        anonymous_id = f"test-participant-{stamp}-{p}-{rng.randrange(36 ** 6):06x}"
        for question in questions:
            text, value = fake_answer(question, rng)
            session.add(
                Response(
                    assessment_id=assessment.id,
                    question_id=question.id,
                    anonymous_id=anonymous_id,
                    department_id=assessment.department_id,
                    response_text=text,
                    value=value,
                )
            )
            added += 1
    await session.flush()

    total = await count_responses(assessment.id, session)
    log.info(
        "seed.responses_added",
        assessment_id=str(assessment.id),
        participants=participant_count,
        responses=added,
    )
    return SeedResponsesResult(
        assessment_id=assessment.id,
        participants_added=participant_count,
        responses_added=added,
        questions_per_participant=len(questions),
        total_responses=total,
    )


async def recent_assessments(session: AsyncSession) -> list[SeedAssessmentItem]:
    query = select(Assessment).where(Assessment.deleted_at.is_(None))
    result = await session.execute(query.order_by(Assessment.created_at.desc()).limit(10))
    items = []
    for assessment in result.scalars().all():
        items.append(
            SeedAssessmentItem(
                id=assessment.id,
                title=assessment.title,
                status=assessment.status,
                response_count=await count_responses(assessment.id, session),
            )
        )
    return items
