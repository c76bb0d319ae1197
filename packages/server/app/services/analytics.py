"""
Analytics service: in-memory aggregation of survey responses.

Each view loads the assessment's responses joined to their questions in one
query, then reduces them in a single pass. The reducers take plain
``(Response, Question)`` pairs so they can be exercised without a database.
"""

from __future__ import annotations

import math
import uuid
from collections import Counter, defaultdict
from typing import Iterable, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.assessment import Assessment, Response
from app.models.base import as_utc
from app.models.department import Department, DepartmentMember
from app.models.questionnaire import Question
from app.services import anonymity
from app.services.anonymity import Threshold
from app.services.events import dispatch_event

from psicomapa_shared.schemas.analytics import (
    AssessmentAnalytics,
    CategoryScore,
    ClimaAnalytics,
    ClimaQuestion,
    ClimaScale,
    ClimaTextResponse,
    ClimaTheme,
    DepartmentAnalytics,
    DistributionBucket,
    QuestionDistribution,
    RiskAlert,
    RiskAlertResult,
)
from psicomapa_shared.schemas.common import RiskCategory, RiskLevel, category_label
from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.questionnaires import QuestionType

log = structlog.get_logger()

ResponseRow = tuple[Response, Question]

RISK_ALERT_THRESHOLD = 3.5
RISK_CRITICAL_THRESHOLD = 4.0

# Climate survey template questions and the theme each one measures
CLIMA_QUESTION_THEMES: dict[uuid.UUID, tuple[str, str]] = {
    uuid.UUID("c1111111-0001-4000-8000-000000000001"): ("bem_estar", "Bem-estar"),
    uuid.UUID("c1111111-0002-4000-8000-000000000002"): ("carga_trabalho", "Carga de Trabalho"),
    uuid.UUID("c1111111-0003-4000-8000-000000000003"): ("carga_trabalho", "Carga de Trabalho"),
    uuid.UUID("c1111111-0004-4000-8000-000000000004"): ("lideranca", "Liderança"),
    uuid.UUID("c1111111-0005-4000-8000-000000000005"): ("lideranca", "Liderança"),
    uuid.UUID("c1111111-0006-4000-8000-000000000006"): ("lideranca", "Liderança"),
    uuid.UUID("c1111111-0007-4000-8000-000000000007"): ("clima", "Clima & Segurança"),
    uuid.UUID("c1111111-0008-4000-8000-000000000008"): ("clima", "Clima & Segurança"),
    uuid.UUID("c1111111-0009-4000-8000-000000000009"): ("satisfacao", "Satisfação (NPS)"),
    uuid.UUID("c1111111-0010-4000-8000-000000000010"): ("qualitativo", "Feedback Aberto"),
}
CLIMA_OTHER_THEME = ("outros", "Outros")
CLIMA_NPS_QUESTION_NUMBER = 9


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float, digits: int = 2) -> float:
    """Round halves up for positive values (2.5 -> 3 at zero digits)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def parse_number(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    try:
        value = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def scale_value(question: Question, text: Optional[str]) -> Optional[int]:
    """Integer answer to a numeric question, or None when it is not a number inside the question's scale."""
    number = parse_number(text)
    if number is None:
        return None
    value = int(round(number))
    if question.min_value is not None and value < question.min_value:
        return None
    if question.max_value is not None and value > question.max_value:
        return None
    return value


def category_risk_level(score: float) -> RiskLevel:
    """Risk for a category score on the 1..5 scale where higher means more risk."""
    if score >= 3.5:
        return RiskLevel.HIGH
    if score >= 2.5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def clima_risk_level(score: float) -> RiskLevel:
    """Risk for a climate theme score on the 1..5 scale where higher is better."""
    if score < 2.5:
        return RiskLevel.HIGH
    if score < 3.5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def percentage_risk_level(percentage: float) -> RiskLevel:
    if percentage <= 40:
        return RiskLevel.LOW
    if percentage <= 70:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def normalized_likert(response: Response, question: Question) -> Optional[float]:
    """Likert answer in 1..5 oriented so that higher means more risk, or None."""
    if question.question_type != QuestionType.LIKERT_SCALE.value:
        return None
    value = parse_number(response.response_text)
    if value is None and response.value is not None:
        value = float(response.value)
    if value is None or not 1 <= value <= 5:
        return None
    risk_inverted = True if question.risk_inverted is None else question.risk_inverted
    return value if risk_inverted else 6 - value


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------

def compute_category_scores(rows: Iterable[ResponseRow]) -> list[CategoryScore]:
    """Average normalized likert score per NR-1 category, in fixed category order."""
    scores: dict[str, list[float]] = {c.value: [] for c in RiskCategory}
    question_ids: dict[str, set[uuid.UUID]] = {c.value: set() for c in RiskCategory}

    for response, question in rows:
        category = question.category
        if category not in scores:
            continue
        question_ids[category].add(response.question_id)
        normalized = normalized_likert(response, question)
        if normalized is not None:
            scores[category].append(normalized)

    result = []
    for category in RiskCategory:
        values = scores[category.value]
        suppressed = not anonymity.meets_threshold(len(values), Threshold.CATEGORY)
        average = 0.0 if suppressed else _mean(values)
        level = RiskLevel.LOW if suppressed or not values else category_risk_level(average)
        result.append(
            CategoryScore(
                category=category.value,
                label=category_label(category.value),
                average_score=round_half_up(average),
                question_count=len(question_ids[category.value]),
                response_count=len(values),
                risk_level=level.value,
                is_suppressed=suppressed,
            )
        )
    return result


def compute_assessment_analytics(
    assessment_id: uuid.UUID,
    rows: list[ResponseRow],
    total_questions: int,
) -> AssessmentAnalytics:
    participants = len({response.anonymous_id for response, _ in rows})
    total_responses = len(rows)
    completion_rate = 0.0
    if total_questions > 0 and participants > 0:
        completion_rate = total_responses / (participants * total_questions) * 100

    last_response_date = None
    if rows:
        last_response_date = max(as_utc(response.created_at) for response, _ in rows)

    status = anonymity.suppression_status(participants, Threshold.ASSESSMENT)
    categories = compute_category_scores(rows)
    if status.is_suppressed:
        categories = [
            c.model_copy(update={"is_suppressed": True, "average_score": 0.0, "risk_level": RiskLevel.LOW.value})
            for c in categories
        ]

    return AssessmentAnalytics(
        assessment_id=assessment_id,
        total_participants=participants,
        total_questions=total_questions,
        total_responses=total_responses,
        completion_rate=round_half_up(completion_rate),
        last_response_date=last_response_date,
        categories=categories,
        is_suppressed=status.is_suppressed,
        suppression=status if status.is_suppressed else None,
    )


def compute_question_distribution(
    question: Question, responses: Iterable[Response]
) -> QuestionDistribution:
    counts: Counter[str] = Counter()
    for response in responses:
        text = response.response_text
        if text is None or text.strip() == "":
            continue
        counts[text] += 1

    total = sum(counts.values())
    suppressed = not anonymity.meets_threshold(total, Threshold.QUESTION)
    buckets = []
    if not suppressed:
        buckets = [
            DistributionBucket(
                value=value,
                count=count,
                percentage=round_half_up(count / total * 100),
            )
            for value, count in counts.items()
        ]

    return QuestionDistribution(
        question_id=question.id,
        question_text=question.text or "",
        question_type=question.question_type or QuestionType.TEXT.value,
        question_category=question.category or "",
        responses=buckets,
        is_suppressed=suppressed,
        total_responses=total,
    )


def compute_department_analytics(
    departments: list[Department],
    employee_counts: dict[uuid.UUID, int],
    rows: list[ResponseRow],
) -> list[DepartmentAnalytics]:
    """Per-department participation and average risk score, smallest groups suppressed."""
    participants: dict[uuid.UUID, set[str]] = defaultdict(set)
    response_counts: Counter[uuid.UUID] = Counter()
    scores: dict[uuid.UUID, list[float]] = defaultdict(list)

    for response, question in rows:
        dept_id = response.department_id
        if dept_id is None:
            continue
        participants[dept_id].add(response.anonymous_id)
        response_counts[dept_id] += 1
        normalized = normalized_likert(response, question)
        if normalized is not None:
            scores[dept_id].append(normalized)

    result = []
    for dept in departments:
        participant_count = len(participants[dept.id])
        suppressed = not anonymity.meets_threshold(participant_count, Threshold.DEPARTMENT)
        values = scores[dept.id]
        average = 0.0 if suppressed else _mean(values)
        level = RiskLevel.LOW if suppressed or not values else category_risk_level(average)
        result.append(
            DepartmentAnalytics(
                id=dept.id,
                name=dept.name,
                participant_count=0 if suppressed else participant_count,
                response_count=0 if suppressed else response_counts[dept.id],
                average_score=round_half_up(average),
                risk_level=level.value,
                employee_count=employee_counts.get(dept.id, 0),
                is_suppressed=suppressed,
            )
        )

    result.sort(key=lambda d: (d.is_suppressed, -d.participant_count))
    return result


def _clima_scale(question: Question) -> ClimaScale:
    if question.question_type in (QuestionType.TEXT.value, QuestionType.LONG_TEXT.value):
        return ClimaScale.TEXT
    if (question.max_value or 5) == 10:
        return ClimaScale.NPS
    return ClimaScale.LIKERT


def _distribution_sort_key(bucket: DistributionBucket):
    number = parse_number(bucket.value)
    # Numeric values first in numeric order, then the rest alphabetically
    return (0, number, "") if number is not None else (1, 0.0, bucket.value)


def compute_clima_analytics(rows: list[ResponseRow]) -> ClimaAnalytics:
    if not rows:
        return ClimaAnalytics(
            total_participants=0,
            questions=[],
            themes=[],
            text_responses=[],
            overall_satisfaction=0.0,
        )

    participants = len({response.anonymous_id for response, _ in rows})

    questions_by_id: dict[uuid.UUID, Question] = {}
    values_by_question: dict[uuid.UUID, list[str]] = defaultdict(list)
    for response, question in rows:
        questions_by_id.setdefault(response.question_id, question)
        text = response.response_text
        if text is not None and text.strip() != "":
            values_by_question[response.question_id].append(text)

    questions: list[ClimaQuestion] = []
    text_responses: list[ClimaTextResponse] = []
    for question_id, question in questions_by_id.items():
        theme, label = CLIMA_QUESTION_THEMES.get(question_id, CLIMA_OTHER_THEME)
        scale = _clima_scale(question)
        values = values_by_question[question_id]

        numbers = [n for n in (parse_number(v) for v in values) if n is not None]
        total = len(values)
        buckets = [
            DistributionBucket(
                value=value,
                count=count,
                percentage=round_half_up(count / total * 100, 0) if total else 0,
            )
            for value, count in Counter(values).items()
        ]
        buckets.sort(key=_distribution_sort_key)

        if scale == ClimaScale.TEXT:
            text_responses.extend(ClimaTextResponse(text=v, theme=label) for v in values)

        questions.append(
            ClimaQuestion(
                question_id=question_id,
                question_number=question.order_index or 0,
                question_text=question.text or "",
                theme=theme,
                theme_label=label,
                average_score=round_half_up(_mean(numbers)),
                response_count=total,
                distribution=buckets,
                scale=scale,
            )
        )

    questions.sort(key=lambda q: q.question_number)

    theme_labels: dict[str, str] = {}
    theme_scores: dict[str, list[float]] = defaultdict(list)
    theme_responses: Counter[str] = Counter()
    for q in questions:
        if q.scale == ClimaScale.TEXT:
            continue
        theme_labels.setdefault(q.theme, q.theme_label)
        theme_responses[q.theme] += q.response_count
        if q.scale == ClimaScale.NPS:
            theme_scores[q.theme].append(q.average_score / 10 * 4 + 1)
        else:
            theme_scores[q.theme].append(q.average_score)

    themes = []
    for theme, label in theme_labels.items():
        average = _mean(theme_scores[theme])
        themes.append(
            ClimaTheme(
                theme=theme,
                label=label,
                average_score=round_half_up(average),
                question_count=len(theme_scores[theme]),
                response_count=theme_responses[theme],
                risk_level=clima_risk_level(average).value,
            )
        )

    nps = next((q for q in questions if q.question_number == CLIMA_NPS_QUESTION_NUMBER), None)

    return ClimaAnalytics(
        total_participants=participants,
        questions=questions,
        themes=themes,
        text_responses=text_responses,
        overall_satisfaction=nps.average_score if nps else 0.0,
    )


def find_risk_alerts(categories: list[CategoryScore]) -> list[RiskAlert]:
    alerts = []
    for category in categories:
        if category.risk_level != RiskLevel.HIGH.value:
            continue
        if category.average_score < RISK_ALERT_THRESHOLD:
            continue
        level = (
            RiskLevel.CRITICAL
            if category.average_score >= RISK_CRITICAL_THRESHOLD
            else RiskLevel.HIGH
        )
        alerts.append(
            RiskAlert(
                category=category.category,
                category_name=category.label,
                current_score=category.average_score,
                threshold=RISK_ALERT_THRESHOLD,
                risk_level=level.value,
            )
        )
    return alerts


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

async def get_org_assessment(
    assessment_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> Assessment:
    result = await session.execute(
        select(Assessment).where(
            Assessment.id == assessment_id,
            Assessment.org_id == org_id,
            Assessment.deleted_at.is_(None),
        )
    )
    assessment = result.scalar_one_or_none()
    if not assessment:
        raise HTTPException(status_code=404, detail="Avaliação não encontrada")
    return assessment


async def load_response_rows(
    assessment_id: uuid.UUID, session: AsyncSession
) -> list[ResponseRow]:
    result = await session.execute(
        select(Response, Question)
        .join(Question, Question.id == Response.question_id)
        .where(Response.assessment_id == assessment_id)
    )
    return [(response, question) for response, question in result.all()]


async def count_questions(questionnaire_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(Question).where(Question.questionnaire_id == questionnaire_id)
    )
    return result.scalar_one()


async def get_assessment_analytics(
    assessment: Assessment, session: AsyncSession
) -> AssessmentAnalytics:
    rows = await load_response_rows(assessment.id, session)
    total_questions = await count_questions(assessment.questionnaire_id, session)
    analytics = compute_assessment_analytics(assessment.id, rows, total_questions)
    log.info(
        "analytics.computed",
        assessment_id=str(assessment.id),
        participants=analytics.total_participants,
        responses=analytics.total_responses,
        suppressed=analytics.is_suppressed,
    )
    return analytics


async def get_question_distributions(
    assessment: Assessment, session: AsyncSession
) -> list[QuestionDistribution]:
    result = await session.execute(
        select(Question)
        .where(Question.questionnaire_id == assessment.questionnaire_id)
        .order_by(Question.order_index)
    )
    questions = result.scalars().all()

    by_question: dict[uuid.UUID, list[Response]] = defaultdict(list)
    for response, _ in await load_response_rows(assessment.id, session):
        by_question[response.question_id].append(response)

    return [compute_question_distribution(q, by_question[q.id]) for q in questions]


async def get_department_analytics(
    assessment: Assessment, session: AsyncSession
) -> list[DepartmentAnalytics]:
    result = await session.execute(
        select(Department).where(Department.org_id == assessment.org_id).order_by(Department.name)
    )
    departments = list(result.scalars().all())
    if not departments:
        return []

    result = await session.execute(
        select(DepartmentMember.department_id, func.count())
        .where(DepartmentMember.department_id.in_([d.id for d in departments]))
        .group_by(DepartmentMember.department_id)
    )
    employee_counts = {dept_id: count for dept_id, count in result.all()}

    rows = await load_response_rows(assessment.id, session)
    return compute_department_analytics(departments, employee_counts, rows)


async def get_clima_analytics(assessment: Assessment, session: AsyncSession) -> ClimaAnalytics:
    rows = await load_response_rows(assessment.id, session)
    return compute_clima_analytics(rows)


async def check_risk_alerts(assessment: Assessment, session: AsyncSession) -> RiskAlertResult:
    """Dispatch one risk.threshold.exceeded event per high-risk category."""
    analytics = await get_assessment_analytics(assessment, session)
    alerts = find_risk_alerts(analytics.categories)

    for alert in alerts:
        await dispatch_event(
            session,
            EventType.RISK_THRESHOLD_EXCEEDED,
            assessment.org_id,
            {
                "assessment_id": str(assessment.id),
                "assessment_title": assessment.title,
                "category": alert.category,
                "category_name": alert.category_name,
                "current_score": alert.current_score,
                "threshold": alert.threshold,
                "risk_level": alert.risk_level,
            },
        )

    if alerts:
        log.warning(
            "analytics.risk_alerts",
            assessment_id=str(assessment.id),
            categories=[a.category for a in alerts],
        )
    return RiskAlertResult(alerts_sent=len(alerts), alerts=alerts)
