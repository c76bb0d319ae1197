"""
Tests for survey analytics reducers and anonymity thresholds.

Covers:
- Likert normalization (risk orientation)
- NR-1 category scores and per-category suppression
- Assessment summary suppression below five participants
- Question distributions
- Department breakdown ordering and suppression
- Climate themes and NPS satisfaction
- Risk alert detection
"""

from __future__ import annotations

import uuid

import pytest

from app.models.assessment import Response
from app.models.department import Department
from app.models.questionnaire import Question
from app.services import anonymity
from app.services.analytics import (
    compute_assessment_analytics,
    compute_category_scores,
    compute_clima_analytics,
    compute_department_analytics,
    compute_question_distribution,
    find_risk_alerts,
    normalized_likert,
    parse_number,
    round_half_up,
    scale_value,
)
from app.services.anonymity import Threshold

from psicomapa_shared.schemas.analytics import CategoryScore, ClimaScale
from psicomapa_shared.schemas.common import RiskCategory


ASSESSMENT_ID = uuid.uuid4()


def _question(
    category: str | None = RiskCategory.DEMANDS_AND_PACE.value,
    question_type: str = "likert_scale",
    risk_inverted: bool = True,
    question_id: uuid.UUID | None = None,
    order_index: int = 1,
    max_value: int | None = 5,
) -> Question:
    return Question(
        id=question_id or uuid.uuid4(),
        questionnaire_id=uuid.uuid4(),
        text="Pergunta",
        question_type=question_type,
        category=category,
        risk_inverted=risk_inverted,
        order_index=order_index,
        min_value=1,
        max_value=max_value,
    )


def _response(
    question: Question,
    anonymous_id: str,
    text: str | None,
    value: int | None = None,
    department_id: uuid.UUID | None = None,
) -> Response:
    return Response(
        assessment_id=ASSESSMENT_ID,
        question_id=question.id,
        anonymous_id=anonymous_id,
        response_text=text,
        value=value,
        department_id=department_id,
    )


def _rows(question: Question, answers: list[str], prefix: str = "p", department_id=None):
    return [
        (_response(question, f"{prefix}{i}", answer, department_id=department_id), question)
        for i, answer in enumerate(answers)
    ]


# ---------------------------------------------------------------------------
# Anonymity thresholds
# ---------------------------------------------------------------------------

class TestAnonymity:
    def test_thresholds(self):
        assert anonymity.meets_threshold(5, Threshold.ASSESSMENT)
        assert not anonymity.meets_threshold(4, Threshold.ASSESSMENT)
        assert anonymity.meets_threshold(3, Threshold.QUESTION)
        assert not anonymity.meets_threshold(9, Threshold.DETAILED_RESPONSES)

    def test_responses_needed(self):
        assert anonymity.responses_needed(2, Threshold.DEPARTMENT) == 3
        assert anonymity.responses_needed(12, Threshold.DEPARTMENT) == 0

    def test_suppression_status_below_minimum(self):
        status = anonymity.suppression_status(2, Threshold.ASSESSMENT)
        assert status.is_suppressed
        assert status.remaining == 3
        assert status.percent_complete == pytest.approx(40.0)
        assert status.message

    def test_suppression_status_caps_percent(self):
        status = anonymity.suppression_status(50, Threshold.CATEGORY)
        assert not status.is_suppressed
        assert status.percent_complete == 100.0
        assert status.message is None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestNormalization:
    def test_risk_inverted_keeps_value(self):
        q = _question(risk_inverted=True)
        assert normalized_likert(_response(q, "a", "4"), q) == 4

    def test_protective_question_is_flipped(self):
        q = _question(risk_inverted=False)
        assert normalized_likert(_response(q, "a", "5"), q) == 1

    def test_falls_back_to_integer_value(self):
        q = _question()
        assert normalized_likert(_response(q, "a", None, value=2), q) == 2

    def test_non_likert_and_out_of_range_ignored(self):
        text_q = _question(question_type="text")
        assert normalized_likert(_response(text_q, "a", "4"), text_q) is None
        q = _question()
        assert normalized_likert(_response(q, "a", "9"), q) is None
        assert normalized_likert(_response(q, "a", "abc"), q) is None

    def test_round_half_up(self):
        assert round_half_up(2.5, 0) == 3.0
        assert round_half_up(66.6666) == 66.67

    def test_non_finite_numbers_are_not_numbers(self):
        assert parse_number(" 3.5 ") == 3.5
        for text in ("inf", "-inf", "1e999", "nan", "quatro", None):
            assert parse_number(text) is None

    def test_scale_value_respects_bounds(self):
        q = _question()
        assert scale_value(q, "4.6") == 5
        assert scale_value(q, "1") == 1
        assert scale_value(q, "0") is None
        assert scale_value(q, "6") is None
        assert scale_value(q, "1e999") is None
        unbounded = _question(question_type="number", max_value=None)
        assert scale_value(unbounded, "250") == 250


# ---------------------------------------------------------------------------
# Category scores
# ---------------------------------------------------------------------------

class TestCategoryScores:
    def test_fixed_category_order(self):
        scores = compute_category_scores([])
        assert [s.category for s in scores] == [c.value for c in RiskCategory]
        assert all(s.is_suppressed for s in scores)

    def test_scores_and_risk_level(self):
        q = _question(category=RiskCategory.DEMANDS_AND_PACE.value)
        rows = _rows(q, ["4", "4", "4", "4", "4"])
        by_cat = {s.category: s for s in compute_category_scores(rows)}
        demands = by_cat[RiskCategory.DEMANDS_AND_PACE.value]
        assert not demands.is_suppressed
        assert demands.average_score == 4.0
        assert demands.risk_level == "high"
        assert demands.question_count == 1
        assert demands.response_count == 5

    def test_protective_answers_lower_risk(self):
        q = _question(category=RiskCategory.LEADERSHIP_RECOGNITION.value, risk_inverted=False)
        rows = _rows(q, ["5", "5", "4", "5", "5"])
        by_cat = {s.category: s for s in compute_category_scores(rows)}
        leadership = by_cat[RiskCategory.LEADERSHIP_RECOGNITION.value]
        assert leadership.average_score == 1.2
        assert leadership.risk_level == "low"

    def test_small_category_suppressed(self):
        q = _question(category=RiskCategory.WORK_LIFE_HEALTH.value)
        rows = _rows(q, ["5", "5", "5", "5"])
        by_cat = {s.category: s for s in compute_category_scores(rows)}
        work_life = by_cat[RiskCategory.WORK_LIFE_HEALTH.value]
        assert work_life.is_suppressed
        assert work_life.average_score == 0.0
        assert work_life.risk_level == "low"


# ---------------------------------------------------------------------------
# Assessment summary
# ---------------------------------------------------------------------------

class TestAssessmentAnalytics:
    def test_suppressed_below_five_participants(self):
        q = _question()
        rows = _rows(q, ["5", "5", "5", "5"])
        analytics = compute_assessment_analytics(ASSESSMENT_ID, rows, total_questions=1)
        assert analytics.is_suppressed
        assert analytics.total_participants == 4
        assert analytics.suppression.remaining == 1
        assert all(c.is_suppressed for c in analytics.categories)

    def test_completion_rate(self):
        q1 = _question()
        q2 = _question(category=RiskCategory.ANCHORS.value)
        rows = _rows(q1, ["3"] * 5) + _rows(q2, ["3"] * 5)
        analytics = compute_assessment_analytics(ASSESSMENT_ID, rows, total_questions=2)
        assert not analytics.is_suppressed
        assert analytics.suppression is None
        assert analytics.total_participants == 5
        assert analytics.total_responses == 10
        assert analytics.completion_rate == 100.0
        assert analytics.last_response_date is not None

    def test_empty_assessment(self):
        analytics = compute_assessment_analytics(ASSESSMENT_ID, [], total_questions=10)
        assert analytics.total_participants == 0
        assert analytics.completion_rate == 0.0
        assert analytics.last_response_date is None


# ---------------------------------------------------------------------------
# Question distributions
# ---------------------------------------------------------------------------

class TestQuestionDistribution:
    def test_suppressed_below_three(self):
        q = _question()
        responses = [r for r, _ in _rows(q, ["5", "4"])]
        dist = compute_question_distribution(q, responses)
        assert dist.is_suppressed
        assert dist.responses == []
        assert dist.total_responses == 2

    def test_percentages_and_blank_answers(self):
        q = _question()
        responses = [r for r, _ in _rows(q, ["5", "5", "3", " ", None])]
        dist = compute_question_distribution(q, responses)
        assert not dist.is_suppressed
        assert dist.total_responses == 3
        buckets = {b.value: b for b in dist.responses}
        assert buckets["5"].count == 2
        assert buckets["5"].percentage == 66.67
        assert buckets["3"].percentage == 33.33


# ---------------------------------------------------------------------------
# Department breakdown
# ---------------------------------------------------------------------------

class TestDepartmentAnalytics:
    def test_small_departments_suppressed_and_sorted_last(self):
        org_id = uuid.uuid4()
        small = Department(id=uuid.uuid4(), org_id=org_id, name="Comercial")
        large = Department(id=uuid.uuid4(), org_id=org_id, name="Operações")
        q = _question()
        rows = _rows(q, ["4"] * 6, prefix="ops", department_id=large.id)
        rows += _rows(q, ["2"] * 2, prefix="com", department_id=small.id)
        rows += _rows(q, ["1"], prefix="none")

        result = compute_department_analytics([small, large], {large.id: 8}, rows)

        assert [d.name for d in result] == ["Operações", "Comercial"]
        ops, com = result
        assert not ops.is_suppressed
        assert ops.participant_count == 6
        assert ops.average_score == 4.0
        assert ops.risk_level == "high"
        assert ops.employee_count == 8
        assert com.is_suppressed
        assert com.participant_count == 0
        assert com.response_count == 0
        assert com.employee_count == 0


# ---------------------------------------------------------------------------
# Climate survey
# ---------------------------------------------------------------------------

class TestClimaAnalytics:
    def test_empty(self):
        result = compute_clima_analytics([])
        assert result.total_participants == 0
        assert result.overall_satisfaction == 0.0

    def test_themes_and_satisfaction(self):
        wellbeing = _question(
            category="bem_estar",
            question_id=uuid.UUID("c1111111-0001-4000-8000-000000000001"),
            order_index=1,
        )
        nps = _question(
            category="satisfacao",
            question_id=uuid.UUID("c1111111-0009-4000-8000-000000000009"),
            order_index=9,
            max_value=10,
        )
        feedback = _question(
            category="satisfacao",
            question_type="text",
            question_id=uuid.UUID("c1111111-0010-4000-8000-000000000010"),
            order_index=10,
        )
        rows = _rows(wellbeing, ["4", "2", "3"])
        rows += _rows(nps, ["10", "8", "6"])
        rows += _rows(feedback, ["Mais reconhecimento", ""])

        result = compute_clima_analytics(rows)

        assert result.total_participants == 3
        assert [q.question_number for q in result.questions] == [1, 9, 10]
        first = result.questions[0]
        assert first.theme == "bem_estar"
        assert first.scale == ClimaScale.LIKERT
        assert [b.value for b in first.distribution] == ["2", "3", "4"]
        assert result.overall_satisfaction == 8.0

        themes = {t.theme: t for t in result.themes}
        assert themes["bem_estar"].average_score == 3.0
        assert themes["bem_estar"].risk_level == "medium"
        # 8 on the 0..10 scale maps to 4.2 on the 1..5 scale
        assert themes["satisfacao"].average_score == 4.2
        assert "qualitativo" not in themes

        assert [t.text for t in result.text_responses] == ["Mais reconhecimento"]
        assert result.text_responses[0].theme == "Feedback Aberto"


# ---------------------------------------------------------------------------
# Risk alerts
# ---------------------------------------------------------------------------

class TestRiskAlerts:
    def _score(self, category: str, score: float, level: str) -> CategoryScore:
        return CategoryScore(
            category=category,
            label=category,
            average_score=score,
            question_count=3,
            response_count=30,
            risk_level=level,
            is_suppressed=False,
        )

    def test_alert_levels(self):
        alerts = find_risk_alerts([
            self._score("demands_and_pace", 4.2, "high"),
            self._score("violence_harassment", 3.6, "high"),
            self._score("work_life_health", 3.0, "medium"),
        ])
        assert [(a.category, a.risk_level) for a in alerts] == [
            ("demands_and_pace", "critical"),
            ("violence_harassment", "high"),
        ]
        assert all(a.threshold == 3.5 for a in alerts)
