"""Analytics response schemas (NR-1 categories, distributions, departments, clima)."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ClimaScale(str, Enum):
    LIKERT = "1-5"
    NPS = "0-10"
    TEXT = "text"


class SuppressionInfo(BaseModel):
    is_suppressed: bool
    current_count: int
    minimum_required: int
    remaining: int
    percent_complete: float
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# NR-1 category analytics
# ---------------------------------------------------------------------------

class CategoryScore(BaseModel):
    category: str
    label: str
    average_score: float
    question_count: int
    response_count: int
    risk_level: str  # low | medium | high
    is_suppressed: bool


class AssessmentAnalytics(BaseModel):
    assessment_id: uuid.UUID
    total_participants: int
    total_questions: int
    total_responses: int
    completion_rate: float
    last_response_date: Optional[datetime] = None
    categories: list[CategoryScore]
    is_suppressed: bool
    suppression: Optional[SuppressionInfo] = None


class DistributionBucket(BaseModel):
    value: str
    count: int
    percentage: float


class QuestionDistribution(BaseModel):
    question_id: uuid.UUID
    question_text: str
    question_type: str
    question_category: str
    responses: list[DistributionBucket]
    is_suppressed: bool
    total_responses: int


class DepartmentAnalytics(BaseModel):
    id: uuid.UUID
    name: str
    participant_count: int
    response_count: int
    average_score: float
    risk_level: str
    employee_count: int
    is_suppressed: bool


# ---------------------------------------------------------------------------
# Climate survey
# ---------------------------------------------------------------------------

class ClimaQuestion(BaseModel):
    question_id: uuid.UUID
    question_number: int
    question_text: str
    theme: str
    theme_label: str
    average_score: float
    response_count: int
    distribution: list[DistributionBucket]
    scale: ClimaScale


class ClimaTheme(BaseModel):
    theme: str
    label: str
    average_score: float
    question_count: int
    response_count: int
    risk_level: str


class ClimaTextResponse(BaseModel):
    text: str
    theme: Optional[str] = None


class ClimaAnalytics(BaseModel):
    total_participants: int
    questions: list[ClimaQuestion]
    themes: list[ClimaTheme]
    text_responses: list[ClimaTextResponse]
    overall_satisfaction: float


# ---------------------------------------------------------------------------
# Risk alerts
# ---------------------------------------------------------------------------

class RiskAlert(BaseModel):
    category: str
    category_name: str
    current_score: float
    threshold: float
    risk_level: str  # high | critical


class RiskAlertResult(BaseModel):
    alerts_sent: int
    alerts: list[RiskAlert]
