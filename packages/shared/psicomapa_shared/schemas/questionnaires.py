"""Questionnaire and question schemas, plus the locked regulatory templates."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .common import RiskCategory


class QuestionnaireType(str, Enum):
    NR1_FULL = "nr1_full"
    PULSE_MONTHLY = "pulse_monthly"
    CUSTOM = "custom"


class QuestionnaireStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    LIKERT_SCALE = "likert_scale"
    TEXT = "text"
    LONG_TEXT = "long_text"
    YES_NO = "yes_no"
    TEXTAREA = "textarea"
    SINGLE_CHOICE = "single_choice"
    NPS_SCALE = "nps_scale"
    NUMBER = "number"
    DATE = "date"


# Answer types stored with an integer value alongside the raw text
NUMERIC_QUESTION_TYPES = {
    QuestionType.LIKERT_SCALE.value,
    QuestionType.NPS_SCALE.value,
    QuestionType.NUMBER.value,
}

TEXT_QUESTION_TYPES = {
    QuestionType.TEXT.value,
    QuestionType.LONG_TEXT.value,
    QuestionType.TEXTAREA.value,
}


# ---------------------------------------------------------------------------
# Locked templates
# ---------------------------------------------------------------------------

NR1_TEMPLATE_ID = uuid.UUID("a1111111-1111-1111-1111-111111111111")
CLIMA_TEMPLATE_ID = uuid.UUID("b2222222-2222-2222-2222-222222222222")

TEMPLATE_IDS = (NR1_TEMPLATE_ID, CLIMA_TEMPLATE_ID)

LOCKED_TEMPLATE_INFO = {
    NR1_TEMPLATE_ID: {
        "name": "Diagnóstico de Riscos Psicossociais",
        "regulation": "Portaria NR-1",
        "description": (
            "Segue a metodologia da Norma Regulamentadora NR-1 para avaliação "
            "de riscos psicossociais no ambiente de trabalho."
        ),
    },
    CLIMA_TEMPLATE_ID: {
        "name": "Pulse Mensal",
        "regulation": "Portaria NR-1",
        "description": "Questionário de acompanhamento mensal baseado na NR-1.",
    },
}

LOCKED_QUESTIONNAIRE_MESSAGES = {
    "cannot_edit": "Este questionário é protegido pela Portaria NR-1 e não pode ser editado.",
    "cannot_delete": "Este questionário é protegido pela Portaria NR-1 e não pode ser excluído.",
    "cannot_add_questions": "Não é possível adicionar perguntas a um questionário protegido.",
    "cannot_modify_questions": "As perguntas deste questionário são protegidas e não podem ser modificadas.",
}


def is_template_questionnaire(questionnaire_id: uuid.UUID) -> bool:
    return questionnaire_id in TEMPLATE_IDS


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class QuestionnaireCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    introduction_text: Optional[str] = Field(None, max_length=5000)
    lgpd_consent_text: Optional[str] = Field(None, max_length=5000)
    questionnaire_type: QuestionnaireType = QuestionnaireType.CUSTOM
    template_based_on: Optional[uuid.UUID] = Field(
        None,
        description="Copy the questions of this questionnaire into the new one",
    )


class QuestionnaireUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    introduction_text: Optional[str] = Field(None, max_length=5000)
    lgpd_consent_text: Optional[str] = Field(None, max_length=5000)
    status: Optional[QuestionnaireStatus] = None


class QuestionCreateRequest(BaseModel):
    text: str = Field(..., min_length=3, max_length=1000)
    question_type: QuestionType = QuestionType.LIKERT_SCALE
    category: Optional[RiskCategory] = None
    order_index: Optional[int] = Field(None, ge=0)
    is_required: bool = True
    allow_skip: bool = False
    risk_inverted: bool = True
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    options: Optional[list[str]] = None
    scale_labels: Optional[dict[str, str]] = None

    @model_validator(mode="after")
    def check_choice_options(self):
        if self.question_type in (QuestionType.MULTIPLE_CHOICE, QuestionType.SINGLE_CHOICE):
            if not self.options or len(self.options) < 2:
                raise ValueError("Choice questions need at least two options")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value >= self.max_value
        ):
            raise ValueError("min_value must be lower than max_value")
        return self


class QuestionUpdateRequest(BaseModel):
    text: Optional[str] = Field(None, min_length=3, max_length=1000)
    category: Optional[RiskCategory] = None
    order_index: Optional[int] = Field(None, ge=0)
    is_required: Optional[bool] = None
    allow_skip: Optional[bool] = None
    risk_inverted: Optional[bool] = None
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    options: Optional[list[str]] = None
    scale_labels: Optional[dict[str, str]] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class QuestionResponse(BaseModel):
    id: uuid.UUID
    questionnaire_id: uuid.UUID
    text: str
    question_type: str
    category: Optional[str] = None
    order_index: int
    is_required: bool
    allow_skip: bool
    risk_inverted: bool
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    options: Optional[list] = None
    scale_labels: Optional[dict] = None

    model_config = {"from_attributes": True}


class QuestionnaireResponse(BaseModel):
    id: uuid.UUID
    org_id: Optional[uuid.UUID] = None
    title: str
    description: Optional[str] = None
    introduction_text: Optional[str] = None
    lgpd_consent_text: Optional[str] = None
    questionnaire_type: str
    status: str
    is_locked: bool
    version: int
    created_at: datetime
    updated_at: datetime
    questions: list[QuestionResponse] = []

    model_config = {"from_attributes": True}


class QuestionnaireListResponse(BaseModel):
    data: list[QuestionnaireResponse]
