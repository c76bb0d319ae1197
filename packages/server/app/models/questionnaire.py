"""Questionnaire and question models."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Questionnaire(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "questionnaires"

    # Null org_id marks a global template shared by every tenant
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    introduction_text: Optional[str] = None
    lgpd_consent_text: Optional[str] = None
    questionnaire_type: str = Field(default="custom", nullable=False)  # nr1_full | pulse_monthly | custom
    status: str = Field(default="draft", nullable=False)  # draft | published | archived
    is_locked: bool = Field(default=False, nullable=False)
    template_based_on: Optional[uuid.UUID] = None
    version: int = Field(default=1, nullable=False)
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class Question(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "questions"

    questionnaire_id: uuid.UUID = Field(foreign_key="questionnaires.id", nullable=False, index=True)
    text: str = Field(nullable=False)
    question_type: str = Field(default="likert_scale", nullable=False)
    category: Optional[str] = None  # NR-1 risk category
    order_index: int = Field(default=0, nullable=False)
    is_required: bool = Field(default=True, nullable=False)
    allow_skip: bool = Field(default=False, nullable=False)
    risk_inverted: bool = Field(default=True, nullable=False)
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    options: Optional[list] = Field(default=None, sa_type=JSONType)
    scale_labels: Optional[dict] = Field(default=None, sa_type=JSONType)
