"""Generated reports and action plans."""

from datetime import date
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class GeneratedReport(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "generated_reports"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    assessment_id: uuid.UUID = Field(foreign_key="assessments.id", nullable=False, index=True)
    report_type: str = Field(nullable=False)  # riscos_psicossociais | clima_mensal | plano_acao | executivo_lideranca | correlacao
    title: str = Field(nullable=False)
    status: str = Field(default="generating", nullable=False)  # generating | completed | failed | archived
    content: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    error_message: Optional[str] = None
    generated_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class ActionPlan(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "action_plans"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    assessment_id: Optional[uuid.UUID] = Field(default=None, foreign_key="assessments.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    responsible: Optional[str] = None
    deadline: Optional[date] = None
    status: str = Field(default="pending", nullable=False)  # pending | in_progress | delayed | completed
    risk_block: Optional[str] = None
    comments: Optional[str] = None
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
