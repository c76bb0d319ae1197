"""Assessment (survey campaign), participant and response models."""

from datetime import date, datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Assessment(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "assessments"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    questionnaire_id: uuid.UUID = Field(foreign_key="questionnaires.id", nullable=False)
    department_id: Optional[uuid.UUID] = Field(default=None, foreign_key="departments.id")
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(default="draft", nullable=False)  # draft | active | completed | cancelled
    anonymous: bool = Field(default=True, nullable=False)
    start_date: date = Field(nullable=False)
    end_date: date = Field(nullable=False)
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    deleted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    deleted_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class AssessmentParticipant(UUIDMixin, SQLModel, table=True):
    __tablename__ = "assessment_participants"
    __table_args__ = (sa.UniqueConstraint("assessment_id", "email"),)

    assessment_id: uuid.UUID = Field(foreign_key="assessments.id", nullable=False, index=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    email: str = Field(nullable=False)
    name: str = Field(nullable=False)
    department: Optional[str] = None
    role: Optional[str] = None
    status: str = Field(default="pending", nullable=False)  # pending | sent | responded | bounced | opted_out
    sent_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    responded_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )


class Response(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "responses"

    assessment_id: uuid.UUID = Field(foreign_key="assessments.id", nullable=False, index=True)
    question_id: uuid.UUID = Field(foreign_key="questions.id", nullable=False, index=True)
    anonymous_id: str = Field(nullable=False, index=True)
    department_id: Optional[uuid.UUID] = Field(default=None, foreign_key="departments.id")
    value: Optional[int] = None
    response_text: Optional[str] = None
