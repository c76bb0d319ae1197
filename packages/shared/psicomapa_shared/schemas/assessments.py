"""Assessment (survey campaign), participant and public submission schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, EmailStr, Field, model_validator

from .questionnaires import QuestionResponse


class AssessmentStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    RESPONDED = "responded"
    BOUNCED = "bounced"
    OPTED_OUT = "opted_out"


class ClosureReason(str, Enum):
    MANUAL = "manual"
    EXPIRED = "expired"
    ALL_RESPONSES = "all_responses"
    NOT_CLOSED = "not_closed"


# Valid status transitions for an assessment
ASSESSMENT_TRANSITIONS: dict[AssessmentStatus, list[AssessmentStatus]] = {
    AssessmentStatus.DRAFT: [AssessmentStatus.ACTIVE, AssessmentStatus.CANCELLED],
    AssessmentStatus.ACTIVE: [AssessmentStatus.COMPLETED, AssessmentStatus.CANCELLED],
    AssessmentStatus.COMPLETED: [],
    AssessmentStatus.CANCELLED: [],
}


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class AssessmentCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    questionnaire_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    start_date: date
    end_date: date
    anonymous: bool = True

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AssessmentUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    department_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AssessmentResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    questionnaire_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    title: str
    description: Optional[str] = None
    status: AssessmentStatus
    anonymous: bool
    start_date: date
    end_date: date
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    response_count: int = 0

    model_config = {"from_attributes": True}


class AssessmentListResponse(BaseModel):
    data: list[AssessmentResponse]


class ClosureStatusResponse(BaseModel):
    is_closed: bool
    reason: ClosureReason
    message: str
    participant_count: int
    respondent_count: int


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

class ParticipantResponse(BaseModel):
    id: uuid.UUID
    assessment_id: uuid.UUID
    email: str
    name: str
    department: Optional[str] = None
    role: Optional[str] = None
    status: ParticipantStatus
    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ParticipantListResponse(BaseModel):
    data: list[ParticipantResponse]


class ParticipantStatusUpdate(BaseModel):
    """Status change reported back by the n8n mailing workflow."""
    participant_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=500)
    status: ParticipantStatus
    error_message: Optional[str] = None


class ImportResult(BaseModel):
    total_rows: int
    imported: int
    skipped: int
    errors: list[str] = []
    warnings: list[str] = []


# ---------------------------------------------------------------------------
# Public (unauthenticated) access
# ---------------------------------------------------------------------------

class PublicAssessmentResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    organization_name: str
    start_date: date
    end_date: date
    introduction_text: Optional[str] = None
    lgpd_consent_text: Optional[str] = None
    questions: list[QuestionResponse]


AnswerValue = Union[int, float, str, list[str], None]


class PublicSubmissionRequest(BaseModel):
    answers: dict[uuid.UUID, AnswerValue] = Field(
        ...,
        description="Map of question id to answer; null marks a skipped question",
    )
    consent_given: bool = False
    department_id: Optional[uuid.UUID] = None
    participant_email: Optional[EmailStr] = Field(
        None,
        description="Set when the respondent arrived from an invitation link",
    )


class PublicSubmissionResponse(BaseModel):
    success: bool
    anonymous_id: str
    answers_saved: int


# ---------------------------------------------------------------------------
# Development seeding
# ---------------------------------------------------------------------------

class SeedResponsesRequest(BaseModel):
    assessment_id: uuid.UUID
    participant_count: int = Field(15, ge=1, le=500)


class SeedResponsesResult(BaseModel):
    assessment_id: uuid.UUID
    participants_added: int
    responses_added: int
    questions_per_participant: int
    total_responses: int


class SeedAssessmentItem(BaseModel):
    id: uuid.UUID
    title: str
    status: str
    response_count: int
