"""
Organization-related Pydantic schemas.

Covers: org read/update, OrgSettings and its sub-models, departments and the
default department set created for every new organization.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OrgStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class CompanySize(str, Enum):
    XS = "1-50"
    S = "51-200"
    M = "201-500"
    L = "500+"


# ---------------------------------------------------------------------------
# Org Settings sub-models
# ---------------------------------------------------------------------------

class NotificationSettings(BaseModel):
    risk_alerts_enabled: bool = Field(
        default=True,
        description="Dispatch risk.threshold.exceeded events when a category crosses the alert threshold",
    )
    response_events_enabled: bool = Field(
        default=True,
        description="Dispatch diagnostic.response_received for every public submission",
    )


class AssessmentDefaultsSettings(BaseModel):
    anonymous: bool = Field(default=True, description="New assessments are anonymous by default")
    default_duration_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Suggested window between start_date and end_date",
    )


class OrgSettings(BaseModel):
    """Complete org-level settings schema. All fields optional with defaults."""

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    assessment_defaults: AssessmentDefaultsSettings = Field(
        default_factory=AssessmentDefaultsSettings
    )
    employee_count: Optional[int] = Field(
        default=None,
        ge=1,
        description="Headcount declared at signup, used for plan recommendation",
    )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    industry: Optional[str] = Field(None, max_length=100)
    size: Optional[CompanySize] = None
    settings: Optional[dict] = Field(
        None,
        description="Partial settings update (deep-merged via JSON Merge Patch)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    industry: Optional[str] = None
    size: Optional[str] = None
    status: OrgStatus
    settings: OrgSettings
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    status: OrgStatus
    role: str  # the requesting user's role in this org

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

DEFAULT_DEPARTMENTS: list[dict[str, str]] = [
    {"name": "Recursos Humanos", "description": "Gestão de pessoas e desenvolvimento organizacional"},
    {"name": "Administrativo", "description": "Suporte administrativo e facilities"},
    {"name": "Financeiro", "description": "Gestão financeira e contabilidade"},
    {"name": "Comercial", "description": "Vendas e relacionamento com clientes"},
    {"name": "Operações", "description": "Processos operacionais e produção"},
    {"name": "TI", "description": "Tecnologia da informação e sistemas"},
    {"name": "Marketing", "description": "Marketing e comunicação"},
    {"name": "Jurídico", "description": "Assessoria jurídica e compliance"},
    {"name": "Logística", "description": "Logística e cadeia de suprimentos"},
    {"name": "Qualidade", "description": "Gestão da qualidade e processos"},
]


class DepartmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[uuid.UUID] = None


class DepartmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[uuid.UUID] = None


class DepartmentResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    member_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class DepartmentListResponse(BaseModel):
    data: list[DepartmentResponse]


class DepartmentSeedResponse(BaseModel):
    created: int
    skipped: int
