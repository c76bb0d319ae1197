"""Authentication and user management schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Role
from .organizations import CompanySize

# Letters (including Latin-1 accents) and whitespace only
PERSON_NAME_PATTERN = r"^[a-zA-ZÀ-ÿ\s]+$"

BULK_IMPORT_MAX_ROWS = 500


def _lower_email(value: str) -> str:
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    full_name: str = Field(min_length=2, max_length=100, pattern=PERSON_NAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)
    organization_name: str = Field(min_length=2, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[CompanySize] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _lower_email(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _lower_email(value)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class SetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=6, max_length=72)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=6, max_length=72)


class AuthResponse(BaseModel):
    user_id: str
    email: str
    org_slug: Optional[str] = None
    message: str


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class ProfileResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: Role
    is_super_admin: bool = False


class ProfileUpdateRequest(BaseModel):
    full_name: str = Field(min_length=2, max_length=100, pattern=PERSON_NAME_PATTERN)


# ---------------------------------------------------------------------------
# Member management
# ---------------------------------------------------------------------------

class InviteRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=2, max_length=100, pattern=PERSON_NAME_PATTERN)
    role: Role = Role.MEMBRO
    department_id: Optional[uuid.UUID] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _lower_email(value)


class RoleUpdateRequest(BaseModel):
    role: Role


class MemberResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: Role
    is_active: bool
    created_at: datetime


class MemberListResponse(BaseModel):
    data: List[MemberResponse]


class BulkImportRowError(BaseModel):
    line: int
    email: Optional[str] = None
    error: str


class BulkImportResult(BaseModel):
    total_rows: int
    created: int
    skipped: int
    errors: List[BulkImportRowError] = []
