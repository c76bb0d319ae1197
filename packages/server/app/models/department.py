"""Department and department membership models (RLS-scoped)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Department(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "departments"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = Field(default=None, foreign_key="departments.id")


class DepartmentMember(UUIDMixin, SQLModel, table=True):
    __tablename__ = "department_members"

    department_id: uuid.UUID = Field(foreign_key="departments.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
