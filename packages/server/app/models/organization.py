"""Organization model (the tenant)."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    industry: Optional[str] = None
    size: Optional[str] = None
    status: str = Field(default="active", nullable=False)
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
