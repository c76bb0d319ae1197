"""Webhook bookkeeping: outbound n8n events and inbound Stripe event ids."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin, _utcnow


class WebhookEvent(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """An outbound event to n8n and its delivery state."""

    __tablename__ = "webhook_events"

    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    event_type: str = Field(nullable=False, index=True)  # e.g. diagnostic.activated, payment.failed
    payload: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    status: str = Field(default="pending", nullable=False, index=True)  # pending | sent | failed | delivered
    attempts: int = Field(default=0, nullable=False)
    last_attempt_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    delivered_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    error_message: Optional[str] = None


class StripeWebhookEvent(SQLModel, table=True):
    """Processed Stripe event ids. The unique constraint is the idempotency guard."""

    __tablename__ = "stripe_webhook_events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    stripe_event_id: str = Field(nullable=False, unique=True, index=True)
    event_type: str = Field(nullable=False)
    processed_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )
