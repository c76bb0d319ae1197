"""Outbound event (n8n) schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EventType(str, Enum):
    # Diagnostics (assessments)
    DIAGNOSTIC_CREATED = "diagnostic.created"
    DIAGNOSTIC_ACTIVATED = "diagnostic.activated"
    DIAGNOSTIC_RESPONSE_RECEIVED = "diagnostic.response_received"
    DIAGNOSTIC_COMPLETED = "diagnostic.completed"
    DIAGNOSTIC_REMINDER = "diagnostic.reminder"
    DIAGNOSTIC_DEACTIVATED = "diagnostic.deactivated"
    # Participants
    PARTICIPANTS_IMPORTED = "participants.imported"
    PARTICIPANTS_EMAIL_REQUESTED = "participants.email_requested"
    # Risk
    RISK_THRESHOLD_EXCEEDED = "risk.threshold.exceeded"
    RISK_REPORT_GENERATED = "risk.report.generated"
    # Users
    USER_INVITED = "user.invited"
    USER_JOINED = "user.joined"
    USER_REMOVED = "user.removed"
    # Billing
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPGRADED = "subscription.upgraded"
    SUBSCRIPTION_DOWNGRADED = "subscription.downgraded"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    # Organization
    ORGANIZATION_CREATED = "organization.created"
    ORGANIZATION_UPDATED = "organization.updated"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"


class DispatchResult(BaseModel):
    success: bool
    event_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class WebhookEventResponse(BaseModel):
    id: uuid.UUID
    event_type: str
    status: DeliveryStatus
    attempts: int
    payload: dict
    error_message: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WebhookEventListResponse(BaseModel):
    data: list[WebhookEventResponse]
    total: int
    page: int
    per_page: int


class EventStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    success_rate: float
