"""Billing models: Stripe subscription, customer and payment history (RLS-scoped)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Subscription(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscriptions"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    plan: str = Field(nullable=False)  # base | intermediario | avancado
    status: str = Field(nullable=False)  # active | canceled | past_due | trialing | unpaid | incomplete | incomplete_expired
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_price_id: Optional[str] = None
    current_period_start: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    cancel_at_period_end: bool = Field(default=False, nullable=False)
    canceled_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    trial_start: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    trial_end: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))


class BillingCustomer(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "billing_customers"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, unique=True)
    email: str = Field(nullable=False)
    name: Optional[str] = None
    stripe_customer_id: Optional[str] = Field(default=None, unique=True, index=True)


class PaymentHistory(UUIDMixin, SQLModel, table=True):
    __tablename__ = "payment_history"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    amount_cents: int = Field(nullable=False)
    currency: str = Field(default="brl", nullable=False)
    status: str = Field(nullable=False)  # succeeded | failed
    description: Optional[str] = None
    failure_message: Optional[str] = None
    stripe_invoice_id: Optional[str] = Field(default=None, index=True)
    stripe_payment_intent_id: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    invoice_pdf_url: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )
