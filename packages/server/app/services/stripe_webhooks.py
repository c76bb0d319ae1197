"""
Stripe webhook processing.

Idempotency relies on the unique ``stripe_webhook_events.stripe_event_id``
constraint: the event id is inserted inside a savepoint before the handler
runs, and a unique violation means another delivery already claimed it.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
import structlog
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import PURPOSE_PASSWORD_SETUP, create_password_token, password_link
from app.core.config import get_settings
from app.models.event import StripeWebhookEvent
from app.models.subscription import BillingCustomer, PaymentHistory, Subscription
from app.models.user import User
from app.services import email as email_service
from app.services.billing import get_plan_from_price_id
from app.services.events import dispatch_event
from app.services.organizations import provision_organization

from psicomapa_shared.schemas.billing import PlanType, SubscriptionStatus
from psicomapa_shared.schemas.events import EventType

log = structlog.get_logger()

SIGNATURE_TOLERANCE_SECONDS = 300


def construct_event(payload: bytes, signature: Optional[str]) -> dict:
    """Verify the stripe-signature header and decode the event body."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")
    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    try:
        stripe.WebhookSignature.verify_header(
            body, signature, settings.stripe_webhook_secret, SIGNATURE_TOLERANCE_SECONDS
        )
    except stripe.SignatureVerificationError as exc:
        log.warning("stripe.webhook.invalid_signature", error=str(exc))
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict) or not event.get("id"):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return event


async def claim_event(session: AsyncSession, event: dict) -> bool:
    """Record the event id. Returns False when it was already processed."""
    event_id = event["id"]
    result = await session.execute(
        select(StripeWebhookEvent).where(StripeWebhookEvent.stripe_event_id == event_id)
    )
    existing = result.scalar_one_or_none()
    if existing:
        log.info("stripe.webhook.duplicate", event_id=event_id, processed_at=str(existing.processed_at))
        return False

    try:
        async with session.begin_nested():
            session.add(StripeWebhookEvent(stripe_event_id=event_id, event_type=event.get("type", "")))
    except IntegrityError:
        log.info("stripe.webhook.concurrent_duplicate", event_id=event_id)
        return False
    except SQLAlchemyError as exc:
        # Bookkeeping failures must not block processing
        log.error("stripe.webhook.idempotency_failed", event_id=event_id, error=str(exc))
    return True


async def handle_event(session: AsyncSession, event: dict) -> None:
    event_type = event.get("type")
    obj = event.get("data", {}).get("object", {})
    log.info("stripe.webhook.received", event_id=event.get("id"), event_type=event_type)

    if event_type == "checkout.session.completed":
        await _checkout_completed(session, obj)
    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        await _subscription_updated(session, obj)
    elif event_type == "customer.subscription.deleted":
        await _subscription_deleted(session, obj)
    elif event_type == "invoice.paid":
        await _invoice_paid(session, obj)
    elif event_type == "invoice.payment_failed":
        await _invoice_failed(session, obj)
    else:
        log.debug("stripe.webhook.ignored", event_type=event_type)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields can hold either an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _price_id(subscription: dict) -> Optional[str]:
    items = subscription.get("items", {}).get("data", [])
    if not items:
        return None
    return _object_id(items[0].get("price"))


def _period(subscription: dict, field: str) -> Optional[datetime]:
    # Newer API versions report billing periods on the subscription items
    value = subscription.get(field)
    if value is None:
        items = subscription.get("items", {}).get("data", [])
        value = items[0].get(field) if items else None
    return _timestamp(value)


def _parse_org_id(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def _org_for_customer(session: AsyncSession, customer_id: Optional[str]) -> Optional[uuid.UUID]:
    if not customer_id:
        return None
    result = await session.execute(
        select(BillingCustomer.org_id).where(BillingCustomer.stripe_customer_id == customer_id)
    )
    return result.scalar_one_or_none()


async def _subscription_by_stripe_id(session: AsyncSession, stripe_id: str) -> Optional[Subscription]:
    result = await session.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_id)
    )
    return result.scalar_one_or_none()


async def _unlinked_subscription(session: AsyncSession, org_id: uuid.UUID) -> Optional[Subscription]:
    """Subscription row created at signup before Stripe reported its id."""
    result = await session.execute(
        select(Subscription)
        .where(Subscription.org_id == org_id, Subscription.stripe_subscription_id.is_(None))
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _metadata_plan(metadata: dict) -> PlanType:
    try:
        return PlanType(metadata.get("plan") or PlanType.BASE.value)
    except ValueError:
        return PlanType.BASE


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def _checkout_completed(session: AsyncSession, checkout: dict) -> None:
    metadata = checkout.get("metadata") or {}
    if metadata.get("is_new_signup") == "true":
        await _new_signup(session, checkout, metadata)
        return

    org_id = _parse_org_id(metadata.get("organization_id"))
    if not org_id:
        log.warning("stripe.checkout.no_org", session_id=checkout.get("id"))
        return

    plan = _metadata_plan(metadata)
    stripe_subscription_id = _object_id(checkout.get("subscription"))
    subscription = None
    if stripe_subscription_id:
        subscription = await _subscription_by_stripe_id(session, stripe_subscription_id)
    if subscription is None:
        subscription = await _unlinked_subscription(session, org_id)
    if subscription is None:
        subscription = Subscription(org_id=org_id, plan=plan.value, status=SubscriptionStatus.ACTIVE.value)

    subscription.plan = plan.value
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.stripe_subscription_id = stripe_subscription_id or subscription.stripe_subscription_id
    session.add(subscription)
    await session.flush()

    log.info("stripe.checkout.completed", org_id=str(org_id), plan=plan.value)
    await dispatch_event(
        session,
        EventType.SUBSCRIPTION_CREATED,
        org_id,
        {
            "session_id": checkout.get("id"),
            "plan": plan.value,
            "interval": metadata.get("interval") or "yearly",
        },
    )


async def _new_signup(session: AsyncSession, checkout: dict, metadata: dict) -> None:
    """Provision the account of a customer who paid before registering."""
    email = (metadata.get("email") or "").strip().lower()
    full_name = metadata.get("full_name")
    company_name = metadata.get("company_name")
    if not email or not full_name or not company_name:
        log.error(
            "stripe.signup.missing_metadata",
            has_email=bool(email),
            has_full_name=bool(full_name),
            has_company_name=bool(company_name),
        )
        return

    existing = await session.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        log.warning("stripe.signup.user_exists", email=email)
        return

    plan = _metadata_plan(metadata)
    employee_count = metadata.get("employee_count")

    user = User(email=email, full_name=full_name)
    session.add(user)
    await session.flush()

    org = await provision_organization(
        session,
        user,
        company_name,
        industry=metadata.get("industry") or None,
        size=metadata.get("size") or None,
        employee_count=int(employee_count) if employee_count and employee_count.isdigit() else None,
    )

    session.add(
        BillingCustomer(
            org_id=org.id,
            email=email,
            name=full_name,
            stripe_customer_id=_object_id(checkout.get("customer")),
        )
    )
    session.add(
        Subscription(
            org_id=org.id,
            plan=plan.value,
            status=SubscriptionStatus.ACTIVE.value,
            stripe_subscription_id=_object_id(checkout.get("subscription")),
        )
    )
    await session.flush()

    token = create_password_token(user.id, PURPOSE_PASSWORD_SETUP)
    await email_service.send_welcome_email(email, full_name, company_name, plan.value, password_link(token))

    log.info("stripe.signup.completed", org_id=str(org.id), user_id=str(user.id), plan=plan.value)
    await dispatch_event(
        session,
        EventType.SUBSCRIPTION_CREATED,
        org.id,
        {
            "session_id": checkout.get("id"),
            "plan": plan.value,
            "interval": "yearly",
            "is_new_signup": True,
        },
    )


async def _subscription_updated(session: AsyncSession, data: dict) -> None:
    metadata = data.get("metadata") or {}
    org_id = _parse_org_id(metadata.get("organization_id")) or await _org_for_customer(
        session, _object_id(data.get("customer"))
    )
    if not org_id:
        log.warning("stripe.subscription.no_org", subscription_id=data.get("id"))
        return

    price_id = _price_id(data)
    subscription = await _subscription_by_stripe_id(session, data["id"])
    if subscription is None:
        subscription = await _unlinked_subscription(session, org_id)
    plan = get_plan_from_price_id(price_id) or (
        PlanType(subscription.plan) if subscription else _metadata_plan(metadata)
    )
    if subscription is None:
        subscription = Subscription(org_id=org_id, plan=plan.value, status=data.get("status", "active"))

    subscription.stripe_subscription_id = data["id"]
    subscription.stripe_price_id = price_id
    subscription.plan = plan.value
    subscription.status = data.get("status", subscription.status)
    subscription.current_period_start = _period(data, "current_period_start")
    subscription.current_period_end = _period(data, "current_period_end")
    subscription.cancel_at_period_end = bool(data.get("cancel_at_period_end"))
    subscription.canceled_at = _timestamp(data.get("canceled_at"))
    subscription.trial_start = _timestamp(data.get("trial_start"))
    subscription.trial_end = _timestamp(data.get("trial_end"))
    session.add(subscription)
    await session.flush()

    log.info("stripe.subscription.synced", org_id=str(org_id), status=subscription.status, plan=plan.value)


async def _subscription_deleted(session: AsyncSession, data: dict) -> None:
    subscription = await _subscription_by_stripe_id(session, data["id"])
    if subscription is None:
        log.warning("stripe.subscription.unknown", subscription_id=data.get("id"))
        return

    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.cancel_at_period_end = False
    subscription.canceled_at = datetime.now(timezone.utc)
    session.add(subscription)
    await session.flush()

    await dispatch_event(
        session,
        EventType.SUBSCRIPTION_CANCELED,
        subscription.org_id,
        {
            "subscription_id": data["id"],
            "canceled_at": subscription.canceled_at.isoformat(),
            "plan": subscription.plan,
        },
    )


async def _invoice_paid(session: AsyncSession, invoice: dict) -> None:
    org_id = await _org_for_customer(session, _object_id(invoice.get("customer")))
    if not org_id:
        log.warning("stripe.invoice.no_org", invoice_id=invoice.get("id"))
        return

    session.add(
        PaymentHistory(
            org_id=org_id,
            amount_cents=invoice.get("amount_paid") or 0,
            currency=invoice.get("currency") or "brl",
            status="succeeded",
            description=invoice.get("description"),
            stripe_invoice_id=invoice.get("id"),
            stripe_payment_intent_id=_object_id(invoice.get("payment_intent")),
            stripe_charge_id=_object_id(invoice.get("charge")),
            invoice_pdf_url=invoice.get("invoice_pdf"),
            receipt_url=invoice.get("hosted_invoice_url"),
        )
    )
    await session.flush()

    await dispatch_event(
        session,
        EventType.PAYMENT_SUCCEEDED,
        org_id,
        {
            "invoice_id": invoice.get("id"),
            "amount_cents": invoice.get("amount_paid"),
            "currency": invoice.get("currency"),
            "invoice_url": invoice.get("invoice_pdf"),
        },
    )


async def _invoice_failed(session: AsyncSession, invoice: dict) -> None:
    org_id = await _org_for_customer(session, _object_id(invoice.get("customer")))
    if not org_id:
        log.warning("stripe.invoice.no_org", invoice_id=invoice.get("id"))
        return

    error = invoice.get("last_finalization_error") or {}
    failure_message = error.get("message") or "Payment failed"
    session.add(
        PaymentHistory(
            org_id=org_id,
            amount_cents=invoice.get("amount_due") or 0,
            currency=invoice.get("currency") or "brl",
            status="failed",
            failure_message=failure_message,
            stripe_invoice_id=invoice.get("id"),
            stripe_payment_intent_id=_object_id(invoice.get("payment_intent")),
        )
    )
    await session.flush()

    await dispatch_event(
        session,
        EventType.PAYMENT_FAILED,
        org_id,
        {
            "invoice_id": invoice.get("id"),
            "amount_cents": invoice.get("amount_due"),
            "currency": invoice.get("currency"),
            "failure_message": failure_message,
        },
    )
