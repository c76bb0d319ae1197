"""
Billing service — plan features, limits and Stripe customer/session management.

The Stripe SDK is synchronous, so every call goes through the threadpool.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.models.organization import Organization
from app.models.subscription import BillingCustomer, PaymentHistory, Subscription

from psicomapa_shared.schemas.billing import (
    EXPORT_REQUIREMENTS,
    PLANS,
    CheckoutSessionResponse,
    PlanConfig,
    PlanFeaturesResponse,
    PlanType,
    PortalSessionResponse,
    PreCheckoutRequest,
    SubscriptionStatus,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Price ids
# ---------------------------------------------------------------------------

def _price_ids() -> dict[PlanType, str]:
    settings = get_settings()
    return {
        PlanType.BASE: settings.stripe_price_base_yearly,
        PlanType.INTERMEDIARIO: settings.stripe_price_intermediario_yearly,
        PlanType.AVANCADO: settings.stripe_price_avancado_yearly,
    }


def get_price_id(plan: PlanType) -> Optional[str]:
    return _price_ids().get(plan) or None


def get_plan_from_price_id(price_id: Optional[str]) -> Optional[PlanType]:
    if not price_id:
        return None
    for plan, configured in _price_ids().items():
        if configured and configured == price_id:
            return plan
    return None


# ---------------------------------------------------------------------------
# Plan features
# ---------------------------------------------------------------------------

@dataclass
class PlanFeatures:
    """Capabilities granted by the org's active subscription (none without one)."""

    plan: Optional[PlanType]

    @property
    def config(self) -> Optional[PlanConfig]:
        return PLANS[self.plan] if self.plan else None

    @property
    def has_active_subscription(self) -> bool:
        return self.plan is not None

    def export_formats(self) -> list[str]:
        return list(self.config.capabilities.exports) if self.config else []

    def can_export(self, fmt: str) -> bool:
        return fmt in self.export_formats()

    def can_import(self) -> bool:
        return self.plan in (PlanType.INTERMEDIARIO, PlanType.AVANCADO)

    def to_response(self) -> PlanFeaturesResponse:
        return PlanFeaturesResponse(
            plan=self.plan,
            has_active_subscription=self.has_active_subscription,
            export_formats=self.export_formats(),
            can_import=self.can_import(),
            limits=self.config.limits if self.config else None,
        )


def upgrade_info(fmt: str) -> tuple[PlanType, str]:
    """(required plan, user-facing message) for an export format."""
    return EXPORT_REQUIREMENTS[fmt]


async def get_subscription(org_id: uuid.UUID, session: AsyncSession) -> Optional[Subscription]:
    """Most recent subscription row of the org, whatever its status."""
    result = await session.execute(
        select(Subscription)
        .where(Subscription.org_id == org_id)
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_plan_features(org_id: uuid.UUID, session: AsyncSession) -> PlanFeatures:
    subscription = await get_subscription(org_id, session)
    if subscription and subscription.status == SubscriptionStatus.ACTIVE.value:
        try:
            return PlanFeatures(plan=PlanType(subscription.plan))
        except ValueError:
            log.warning("billing.unknown_plan", org_id=str(org_id), plan=subscription.plan)
    return PlanFeatures(plan=None)


async def require_export(org_id: uuid.UUID, fmt: str, session: AsyncSession) -> PlanFeatures:
    features = await get_plan_features(org_id, session)
    if not features.can_export(fmt):
        if not features.has_active_subscription:
            raise HTTPException(status_code=403, detail="Assinatura ativa necessária para exportar relatórios")
        _plan, message = upgrade_info(fmt)
        raise HTTPException(status_code=403, detail=message)
    return features


async def require_import(org_id: uuid.UUID, session: AsyncSession) -> PlanFeatures:
    features = await get_plan_features(org_id, session)
    if not features.can_import():
        raise HTTPException(
            status_code=403,
            detail="Importação de dados requer plano Intermediário ou superior.",
        )
    return features


def check_limit(limit: Optional[int], current: int, message: str) -> None:
    """Raise 403 when adding one more item would exceed the plan limit (None is unlimited)."""
    if limit is not None and current >= limit:
        raise HTTPException(status_code=403, detail=message)


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------

def _configure_stripe() -> None:
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")
    stripe.api_key = settings.stripe_secret_key


def _require_price(plan: PlanType) -> str:
    price_id = get_price_id(plan)
    if not price_id:
        raise HTTPException(status_code=500, detail="Preço do plano não configurado")
    return price_id


async def _stripe_call(action: str, fn, *args, **kwargs) -> Any:
    try:
        return await run_in_threadpool(fn, *args, **kwargs)
    except stripe.StripeError as exc:
        log.error("billing.stripe_error", action=action, error=str(exc))
        raise HTTPException(status_code=502, detail="Falha ao comunicar com o provedor de pagamento")


async def create_public_checkout(req: PreCheckoutRequest) -> CheckoutSessionResponse:
    """Checkout for a brand-new customer; the account is created by the webhook."""
    _configure_stripe()
    price_id = _require_price(req.plan)
    site_url = get_settings().site_url.rstrip("/")
    accepted_at = datetime.now(timezone.utc).isoformat()

    customer = await _stripe_call(
        "customer.create",
        stripe.Customer.create,
        email=req.email,
        name=req.full_name,
        metadata={"company_name": req.company_name, "source": "psicomapa-public-checkout"},
    )
    checkout = await _stripe_call(
        "checkout.create",
        stripe.checkout.Session.create,
        customer=customer["id"],
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{site_url}/pagamento-confirmado?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{site_url}/checkout/{req.plan.value}",
        subscription_data={"metadata": {"plan": req.plan.value, "interval": "yearly"}},
        allow_promotion_codes=True,
        billing_address_collection="required",
        locale="pt-BR",
        metadata={
            "is_new_signup": "true",
            "email": req.email,
            "full_name": req.full_name,
            "company_name": req.company_name,
            "industry": req.industry or "",
            "size": req.size.value if req.size else "",
            "employee_count": str(req.employee_count or ""),
            "plan": req.plan.value,
            "terms_accepted_at": accepted_at,
        },
    )
    log.info("billing.public_checkout_created", plan=req.plan.value, session_id=checkout["id"])
    return CheckoutSessionResponse(session_id=checkout["id"], url=checkout.get("url"))


async def get_or_create_customer(
    org: Organization, email: str, name: Optional[str], session: AsyncSession
) -> BillingCustomer:
    result = await session.execute(select(BillingCustomer).where(BillingCustomer.org_id == org.id))
    customer = result.scalar_one_or_none()
    if customer and customer.stripe_customer_id:
        return customer

    _configure_stripe()
    stripe_customer = await _stripe_call(
        "customer.create",
        stripe.Customer.create,
        email=email,
        name=name or org.name,
        metadata={"organization_id": str(org.id), "source": "psicomapa"},
    )
    if customer is None:
        customer = BillingCustomer(org_id=org.id, email=email, name=name)
    customer.stripe_customer_id = stripe_customer["id"]
    session.add(customer)
    await session.flush()
    log.info("billing.customer_created", org_id=str(org.id), customer_id=customer.stripe_customer_id)
    return customer


async def create_org_checkout(
    org: Organization, plan: PlanType, email: str, name: Optional[str], session: AsyncSession
) -> CheckoutSessionResponse:
    _configure_stripe()
    price_id = _require_price(plan)
    customer = await get_or_create_customer(org, email, name, session)
    site_url = get_settings().site_url.rstrip("/")

    metadata = {
        "organization_id": str(org.id),
        "plan": plan.value,
        "interval": "yearly",
        "terms_accepted_at": datetime.now(timezone.utc).isoformat(),
    }
    checkout = await _stripe_call(
        "checkout.create",
        stripe.checkout.Session.create,
        customer=customer.stripe_customer_id,
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{site_url}/dashboard/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{site_url}/dashboard/billing",
        subscription_data={"metadata": {"organization_id": str(org.id), "plan": plan.value, "interval": "yearly"}},
        allow_promotion_codes=True,
        billing_address_collection="required",
        locale="pt-BR",
        metadata=metadata,
    )
    log.info("billing.checkout_created", org_id=str(org.id), plan=plan.value)
    return CheckoutSessionResponse(session_id=checkout["id"], url=checkout.get("url"))


async def create_portal_session(org: Organization, session: AsyncSession) -> PortalSessionResponse:
    _configure_stripe()
    result = await session.execute(select(BillingCustomer).where(BillingCustomer.org_id == org.id))
    customer = result.scalar_one_or_none()
    if not customer or not customer.stripe_customer_id:
        raise HTTPException(status_code=404, detail="Nenhum cliente de cobrança encontrado")

    portal = await _stripe_call(
        "portal.create",
        stripe.billing_portal.Session.create,
        customer=customer.stripe_customer_id,
        return_url=f"{get_settings().site_url.rstrip('/')}/dashboard/billing",
    )
    return PortalSessionResponse(url=portal["url"])


async def set_cancel_at_period_end(
    org: Organization, cancel: bool, session: AsyncSession
) -> Subscription:
    """Cancel at period end (cancel=True) or resume a pending cancellation."""
    _configure_stripe()
    subscription = await get_subscription(org.id, session)
    if not subscription or not subscription.stripe_subscription_id:
        raise HTTPException(status_code=404, detail="Nenhuma assinatura encontrada")

    await _stripe_call(
        "subscription.modify",
        stripe.Subscription.modify,
        subscription.stripe_subscription_id,
        cancel_at_period_end=cancel,
    )
    subscription.cancel_at_period_end = cancel
    subscription.canceled_at = datetime.now(timezone.utc) if cancel else None
    session.add(subscription)
    await session.flush()
    await session.refresh(subscription)

    log.info("billing.cancel_at_period_end", org_id=str(org.id), cancel=cancel)
    return subscription


async def list_payments(org_id: uuid.UUID, session: AsyncSession) -> list[PaymentHistory]:
    result = await session.execute(
        select(PaymentHistory)
        .where(PaymentHistory.org_id == org_id)
        .order_by(PaymentHistory.created_at.desc())
    )
    return list(result.scalars().all())
