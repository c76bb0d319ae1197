"""
Billing endpoints (Stripe subscriptions).

GET    /api/v1/plans                                   — Public plan catalogue
POST   /api/v1/orgs/{orgSlug}/billing/checkout         — Checkout session for the org
POST   /api/v1/orgs/{orgSlug}/billing/portal           — Customer portal session
GET    /api/v1/orgs/{orgSlug}/billing/subscription     — Current plan and features
POST   /api/v1/orgs/{orgSlug}/billing/cancel           — Cancel at period end
POST   /api/v1/orgs/{orgSlug}/billing/resume           — Undo a pending cancellation
GET    /api/v1/orgs/{orgSlug}/billing/payments         — Payment history
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member, require_responsavel
from app.core.database import get_session
from app.core.rate_limit import rate_limit
from app.services import billing as billing_service

from psicomapa_shared.schemas.billing import (
    PLANS,
    CheckoutRequest,
    CheckoutSessionResponse,
    PaymentListResponse,
    PaymentResponse,
    PlanCatalogItem,
    PlanCatalogResponse,
    PortalSessionResponse,
    SubscriptionResponse,
    SubscriptionStateResponse,
)

router = APIRouter()
plans_router = APIRouter()


@plans_router.get("/plans", response_model=PlanCatalogResponse, tags=["Billing"])
async def list_plans():
    return PlanCatalogResponse(data=[PlanCatalogItem(type=plan, config=config) for plan, config in PLANS.items()])


@router.post(
    "/checkout",
    response_model=CheckoutSessionResponse,
    dependencies=[Depends(rate_limit("stripe"))],
)
async def create_checkout(
    body: CheckoutRequest,
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await billing_service.create_org_checkout(
        auth.org, body.plan, auth.user.email, auth.user.full_name, session
    )


@router.post(
    "/portal",
    response_model=PortalSessionResponse,
    dependencies=[Depends(rate_limit("stripe"))],
)
async def create_portal(
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    return await billing_service.create_portal_session(auth.org, session)


@router.get("/subscription", response_model=SubscriptionStateResponse)
async def get_subscription(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    subscription = await billing_service.get_subscription(auth.org_id, session)
    features = await billing_service.get_plan_features(auth.org_id, session)
    return SubscriptionStateResponse(
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        features=features.to_response(),
    )


@router.post(
    "/cancel",
    response_model=SubscriptionResponse,
    dependencies=[Depends(rate_limit("stripe"))],
)
async def cancel_subscription(
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    """Cancel at the end of the paid period. Access continues until then."""
    subscription = await billing_service.set_cancel_at_period_end(auth.org, True, session)
    return SubscriptionResponse.model_validate(subscription)


@router.post(
    "/resume",
    response_model=SubscriptionResponse,
    dependencies=[Depends(rate_limit("stripe"))],
)
async def resume_subscription(
    auth: AuthenticatedUser = Depends(require_responsavel),
    session: AsyncSession = Depends(get_session),
):
    subscription = await billing_service.set_cancel_at_period_end(auth.org, False, session)
    return SubscriptionResponse.model_validate(subscription)


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    payments = await billing_service.list_payments(auth.org_id, session)
    return PaymentListResponse(data=[PaymentResponse.model_validate(p) for p in payments])
