"""
Tests for the plan catalogue, feature gates and billing endpoints.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
import stripe
from fastapi import HTTPException
from httpx import AsyncClient
from pydantic import ValidationError

from app.core.config import get_settings
from app.models.subscription import PaymentHistory
from app.services.billing import (
    PlanFeatures,
    check_limit,
    get_plan_features,
    get_plan_from_price_id,
    require_export,
    require_import,
)

from conftest import add_subscription
from psicomapa_shared.schemas.billing import (
    PlanType,
    PreCheckoutRequest,
    can_upgrade,
    get_recommended_plan,
    is_valid_employee_count,
)


CHECKOUT_BODY = {
    "email": "rh@novaempresa.com.br",
    "full_name": "Paula Lima",
    "company_name": "Nova Empresa",
    "employee_count": 90,
    "plan": "base",
    "terms_accepted": True,
    "privacy_accepted": True,
}


@pytest.fixture
def stripe_prices(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    monkeypatch.setattr(settings, "stripe_price_base_yearly", "price_base")
    monkeypatch.setattr(settings, "stripe_price_intermediario_yearly", "price_mid")
    monkeypatch.setattr(settings, "stripe_price_avancado_yearly", "price_top")
    return settings


# ---------------------------------------------------------------------------
# Plan catalogue
# ---------------------------------------------------------------------------

class TestPlanCatalogue:
    def test_recommended_plan_by_headcount(self):
        assert get_recommended_plan(50) == PlanType.BASE
        assert get_recommended_plan(121) == PlanType.INTERMEDIARIO
        assert get_recommended_plan(400) == PlanType.AVANCADO
        assert get_recommended_plan(49) is None
        assert get_recommended_plan(401) is None

    def test_employee_count_ranges(self):
        assert is_valid_employee_count(PlanType.BASE, 120)
        assert not is_valid_employee_count(PlanType.BASE, 121)

    def test_upgrade_order(self):
        assert can_upgrade(PlanType.BASE, PlanType.AVANCADO)
        assert not can_upgrade(PlanType.AVANCADO, PlanType.INTERMEDIARIO)
        assert not can_upgrade(PlanType.BASE, PlanType.BASE)

    def test_price_lookup(self, stripe_prices):
        assert get_plan_from_price_id("price_mid") == PlanType.INTERMEDIARIO
        assert get_plan_from_price_id("price_unknown") is None
        assert get_plan_from_price_id(None) is None


class TestPreCheckoutRequest:
    def test_valid(self):
        req = PreCheckoutRequest(**CHECKOUT_BODY)
        assert req.plan == PlanType.BASE

    def test_terms_required(self):
        with pytest.raises(ValidationError):
            PreCheckoutRequest(**{**CHECKOUT_BODY, "terms_accepted": False})

    def test_privacy_required(self):
        with pytest.raises(ValidationError):
            PreCheckoutRequest(**{**CHECKOUT_BODY, "privacy_accepted": False})

    def test_headcount_outside_plan(self):
        with pytest.raises(ValidationError, match="50 a 120"):
            PreCheckoutRequest(**{**CHECKOUT_BODY, "employee_count": 300})


# ---------------------------------------------------------------------------
# Feature gates
# ---------------------------------------------------------------------------

class TestPlanFeatures:
    def test_no_subscription(self):
        features = PlanFeatures(plan=None)
        assert not features.has_active_subscription
        assert features.export_formats() == []
        assert not features.can_import()

    def test_base(self):
        features = PlanFeatures(plan=PlanType.BASE)
        assert features.can_export("pdf")
        assert not features.can_export("xlsx")
        assert not features.can_import()

    def test_avancado(self):
        features = PlanFeatures(plan=PlanType.AVANCADO)
        assert features.can_export("xlsx")
        assert features.can_import()
        assert features.to_response().limits.max_team_members is None

    def test_check_limit(self):
        check_limit(None, 1000, "sem limite")
        check_limit(10, 9, "ok")
        with pytest.raises(HTTPException) as exc_info:
            check_limit(10, 10, "Limite de membros atingido")
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Limite de membros atingido"


class TestPlanGates:
    @pytest.mark.asyncio
    async def test_inactive_subscription_grants_nothing(self, session, tenant):
        await add_subscription(session, tenant.org, "avancado", status="past_due")
        features = await get_plan_features(tenant.org.id, session)
        assert features.plan is None
        with pytest.raises(HTTPException) as exc_info:
            await require_export(tenant.org.id, "csv", session)
        assert exc_info.value.detail == "Assinatura ativa necessária para exportar relatórios"

    @pytest.mark.asyncio
    async def test_export_upgrade_message(self, session, tenant):
        await add_subscription(session, tenant.org, "intermediario")
        await require_export(tenant.org.id, "pdf", session)
        with pytest.raises(HTTPException) as exc_info:
            await require_export(tenant.org.id, "xlsx", session)
        assert exc_info.value.detail == "Exportar XLSX requer plano Avancado."
        await require_import(tenant.org.id, session)

    @pytest.mark.asyncio
    async def test_import_needs_intermediario(self, session, tenant):
        await add_subscription(session, tenant.org, "base")
        with pytest.raises(HTTPException) as exc_info:
            await require_import(tenant.org.id, session)
        assert exc_info.value.status_code == 403


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

class TestBillingEndpoints:
    @pytest.mark.asyncio
    async def test_plan_catalogue_is_public(self, client: AsyncClient):
        resp = await client.get("/api/v1/plans")
        assert resp.status_code == 200
        assert [p["type"] for p in resp.json()["data"]] == ["base", "intermediario", "avancado"]

    @pytest.mark.asyncio
    async def test_subscription_state(self, client: AsyncClient, session, tenant):
        await add_subscription(session, tenant.org, "base")
        resp = await client.get(f"{tenant.base}/billing/subscription", headers=tenant.member_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["subscription"]["plan"] == "base"
        assert data["features"]["export_formats"] == ["csv", "pdf"]
        assert data["features"]["can_import"] is False

    @pytest.mark.asyncio
    async def test_member_cannot_checkout(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/billing/checkout", json={"plan": "base"}, headers=tenant.member_headers
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_checkout_without_stripe(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/billing/checkout", json={"plan": "base"}, headers=tenant.owner_headers
        )
        assert resp.status_code == 500

    @pytest.mark.asyncio
    async def test_org_checkout(self, client: AsyncClient, tenant, stripe_prices):
        checkout = {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
        with patch("stripe.Customer.create", return_value={"id": "cus_new"}) as create_customer, \
                patch("stripe.checkout.Session.create", return_value=checkout) as create_session:
            resp = await client.post(
                f"{tenant.base}/billing/checkout", json={"plan": "intermediario"}, headers=tenant.owner_headers
            )
        assert resp.status_code == 200
        assert resp.json() == {"session_id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
        create_customer.assert_called_once()
        kwargs = create_session.call_args.kwargs
        assert kwargs["customer"] == "cus_new"
        assert kwargs["line_items"] == [{"price": "price_mid", "quantity": 1}]
        assert kwargs["metadata"]["plan"] == "intermediario"

    @pytest.mark.asyncio
    async def test_stripe_failure_is_bad_gateway(self, client: AsyncClient, stripe_prices):
        with patch("stripe.Customer.create", side_effect=stripe.APIConnectionError("unreachable")):
            resp = await client.post("/api/public/checkout", json=CHECKOUT_BODY)
        assert resp.status_code == 502

    @pytest.mark.asyncio
    async def test_public_checkout_validation(self, client: AsyncClient, stripe_prices):
        resp = await client.post("/api/public/checkout", json={**CHECKOUT_BODY, "terms_accepted": False})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, client: AsyncClient, tenant, stripe_prices):
        resp = await client.post(f"{tenant.base}/billing/cancel", headers=tenant.owner_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_payment_history(self, client: AsyncClient, session, tenant):
        session.add(PaymentHistory(org_id=tenant.org.id, amount_cents=397000, currency="brl", status="succeeded"))
        await session.commit()
        resp = await client.get(f"{tenant.base}/billing/payments", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert [p["amount_cents"] for p in resp.json()["data"]] == [397000]
