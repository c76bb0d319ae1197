"""
Billing schemas and the plan catalogue.

Plans are billed yearly only. Limits of ``None`` mean unlimited.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .organizations import CompanySize
from .users import PERSON_NAME_PATTERN


class PlanType(str, Enum):
    BASE = "base"
    INTERMEDIARIO = "intermediario"
    AVANCADO = "avancado"


PLAN_ORDER: list[PlanType] = [PlanType.BASE, PlanType.INTERMEDIARIO, PlanType.AVANCADO]


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"


ExportFormat = Literal["csv", "pdf", "xlsx", "api"]


# ---------------------------------------------------------------------------
# Plan catalogue
# ---------------------------------------------------------------------------

class PlanLimits(BaseModel):
    min_employees: int
    max_employees: int
    max_active_assessments: Optional[int] = None
    max_questions_per_assessment: Optional[int] = None
    max_team_members: Optional[int] = None
    ai_analyses_per_month: Optional[int] = None
    ai_action_plans_per_month: Optional[int] = None


class PlanCapabilities(BaseModel):
    analytics: Literal["basic", "advanced", "custom"]
    exports: list[ExportFormat]
    api_access: bool = False
    custom_branding: bool = False
    priority_support: bool = False
    dedicated_support: bool = False
    comparative_analysis: bool = False
    systemic_analysis: bool = False
    elevated_alerts: bool = False


class PlanConfig(BaseModel):
    name: str
    description: str
    objective: str
    price_amount_yearly: int = Field(description="Yearly price in centavos (BRL)")
    price_display_yearly: str
    price_display_per_month: str
    features: list[str]
    limits: PlanLimits
    capabilities: PlanCapabilities


PLANS: dict[PlanType, PlanConfig] = {
    PlanType.BASE: PlanConfig(
        name="Base",
        description="Para empresas de 50 a 120 colaboradores",
        objective="Cumprir a NR-1 com clareza",
        price_amount_yearly=397000,
        price_display_yearly="R$ 3.970",
        price_display_per_month="R$ 330,83",
        features=[
            "IA vertical em riscos psicossociais",
            "Dashboards automaticos",
            "Relatorio tecnico personalizado",
            "Plano de acao orientado a prevencao",
            "Analise por clusters de risco",
            "Assessments ilimitados",
            "Export PDF e CSV",
            "Suporte por email",
        ],
        limits=PlanLimits(
            min_employees=50,
            max_employees=120,
            max_questions_per_assessment=100,
            max_team_members=10,
            ai_analyses_per_month=20,
            ai_action_plans_per_month=10,
        ),
        capabilities=PlanCapabilities(analytics="basic", exports=["csv", "pdf"]),
    ),
    PlanType.INTERMEDIARIO: PlanConfig(
        name="Intermediario",
        description="Para empresas de 121 a 250 colaboradores",
        objective="Apoiar decisoes gerenciais",
        price_amount_yearly=497000,
        price_display_yearly="R$ 4.970",
        price_display_per_month="R$ 414,17",
        features=[
            "Tudo do plano Base",
            "Analise comparativa entre ciclos",
            "Priorizacao de riscos por impacto organizacional",
            "Dashboards comparativos (tempo/areas)",
            "Relatorio executivo para lideranca",
            "Branding personalizado",
            "Suporte prioritario",
        ],
        limits=PlanLimits(
            min_employees=121,
            max_employees=250,
            max_questions_per_assessment=150,
            max_team_members=25,
            ai_analyses_per_month=50,
            ai_action_plans_per_month=25,
        ),
        capabilities=PlanCapabilities(
            analytics="advanced",
            exports=["csv", "pdf"],
            custom_branding=True,
            priority_support=True,
            comparative_analysis=True,
        ),
    ),
    PlanType.AVANCADO: PlanConfig(
        name="Avancado",
        description="Para empresas de 251 a 400 colaboradores",
        objective="Atender organizacoes de maior complexidade",
        price_amount_yearly=597000,
        price_display_yearly="R$ 5.970",
        price_display_per_month="R$ 497,50",
        features=[
            "Tudo do plano Intermediario",
            "Analise sistemica dos riscos psicossociais",
            "Correlacao entre fatores organizacionais",
            "Alertas de atencao elevada",
            "Relatorio tecnico estruturado para gestao de riscos",
            "Acesso a API",
            "Export XLSX",
            "Suporte dedicado",
        ],
        limits=PlanLimits(min_employees=251, max_employees=400),
        capabilities=PlanCapabilities(
            analytics="custom",
            exports=["csv", "pdf", "xlsx", "api"],
            api_access=True,
            custom_branding=True,
            priority_support=True,
            dedicated_support=True,
            comparative_analysis=True,
            systemic_analysis=True,
            elevated_alerts=True,
        ),
    ),
}

# Minimum plan per export format, with the upgrade prompt shown to the user
EXPORT_REQUIREMENTS: dict[str, tuple[PlanType, str]] = {
    "csv": (PlanType.BASE, "CSV esta disponivel em todos os planos."),
    "pdf": (PlanType.BASE, "PDF esta disponivel em todos os planos."),
    "xlsx": (PlanType.AVANCADO, "Exportar XLSX requer plano Avancado."),
    "api": (PlanType.AVANCADO, "Acesso a API requer plano Avancado."),
}


def can_upgrade(current: PlanType, target: PlanType) -> bool:
    return PLAN_ORDER.index(target) > PLAN_ORDER.index(current)


def get_recommended_plan(employee_count: int) -> Optional[PlanType]:
    """Plan whose employee range contains the count, or None when out of range."""
    for plan, config in PLANS.items():
        if config.limits.min_employees <= employee_count <= config.limits.max_employees:
            return plan
    return None


def is_valid_employee_count(plan: PlanType, employee_count: int) -> bool:
    limits = PLANS[plan].limits
    return limits.min_employees <= employee_count <= limits.max_employees


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class PreCheckoutRequest(BaseModel):
    """Public checkout form submitted before redirecting to Stripe."""

    email: EmailStr
    full_name: str = Field(min_length=2, max_length=100, pattern=PERSON_NAME_PATTERN)
    company_name: str = Field(min_length=2, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[CompanySize] = None
    employee_count: Optional[int] = Field(default=None, ge=1)
    plan: PlanType
    terms_accepted: bool
    privacy_accepted: bool

    @field_validator("terms_accepted")
    @classmethod
    def require_terms(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("Você deve aceitar os Termos de Uso")
        return value

    @field_validator("privacy_accepted")
    @classmethod
    def require_privacy(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("Você deve aceitar a Política de Privacidade")
        return value

    @model_validator(mode="after")
    def check_employee_count(self):
        if self.employee_count is not None and not is_valid_employee_count(
            self.plan, self.employee_count
        ):
            limits = PLANS[self.plan].limits
            raise ValueError(
                f"O plano {PLANS[self.plan].name} atende empresas de "
                f"{limits.min_employees} a {limits.max_employees} colaboradores"
            )
        return self


class CheckoutRequest(BaseModel):
    plan: PlanType


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PortalSessionResponse(BaseModel):
    url: str


class PlanCatalogItem(BaseModel):
    type: PlanType
    config: PlanConfig


class PlanCatalogResponse(BaseModel):
    data: list[PlanCatalogItem]


class PlanFeaturesResponse(BaseModel):
    plan: Optional[PlanType] = None
    has_active_subscription: bool
    export_formats: list[str]
    can_import: bool
    limits: Optional[PlanLimits] = None


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    plan: PlanType
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    canceled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubscriptionStateResponse(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    features: PlanFeaturesResponse


class PaymentResponse(BaseModel):
    id: uuid.UUID
    amount_cents: int
    currency: str
    status: str
    description: Optional[str] = None
    failure_message: Optional[str] = None
    invoice_pdf_url: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentListResponse(BaseModel):
    data: list[PaymentResponse]
