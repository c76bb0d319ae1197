"""
Unauthenticated endpoints.

GET    /api/public/assessments/{assessmentId}             — Survey for respondents
POST   /api/public/assessments/{assessmentId}/responses   — Submit answers
POST   /api/public/checkout                               — Signup checkout (Stripe)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.rate_limit import rate_limit
from app.services import billing as billing_service
from app.services import public as public_service

from psicomapa_shared.schemas.assessments import (
    PublicAssessmentResponse,
    PublicSubmissionRequest,
    PublicSubmissionResponse,
)
from psicomapa_shared.schemas.billing import CheckoutSessionResponse, PreCheckoutRequest

router = APIRouter()


@router.get("/assessments/{assessment_id}", response_model=PublicAssessmentResponse)
async def get_public_assessment(
    assessment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    """The survey as shown to respondents. Only active assessments inside their date window."""
    return await public_service.get_public_assessment(assessment_id, session)


@router.post(
    "/assessments/{assessment_id}/responses",
    response_model=PublicSubmissionResponse,
    status_code=201,
    dependencies=[Depends(rate_limit("api"))],
)
async def submit_responses(
    assessment_id: uuid.UUID,
    body: PublicSubmissionRequest,
    session: AsyncSession = Depends(get_session),
):
    return await public_service.submit_responses(assessment_id, body, session)


@router.post(
    "/checkout",
    response_model=CheckoutSessionResponse,
    dependencies=[Depends(rate_limit("stripe_checkout"))],
)
async def public_checkout(body: PreCheckoutRequest):
    """Start a subscription for a new company. The account is provisioned by the Stripe webhook."""
    return await billing_service.create_public_checkout(body)
