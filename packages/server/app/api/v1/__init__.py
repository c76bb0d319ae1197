"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}.
"""

from fastapi import APIRouter
from . import (
    action_plans,
    analytics,
    assessments,
    billing,
    departments,
    events,
    questionnaires,
    reports,
    users,
)
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Public plan catalogue
router.include_router(billing.plans_router)

# Organization routes (non-org-scoped: list)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, settings)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])

# Include resource routers
router.include_router(departments.router, prefix="/orgs/{orgSlug}/departments", tags=["Departments"])
router.include_router(users.router, prefix="/orgs/{orgSlug}/users", tags=["Users"])
router.include_router(questionnaires.router, prefix="/orgs/{orgSlug}/questionnaires", tags=["Questionnaires"])
router.include_router(assessments.router, prefix="/orgs/{orgSlug}/assessments", tags=["Assessments"])
router.include_router(analytics.router, prefix="/orgs/{orgSlug}/analytics", tags=["Analytics"])
router.include_router(reports.router, prefix="/orgs/{orgSlug}/reports", tags=["Reports"])
router.include_router(reports.exports_router, prefix="/orgs/{orgSlug}/exports", tags=["Reports"])
router.include_router(action_plans.router, prefix="/orgs/{orgSlug}/action-plans", tags=["Action Plans"])
router.include_router(billing.router, prefix="/orgs/{orgSlug}/billing", tags=["Billing"])
router.include_router(events.router, prefix="/orgs/{orgSlug}/webhooks", tags=["Webhooks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "1.0.0",
        "endpoints": [
            "/plans",
            "/orgs",
            "/orgs/{orgSlug}/departments",
            "/orgs/{orgSlug}/users",
            "/orgs/{orgSlug}/questionnaires",
            "/orgs/{orgSlug}/assessments",
            "/orgs/{orgSlug}/analytics",
            "/orgs/{orgSlug}/reports",
            "/orgs/{orgSlug}/exports",
            "/orgs/{orgSlug}/action-plans",
            "/orgs/{orgSlug}/billing",
            "/orgs/{orgSlug}/webhooks",
        ],
    }
