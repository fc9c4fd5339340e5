"""
Review Limit Service

Plan-based review quotas. A tenant may share, send and collect review
requests while its review count is below the plan maximum.
"""
from typing import Optional
from urllib.parse import urlparse

from crux.core.exceptions import RecordNotFoundError, ValidationFailedError
from crux.models.review import Review
from crux.models.settings import BusinessSettings
from crux.models.tenant import PlanType, Tenant
from crux.services.base import BaseService, service_method

PLAN_LIMITS = {
    PlanType.BASIC.value: 100,
    PlanType.PRO.value: 500,
    PlanType.INDUSTRY.value: 1000,
}

PLAN_ALIASES = {"enterprise": PlanType.INDUSTRY.value}

LIMIT_ACTIONS = ("share", "send", "collect")

UPGRADE_THRESHOLD_PERCENT = 80

UPGRADE_PATHS = {
    PlanType.BASIC.value: (
        PlanType.PRO.value,
        [
            "500 reviews per month (5x more)",
            "Advanced analytics",
            "Custom branding",
            "Priority support",
        ],
    ),
    PlanType.PRO.value: (
        PlanType.INDUSTRY.value,
        [
            "1000 reviews per month (2x more)",
            "API access",
            "White-label options",
            "Dedicated account manager",
        ],
    ),
}


def normalize_plan(plan_type: Optional[str]) -> str:
    """Known plan name; aliases resolved, anything else is basic."""
    plan = PLAN_ALIASES.get(plan_type, plan_type)
    return plan if plan in PLAN_LIMITS else PlanType.BASIC.value


def max_reviews_for(plan_type: Optional[str]) -> int:
    return PLAN_LIMITS[normalize_plan(plan_type)]


def generate_google_review_url(google_business_url: str) -> str:
    """
    https://www.google.com/maps/place/<name>/... -> .../place/<name>/reviews.

    URLs without a place segment are returned unchanged.
    """
    try:
        parts = urlparse(google_business_url).path.split("/")
    except (TypeError, ValueError):
        return google_business_url
    if "place" in parts:
        index = parts.index("place")
        if index + 1 < len(parts) and parts[index + 1]:
            return f"https://www.google.com/maps/place/{parts[index + 1]}/reviews"
    return google_business_url


class ReviewLimitService(BaseService):

    def _limits(self, tenant_id: str) -> dict:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        plan = normalize_plan(tenant.plan_type)
        max_reviews = PLAN_LIMITS[plan]
        current = self.db.query(Review).filter(Review.tenant_id == tenant_id).count()
        under_limit = current < max_reviews

        return {
            "plan_type": plan,
            "max_reviews": max_reviews,
            "current_reviews": current,
            "remaining_reviews": max(0, max_reviews - current),
            "is_limit_reached": current >= max_reviews,
            "can_share": under_limit,
            "can_send": under_limit,
            "can_collect": under_limit,
        }

    @service_method("ReviewLimitService.get_tenant_review_limits")
    def get_tenant_review_limits(self, tenant_id: str):
        return self._limits(tenant_id)

    @service_method("ReviewLimitService.can_perform_action")
    def can_perform_action(self, tenant_id: str, action: str):
        if action not in LIMIT_ACTIONS:
            raise ValidationFailedError(f"Unknown action: {action}")
        return self._limits(tenant_id)[f"can_{action}"]

    @service_method("ReviewLimitService.get_upgrade_recommendation")
    def get_upgrade_recommendation(self, tenant_id: str):
        limits = self._limits(tenant_id)
        usage = limits["current_reviews"] / limits["max_reviews"] * 100

        recommended, benefits = limits["plan_type"], []
        if usage >= UPGRADE_THRESHOLD_PERCENT and limits["plan_type"] in UPGRADE_PATHS:
            recommended, benefits = UPGRADE_PATHS[limits["plan_type"]]

        return {
            "current_plan": limits["plan_type"],
            "recommended_plan": recommended,
            "usage_percentage": round(usage),
            "upgrade_benefits": list(benefits),
        }

    @service_method("ReviewLimitService.get_google_business_settings")
    def get_google_business_settings(self, tenant_id: str):
        settings = (
            self.db.query(BusinessSettings)
            .filter(BusinessSettings.tenant_id == tenant_id)
            .first()
        )
        url = (settings.google_business_url if settings else None) or ""
        return {
            "google_business_url": url,
            "is_configured": bool(url),
            "review_url": generate_google_review_url(url) if url else "",
        }
