"""
Public Review Service

The anonymous review form. Submissions always run as the anon role,
whoever sends them, so the reviews_public_insert policy is what lets a
row in: the target tenant must be active and publish a review form.

Ratings of 4 and 5 are sent on to the tenant's Google review page,
lower ratings to the internal feedback form.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from crux.config import get_settings
from crux.core.exceptions import PolicyViolationError, ValidationFailedError
from crux.core.policies import Caller, PolicySession
from crux.models.audit import UsageMetric
from crux.models.review import GOOGLE_REVIEW_THRESHOLD, Review
from crux.services.base import BaseService, ServiceResponse, service_method
from crux.services.review_service import validate_rating
from crux.services.tenant_service import TenantService

settings = get_settings()

NOT_AVAILABLE = "Business not found or review form not available"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def feedback_redirect_url(review_id: str, name: Optional[str], rating: int) -> str:
    encoded = quote(name or "Anonymous", safe="-_.!~*'()")
    return f"{settings.BASE_DOMAIN.rstrip('/')}/feedback?review_id={review_id}&name={encoded}&rating={rating}"


class PublicReviewService(BaseService):

    @service_method("PublicReviewService.get_public_tenant")
    def get_public_tenant(self, slug: str):
        response = TenantService(self.db).get_tenant_by_slug(slug)
        if not response.success:
            return response
        tenant = response.data
        if tenant is None:
            return ServiceResponse.fail(NOT_AVAILABLE, 404)

        branding = (tenant.settings or {}).get("branding", {})
        return {
            "id": tenant.id,
            "name": tenant.name,
            "business_name": tenant.business_name,
            "google_review_url": tenant.google_review_url,
            "slug": tenant.slug,
            "review_url": tenant.review_form_url,
            "branding": branding,
            "status": tenant.status,
        }

    @service_method("PublicReviewService.submit_public_review")
    def submit_public_review(self, submission: Dict[str, Any]):
        slug = _clean(submission.get("slug"))
        rating = submission.get("rating")
        if not slug or not rating:
            raise ValidationFailedError("Missing required fields: slug and rating are required")
        if isinstance(rating, float) and rating.is_integer():
            rating = int(rating)
        rating = validate_rating(rating)

        lookup = TenantService(self.db).get_tenant_by_slug(slug)
        if not lookup.success:
            return lookup
        tenant = lookup.data
        if tenant is None:
            return ServiceResponse.fail(NOT_AVAILABLE, 404)

        name = _clean(submission.get("reviewer_name"))
        metadata = dict(submission.get("metadata") or {})
        metadata.update({"submitted_at": datetime.utcnow().isoformat(), "tenant_slug": slug})

        review = Review(
            tenant_id=tenant.id,
            customer_name=name or "Anonymous",
            customer_email=_clean(submission.get("reviewer_email")),
            customer_phone=_clean(submission.get("reviewer_phone")),
            rating=rating,
            review_text=_clean(submission.get("feedback_text")),
            google_review=rating >= GOOGLE_REVIEW_THRESHOLD,
            is_anonymous=True,
            source="public_form",
            review_metadata=metadata,
        )

        anon = PolicySession(self.db.session, Caller.anonymous(), self.db.registry)
        try:
            anon.add(review)
            anon.elevated().add(UsageMetric(
                tenant_id=tenant.id,
                metric_type="public_review_submitted",
                metric_value=1,
                metric_metadata={"rating": rating},
            ))
            anon.commit()
        except (PolicyViolationError, SQLAlchemyError) as exc:
            self.db.rollback()
            self.logger.error(f"Error inserting public review for {slug}: {exc}")
            return ServiceResponse.fail("Failed to submit review", 500)

        if rating >= GOOGLE_REVIEW_THRESHOLD:
            redirect_url = tenant.google_review_url
        else:
            redirect_url = feedback_redirect_url(review.id, name, rating)

        self.logger.info(
            f"Public review submitted (rating={rating})",
            extra={"tenant_id": tenant.id},
        )
        return {"success": True, "review_id": review.id, "redirect_url": redirect_url}
