"""
Review Service

Staff-side review management. Public submissions go through
PublicReviewService instead.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import csv
import io
import uuid

from sqlalchemy import func

from crux.config import get_settings
from crux.core.exceptions import (
    EmailDeliveryError,
    PermissionDeniedError,
    RecordNotFoundError,
    ValidationFailedError,
)
from crux.models.review import GOOGLE_REVIEW_THRESHOLD, Review
from crux.models.tenant import Tenant
from crux.services.base import BaseService, service_method
from crux.services.email_service import EmailService
from crux.services.review_limit_service import ReviewLimitService

settings = get_settings()

UPDATABLE_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "country_code",
    "rating",
    "review_text",
    "redirect_opened",
)

CSV_COLUMNS = (
    "id",
    "created_at",
    "customer_name",
    "customer_email",
    "customer_phone",
    "rating",
    "review_text",
    "google_review",
    "source",
)


def validate_rating(rating: Any) -> int:
    # bool is an int subclass; True is not a rating
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailedError("Rating must be an integer between 1 and 5")
    return rating


class ReviewService(BaseService):

    def __init__(self, db, email_service: EmailService = None):
        super().__init__(db)
        self.email = email_service or EmailService()

    def _filtered(
        self,
        tenant_id: Optional[str] = None,
        rating: Optional[int] = None,
        google_review: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ):
        query = self.db.query(Review)
        if tenant_id:
            query = query.filter(Review.tenant_id == tenant_id)
        if rating is not None:
            query = query.filter(Review.rating == rating)
        if google_review is not None:
            query = query.filter(Review.google_review.is_(google_review))
        if start_date:
            query = query.filter(Review.created_at >= start_date)
        if end_date:
            query = query.filter(Review.created_at <= end_date)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                func.lower(Review.customer_name).like(pattern)
                | func.lower(Review.customer_email).like(pattern)
                | func.lower(Review.review_text).like(pattern)
            )
        return query

    def _visible_review(self, review_id: str) -> Review:
        review = self.db.get(Review, review_id)
        if review is None:
            raise RecordNotFoundError("Review", review_id)
        return review

    @service_method("ReviewService.get_reviews")
    def get_reviews(self, page: int = 1, limit: int = 20, **filters):
        query = self._filtered(**filters)
        total = query.count()
        offset, limit = self.paginate(page, limit)
        reviews = query.order_by(Review.created_at.desc()).offset(offset).limit(limit).all()
        return {"reviews": reviews, "total": total}

    @service_method("ReviewService.get_review_by_id")
    def get_review_by_id(self, review_id: str):
        return self._visible_review(review_id)

    @service_method("ReviewService.create_review")
    def create_review(self, data: Dict[str, Any]):
        rating = validate_rating(data.get("rating"))
        tenant_id = data.get("tenant_id") or self.caller.tenant_id
        if not tenant_id:
            raise ValidationFailedError("tenant_id is required")

        limits = ReviewLimitService(self.db).get_tenant_review_limits(tenant_id)
        if not limits.success:
            return limits
        if not limits.data["can_collect"]:
            raise PermissionDeniedError(
                f"Review limit reached for the {limits.data['plan_type']} plan "
                f"({limits.data['max_reviews']} reviews)"
            )

        review = Review(
            tenant_id=tenant_id,
            user_id=self.caller.user_id,
            customer_name=(data.get("customer_name") or "").strip() or "Anonymous",
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            country_code=data.get("country_code") or "+1",
            rating=rating,
            review_text=data.get("review_text"),
            google_review=rating >= GOOGLE_REVIEW_THRESHOLD,
            source=data.get("source") or "dashboard",
            review_metadata=dict(data.get("metadata") or {}),
        )
        self.db.add(review)
        self.db.commit()
        return review

    @service_method("ReviewService.update_review")
    def update_review(self, review_id: str, values: Dict[str, Any]):
        review = self._visible_review(review_id)
        changes = {k: v for k, v in values.items() if k in UPDATABLE_FIELDS}
        if "rating" in changes:
            changes["rating"] = validate_rating(changes["rating"])
            changes["google_review"] = changes["rating"] >= GOOGLE_REVIEW_THRESHOLD
        self.db.update(review, changes)
        self.db.commit()
        return review

    @service_method("ReviewService.delete_review")
    def delete_review(self, review_id: str):
        review = self._visible_review(review_id)
        self.db.delete(review)
        self.db.commit()
        return True

    @service_method("ReviewService.get_review_stats")
    def get_review_stats(self, tenant_id: Optional[str] = None):
        query = self._filtered(tenant_id=tenant_id)
        ratings = [row.rating for row in query.with_entities(Review.rating).all()]
        total = len(ratings)
        average = sum(ratings) / total if total else 0
        return {
            "total_reviews": total,
            "average_rating": round(average, 1),
            "high_rating_reviews": sum(1 for r in ratings if r >= GOOGLE_REVIEW_THRESHOLD),
        }

    @service_method("ReviewService.export_reviews_csv")
    def export_reviews_csv(self, **filters):
        reviews = self._filtered(**filters).order_by(Review.created_at.desc()).all()
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for review in reviews:
            writer.writerow([
                review.id,
                review.created_at.isoformat() if review.created_at else "",
                review.customer_name,
                review.customer_email or "",
                review.customer_phone or "",
                review.rating,
                review.review_text or "",
                "yes" if review.google_review else "no",
                review.source,
            ])
        return buffer.getvalue()

    @service_method("ReviewService.mark_redirect_opened")
    def mark_redirect_opened(self, review_id: str):
        """Called from the public redirect page; the review id is the capability."""
        review = self.db.elevated().get(Review, review_id)
        if review is None:
            raise RecordNotFoundError("Review", review_id)
        if not review.redirect_opened:
            self.db.elevated().update(review, {"redirect_opened": True})
            self.db.commit()
        return True

    @service_method("ReviewService.send_review_request")
    def send_review_request(self, customer_email: str, customer_name: str, tenant_id: Optional[str] = None):
        """Email a customer a link to the tenant's review form."""
        tenant_id = tenant_id or self.caller.tenant_id
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        allowed = ReviewLimitService(self.db).can_perform_action(tenant.id, "send")
        if not allowed.success:
            return allowed
        if not allowed.data:
            raise PermissionDeniedError(f"Review limit reached for the {tenant.plan_type} plan")

        tracking_id = uuid.uuid4().hex
        base_url = tenant.review_form_url or f"{settings.FRONTEND_URL.rstrip('/')}/review/{tenant.slug}"
        review_url = f"{base_url}?tracking_id={tracking_id}"
        sent, error, message_id = self.email.send_review_request(
            customer_email, customer_name, tenant.business_name or tenant.name, review_url
        )
        if not sent:
            raise EmailDeliveryError(f"Failed to send review request: {error}")
        return {"tracking_id": tracking_id, "message_id": message_id, "review_url": review_url}
