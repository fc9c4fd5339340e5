"""
Review Endpoints (staff side)

Tenant members manage their tenant's reviews; super admins see all.
Public submission lives in crux.api.endpoints.public.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional

from crux.api.deps import (
    get_email_service,
    get_policy_session,
    get_query_cache,
    require_authenticated,
    unwrap,
)
from crux.cache import QueryCache
from crux.core.policies import Caller, PolicySession
from crux.schemas.review import (
    ReviewCreate,
    ReviewListResponse,
    ReviewRequestSend,
    ReviewResponse,
    ReviewStats,
    ReviewUpdate,
)
from crux.services.email_service import EmailService
from crux.services.review_service import ReviewService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


def review_filters(
    tenant_id: Optional[str] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    google_review: Optional[bool] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
) -> dict:
    return {
        "tenant_id": tenant_id,
        "rating": rating,
        "google_review": google_review,
        "start_date": start_date,
        "end_date": end_date,
        "search": search,
    }


@router.get("", response_model=ReviewListResponse)
def list_reviews(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    filters: dict = Depends(review_filters),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    result = unwrap(ReviewService(db).get_reviews(page=page, limit=page_size, **filters))
    return ReviewListResponse(
        reviews=result["reviews"],
        total=result["total"],
        page=page,
        page_size=page_size
    )


@router.get("/stats", response_model=ReviewStats)
def get_review_stats(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Aggregate stats over the reviews visible to the caller.

    PERFORMANCE: Cached per caller; dropped on any committed review change.
    """
    return cache.get_or_set(
        "reviews",
        caller,
        f"stats:{tenant_id or 'all'}",
        lambda: unwrap(ReviewService(db).get_review_stats(tenant_id)),
    )


@router.get("/export")
def export_reviews(
    filters: dict = Depends(review_filters),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """CSV download of the visible reviews matching the filters."""
    content = unwrap(ReviewService(db).export_reviews_csv(**filters))
    filename = f"reviews-{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/send-request")
def send_review_request(
    body: ReviewRequestSend,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
    email_service: EmailService = Depends(get_email_service),
):
    """Email a customer a link to the review form. Counts against the plan limit."""
    return unwrap(ReviewService(db, email_service).send_review_request(
        body.customer_email, body.customer_name, body.tenant_id
    ))


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    body: ReviewCreate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewService(db).create_review(body.model_dump()))


@router.get("/{review_id}", response_model=ReviewResponse)
def get_review(
    review_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewService(db).get_review_by_id(review_id))


@router.patch("/{review_id}", response_model=ReviewResponse)
def update_review(
    review_id: str,
    body: ReviewUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewService(db).update_review(review_id, body.model_dump(exclude_unset=True)))


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(
    review_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(ReviewService(db).delete_review(review_id))
    return None
