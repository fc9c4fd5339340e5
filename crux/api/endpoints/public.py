"""
Public Endpoints

No authentication. Everything here runs as the anon role, so the only
rows reachable are the ones the anon policies admit: active tenants'
review forms and active, unexpired review links.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from crux.api.deps import get_anonymous_session, unwrap
from crux.core.policies import PolicySession
from crux.schemas.review import PublicReviewSubmission, ReviewLinkResponse
from crux.schemas.tenant import PublicTenantResponse
from crux.services.public_review_service import PublicReviewService
from crux.services.review_link_service import ReviewLinkService
from crux.services.review_service import ReviewService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


@router.post("/reviews")
def submit_public_review(
    submission: PublicReviewSubmission,
    db: PolicySession = Depends(get_anonymous_session),
):
    """
    Submit a review through a tenant's public form.

    Returns where to send the reviewer next: the tenant's Google review
    page for 4-5 stars, the internal feedback page otherwise.
    """
    response = PublicReviewService(db).submit_public_review(submission.model_dump())
    if not response.success:
        return JSONResponse(
            status_code=response.status_code,
            content={"success": False, "error": response.error},
        )
    return response.data


@router.get("/tenants/{slug}", response_model=PublicTenantResponse)
def get_public_tenant(slug: str, db: PolicySession = Depends(get_anonymous_session)):
    return unwrap(PublicReviewService(db).get_public_tenant(slug))


@router.get("/review-links/{link_code}", response_model=ReviewLinkResponse)
def get_review_link(link_code: str, db: PolicySession = Depends(get_anonymous_session)):
    """Resolve a shareable link; inactive or expired links are not found."""
    return unwrap(ReviewLinkService(db).get_review_link_by_code(link_code))


@router.post("/reviews/{review_id}/redirect-opened", status_code=status.HTTP_204_NO_CONTENT)
def mark_redirect_opened(review_id: str, db: PolicySession = Depends(get_anonymous_session)):
    unwrap(ReviewService(db).mark_redirect_opened(review_id))
    return None
