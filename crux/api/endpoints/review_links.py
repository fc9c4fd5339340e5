"""
Review Link Endpoints

Shareable review-form links owned by a tenant. Members read, tenant
admins manage (see the review_links policies).
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from crux.api.deps import get_policy_session, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.review import ReviewLinkCreate, ReviewLinkResponse, ReviewLinkUpdate
from crux.services.review_link_service import ReviewLinkService

router = APIRouter(prefix="/review-links", tags=["review-links"])


@router.get("", response_model=List[ReviewLinkResponse])
def list_review_links(
    tenant_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLinkService(db).get_tenant_review_links(tenant_id, active_only))


@router.post("", response_model=ReviewLinkResponse, status_code=status.HTTP_201_CREATED)
def create_review_link(
    body: ReviewLinkCreate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLinkService(db).create_review_link(body.model_dump()))


@router.get("/{link_id}", response_model=ReviewLinkResponse)
def get_review_link(
    link_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLinkService(db).get_review_link(link_id))


@router.patch("/{link_id}", response_model=ReviewLinkResponse)
def update_review_link(
    link_id: str,
    body: ReviewLinkUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLinkService(db).update_review_link(link_id, body.model_dump(exclude_unset=True)))


@router.post("/{link_id}/deactivate", response_model=ReviewLinkResponse)
def deactivate_review_link(
    link_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLinkService(db).deactivate_review_link(link_id))


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review_link(
    link_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(ReviewLinkService(db).delete_review_link(link_id))
    return None
