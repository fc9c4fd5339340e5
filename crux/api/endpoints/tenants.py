"""
Tenant Management Endpoints

Tenant CRUD is super-admin territory; tenant admins may read and update
their own tenant (the tenants policies enforce which row, the service
enforces which fields).
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from crux.api.deps import get_email_service, get_policy_session, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.invitation import InvitationResponse
from crux.schemas.tenant import (
    ReviewLimits,
    TenantCreate,
    TenantResponse,
    TenantStatusUpdate,
    TenantUpdate,
    TenantUsageStats,
    TenantWithAdminCreate,
    UpgradeRecommendation,
)
from crux.services.email_service import EmailService
from crux.services.review_limit_service import ReviewLimitService
from crux.services.tenant_service import TenantService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=List[TenantResponse])
def list_tenants(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """Tenants visible to the caller: all for super admins, their own otherwise."""
    return unwrap(TenantService(db).get_tenants(status_filter, search))


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    body: TenantCreate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).create_tenant(body.model_dump()))


@router.post("/with-admin", status_code=status.HTTP_201_CREATED)
def create_tenant_with_admin(
    body: TenantWithAdminCreate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
    email_service: EmailService = Depends(get_email_service),
):
    """
    Create a tenant and invite its first tenant admin.

    Both rows commit together; if the invitation email fails nothing is kept.
    """
    data = body.model_dump(exclude={"admin_email", "send_email"})
    result = unwrap(
        TenantService(db, email_service).create_tenant_with_admin(data, body.admin_email, body.send_email)
    )
    return {
        "tenant": TenantResponse.model_validate(result["tenant"]),
        "invitation": InvitationResponse.model_validate(result["invitation"]),
    }


@router.get("/{tenant_id}", response_model=TenantResponse)
def get_tenant(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).get_tenant_by_id(tenant_id))


@router.patch("/{tenant_id}", response_model=TenantResponse)
def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).update_tenant(tenant_id, body.model_dump(exclude_unset=True)))


@router.put("/{tenant_id}/status", response_model=TenantResponse)
def update_tenant_status(
    tenant_id: str,
    body: TenantStatusUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).update_tenant_status(tenant_id, body.status))


@router.post("/{tenant_id}/suspend", response_model=TenantResponse)
def suspend_tenant(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).suspend_tenant(tenant_id))


@router.post("/{tenant_id}/activate", response_model=TenantResponse)
def activate_tenant(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).activate_tenant(tenant_id))


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tenant(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """
    Delete a tenant and everything it owns.

    CAUTION: Member accounts are deleted too, not just detached.
    """
    unwrap(TenantService(db).delete_tenant(tenant_id))
    logger.info(f"Tenant deleted: {tenant_id} by {caller.user_id}")
    return None


@router.get("/{tenant_id}/usage", response_model=TenantUsageStats)
def get_tenant_usage(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).get_tenant_usage_stats(tenant_id))


@router.get("/{tenant_id}/review-limits", response_model=ReviewLimits)
def get_review_limits(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLimitService(db).get_tenant_review_limits(tenant_id))


@router.get("/{tenant_id}/upgrade-recommendation", response_model=UpgradeRecommendation)
def get_upgrade_recommendation(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLimitService(db).get_upgrade_recommendation(tenant_id))


@router.get("/{tenant_id}/review-form-url")
def get_review_form_url(
    tenant_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return {"review_form_url": unwrap(TenantService(db).get_review_form_url(tenant_id))}
