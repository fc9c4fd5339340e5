"""
Business Settings Endpoints

One settings row per tenant. Reads fall back to defaults when the
tenant has not saved anything yet.
"""
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from crux.api.deps import get_policy_session, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.settings import (
    BusinessSettingsResponse,
    BusinessSettingsUpdate,
    GoogleBusinessSettings,
)
from crux.services.business_settings_service import BusinessSettingsService
from crux.services.review_limit_service import ReviewLimitService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/business", response_model=BusinessSettingsResponse)
def get_business_settings(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(BusinessSettingsService(db).get_business_settings_with_defaults(tenant_id))


@router.put("/business", response_model=BusinessSettingsResponse)
def upsert_business_settings(
    body: BusinessSettingsUpdate,
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """Create or update the tenant's settings. Unset fields are left alone."""
    return unwrap(BusinessSettingsService(db).upsert_business_settings(
        body.model_dump(exclude_unset=True), tenant_id
    ))


@router.delete("/business", status_code=status.HTTP_204_NO_CONTENT)
def delete_business_settings(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(BusinessSettingsService(db).delete_business_settings(tenant_id))
    return None


@router.get("/google-business", response_model=GoogleBusinessSettings)
def get_google_business_settings(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(ReviewLimitService(db).get_google_business_settings(tenant_id or caller.tenant_id))
