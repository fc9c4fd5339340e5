"""
Admin Endpoints

Platform analytics, audit trail, system settings and role checks.

RBAC:
- Analytics, system settings: super admin only
- Audit logs: super admin (all) or tenant admin (own tenant, via policies)
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from crux.api.deps import get_policy_session, require_admin, require_super_admin, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.admin import AuditLogListResponse, AuditStats, PlatformAnalytics
from crux.schemas.settings import SystemSettingResponse, SystemSettingUpdate
from crux.services.audit_service import AuditService
from crux.services.role_service import RoleService
from crux.services.system_settings_service import SystemSettingsService
from crux.services.tenant_service import TenantService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/analytics", response_model=PlatformAnalytics)
def get_platform_analytics(
    caller: Caller = Depends(require_super_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(TenantService(db).get_platform_analytics())


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    tenant_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    result = unwrap(AuditService(db).get_audit_logs(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=page_size,
    ))
    return AuditLogListResponse(logs=result["logs"], total=result["total"], page=page, page_size=page_size)


@router.get("/audit-logs/stats", response_model=AuditStats)
def get_audit_stats(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(AuditService(db).get_audit_stats(tenant_id))


@router.get("/roles/check")
def check_action_permission(
    user_id: str = Query(...),
    action: str = Query(...),
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    """May user_id perform action (on tenant_id)? Answer includes the reason."""
    return unwrap(RoleService(db).check_action_permission(user_id, action, tenant_id))


@router.get("/system-settings", response_model=List[SystemSettingResponse])
def list_system_settings(
    caller: Caller = Depends(require_super_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(SystemSettingsService(db).list_settings())


@router.get("/system-settings/{key}", response_model=SystemSettingResponse)
def get_system_setting(
    key: str,
    caller: Caller = Depends(require_super_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(SystemSettingsService(db).get_setting(key))


@router.put("/system-settings/{key}", response_model=SystemSettingResponse)
def set_system_setting(
    key: str,
    body: SystemSettingUpdate,
    caller: Caller = Depends(require_super_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(SystemSettingsService(db).set_setting(key, body.value, body.description))


@router.delete("/system-settings/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_system_setting(
    key: str,
    caller: Caller = Depends(require_super_admin),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(SystemSettingsService(db).delete_setting(key))
    return None
