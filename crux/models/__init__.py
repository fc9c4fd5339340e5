"""
Database Models

Every tenant-owned model carries tenant_id; the policy registry in
crux.core.rls decides who may see or write each row.
"""
from crux.models.user import AuthUser, Profile, UserRole
from crux.models.tenant import Tenant, PlanType, TenantStatus
from crux.models.invitation import UserInvitation
from crux.models.review import Review, ReviewLink
from crux.models.settings import BusinessSettings, SystemSetting
from crux.models.invoice import Invoice
from crux.models.audit import AuditLog, UsageMetric

__all__ = [
    "AuthUser",
    "Profile",
    "UserRole",
    "Tenant",
    "PlanType",
    "TenantStatus",
    "UserInvitation",
    "Review",
    "ReviewLink",
    "BusinessSettings",
    "SystemSetting",
    "Invoice",
    "AuditLog",
    "UsageMetric",
]
