"""
Row-Level Policies

The declared access rules for every table. This module is the only place
that decides which caller may see or change which row; routers and services
never re-implement these checks.

Predicates take the Caller snapshot. A caller without a tenant never matches
a tenant-scoped predicate: tenant_match() returns false() instead of letting
SQL compare against NULL.
"""
from datetime import datetime

from sqlalchemy import and_, false, select, true

from crux.core.policies import (
    ALL, ANON, AUTHENTICATED, INSERT, SELECT, UPDATE,
    Policy, PolicyRegistry,
)
from crux.models import (
    AuditLog,
    BusinessSettings,
    Invoice,
    Profile,
    Review,
    ReviewLink,
    SystemSetting,
    Tenant,
    UsageMetric,
    UserInvitation,
)

registry = PolicyRegistry()


def tenant_match(column, caller):
    """column = get_current_tenant_id(), failing closed when there is no tenant."""
    if not caller.is_authenticated or caller.tenant_id is None:
        return false()
    return column == caller.tenant_id


def super_admin(caller):
    return true() if caller.is_super_admin else false()


def tenant_admin_of(column, caller):
    if not caller.is_tenant_admin:
        return false()
    return tenant_match(column, caller)


def _super_admin_all(table: str) -> Policy:
    return Policy(f"{table}_super_admin_all", commands=(ALL,), roles=(AUTHENTICATED,), using=super_admin)


# ============================================================================
# system_settings
# ============================================================================

registry.register(SystemSetting, _super_admin_all("system_settings"))


# ============================================================================
# tenants
# ============================================================================

registry.register(
    Tenant,
    _super_admin_all("tenants"),
    Policy(
        "tenants_tenant_admin_select_update",
        commands=(SELECT, UPDATE),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_admin_of(Tenant.id, c),
    ),
    Policy(
        "tenants_members_read_own",
        commands=(SELECT,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(Tenant.id, c),
    ),
)


# ============================================================================
# profiles
# ============================================================================

def _own_profile(caller):
    if not caller.is_authenticated:
        return false()
    return Profile.id == caller.user_id


def _own_profile_unchanged(caller):
    """Self-service updates may not change role or tenant."""
    if not caller.is_authenticated or caller.role is None:
        return false()
    same_tenant = (
        Profile.tenant_id.is_(None) if caller.tenant_id is None
        else Profile.tenant_id == caller.tenant_id
    )
    return and_(Profile.id == caller.user_id, Profile.role == caller.role, same_tenant)


def _tenant_admin_profiles(caller):
    if not caller.is_tenant_admin:
        return false()
    return and_(tenant_match(Profile.tenant_id, caller), Profile.role != "super_admin")


registry.register(
    Profile,
    _super_admin_all("profiles"),
    Policy(
        "profiles_tenant_admin_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=_tenant_admin_profiles,
    ),
    Policy(
        "profiles_select_own",
        commands=(SELECT,),
        roles=(AUTHENTICATED,),
        using=_own_profile,
    ),
    Policy(
        "users_update_own_profile",
        commands=(UPDATE,),
        roles=(AUTHENTICATED,),
        using=_own_profile,
        with_check=_own_profile_unchanged,
    ),
)


# ============================================================================
# user_invitations
# ============================================================================

def _tenant_admin_invitations(caller):
    if not caller.is_tenant_admin:
        return false()
    return and_(tenant_match(UserInvitation.tenant_id, caller), UserInvitation.role != "super_admin")


registry.register(
    UserInvitation,
    _super_admin_all("user_invitations"),
    Policy(
        "user_invitations_tenant_admin_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=_tenant_admin_invitations,
    ),
)


# ============================================================================
# business_settings, invoices
# ============================================================================

registry.register(
    BusinessSettings,
    _super_admin_all("business_settings"),
    Policy(
        "business_settings_tenant_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(BusinessSettings.tenant_id, c),
    ),
)

registry.register(
    Invoice,
    _super_admin_all("invoices"),
    Policy(
        "invoices_tenant_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(Invoice.tenant_id, c),
    ),
)


# ============================================================================
# reviews
# ============================================================================

def _public_review_target(caller):
    """Anonymous inserts only for tenants that publish a review form."""
    open_tenants = select(Tenant.id).where(
        Tenant.status == "active",
        Tenant.business_name.isnot(None),
        Tenant.google_review_url.isnot(None),
    )
    return Review.tenant_id.in_(open_tenants)


registry.register(
    Review,
    _super_admin_all("reviews"),
    Policy(
        "reviews_tenant_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(Review.tenant_id, c),
    ),
    Policy(
        "reviews_public_insert",
        commands=(INSERT,),
        roles=(ANON,),
        with_check=_public_review_target,
    ),
)


# ============================================================================
# review_links
# ============================================================================

def _active_link(caller):
    now = datetime.utcnow()
    return and_(
        ReviewLink.is_active.is_(True),
        (ReviewLink.expires_at.is_(None)) | (ReviewLink.expires_at > now),
    )


registry.register(
    ReviewLink,
    _super_admin_all("review_links"),
    Policy(
        "review_links_tenant_admin_all",
        commands=(ALL,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_admin_of(ReviewLink.tenant_id, c),
    ),
    Policy(
        "review_links_public_read_active",
        commands=(SELECT,),
        roles=(ANON,),
        using=_active_link,
    ),
    Policy(
        "review_links_authenticated_read",
        commands=(SELECT,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(ReviewLink.tenant_id, c),
    ),
)


# ============================================================================
# audit_logs, usage_metrics (written by the service role only)
# ============================================================================

registry.register(
    AuditLog,
    _super_admin_all("audit_logs"),
    Policy(
        "audit_logs_tenant_select",
        commands=(SELECT,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(AuditLog.tenant_id, c),
    ),
)

registry.register(
    UsageMetric,
    _super_admin_all("usage_metrics"),
    Policy(
        "usage_metrics_tenant_select",
        commands=(SELECT,),
        roles=(AUTHENTICATED,),
        using=lambda c: tenant_match(UsageMetric.tenant_id, c),
    ),
)
