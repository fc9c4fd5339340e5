"""
Permission System (RBAC)

Role hierarchy and action permissions used to explain and pre-check
what a user may do (permission listings, role-assignment validation).

These checks are advisory. The row policies in crux.core.rls are what
actually allow or deny data access.
"""
from typing import Dict, List, Optional, Tuple

from crux.models.user import ROLE_HIERARCHY, UserRole

ACTIONS = (
    "create_tenant",
    "manage_users",
    "view_analytics",
    "manage_settings",
    "create_review",
    "view_reviews",
)

ADMIN_ROLES = (UserRole.SUPER_ADMIN.value, UserRole.TENANT_ADMIN.value)

# action -> (roles allowed, denial reason)
ACTION_RULES: Dict[str, Tuple[Tuple[str, ...], str]] = {
    "create_tenant": ((UserRole.SUPER_ADMIN.value,), "Only super admins can create tenants"),
    "manage_users": (ADMIN_ROLES, "Only admins can manage users"),
    "view_analytics": (ADMIN_ROLES, "Only admins can view analytics"),
    "manage_settings": (ADMIN_ROLES, "Only admins can manage settings"),
    "create_review": (tuple(r.value for r in UserRole), ""),
    "view_reviews": (tuple(r.value for r in UserRole), ""),
}


def role_level(role: Optional[str]) -> int:
    """Hierarchy level, 0 for unknown roles."""
    try:
        return ROLE_HIERARCHY[UserRole(role)]
    except ValueError:
        return 0


def has_role(role: Optional[str], required: UserRole) -> bool:
    return role_level(role) >= ROLE_HIERARCHY[required]


def check_action(
    role: Optional[str],
    user_tenant_id: Optional[str],
    action: str,
    tenant_id: Optional[str] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Whether a role may perform action, optionally on a specific tenant.

    Returns (allowed, reason). Non super admins are limited to their
    own tenant when tenant_id is given.
    """
    rule = ACTION_RULES.get(action)
    if rule is None:
        return False, "Unknown action"

    allowed_roles, reason = rule
    if role not in allowed_roles:
        return False, reason

    if tenant_id and role != UserRole.SUPER_ADMIN.value and user_tenant_id != tenant_id:
        return False, "Access denied to tenant"

    return True, None


def permissions_for(role: Optional[str]) -> Dict[str, bool]:
    """Flag per action for a role (tenant-independent)."""
    return {action: role in ACTION_RULES[action][0] for action in ACTIONS}


def validate_role_assignment(
    assigner_role: Optional[str],
    assigner_tenant_id: Optional[str],
    target_role: str,
    target_tenant_id: Optional[str],
) -> Tuple[bool, Optional[str]]:
    """
    Rules:
    - Super admins can assign any role
    - Tenant admins can only assign the user role within their tenant
    - Users cannot assign roles
    """
    if assigner_role == UserRole.SUPER_ADMIN.value:
        return True, None

    if assigner_role == UserRole.TENANT_ADMIN.value:
        if target_role == UserRole.USER.value and target_tenant_id == assigner_tenant_id:
            return True, None
        return False, "Tenant admins can only assign user roles within their tenant"

    return False, "Users cannot assign roles"


def assignable_roles(role: Optional[str]) -> List[str]:
    if role == UserRole.SUPER_ADMIN.value:
        return [r.value for r in UserRole]
    if role == UserRole.TENANT_ADMIN.value:
        return [UserRole.USER.value]
    return []
