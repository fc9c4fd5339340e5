"""
Role Service

Answers "may this user do X" questions for the UI and for pre-checks.
Backed by crux.core.permissions; the row policies still decide.
"""
from typing import Optional

from crux.core import permissions
from crux.core.exceptions import RecordNotFoundError, ValidationFailedError
from crux.models.user import Profile, UserRole
from crux.services.base import BaseService, ServiceResponse, service_method

ROLE_CAPABILITIES = {
    UserRole.SUPER_ADMIN.value: [
        "create_tenant",
        "manage_all_users",
        "view_platform_analytics",
        "manage_system_settings",
        "manage_all_tenants",
        "view_all_data",
        "manage_invitations",
        "suspend_tenants",
    ],
    UserRole.TENANT_ADMIN.value: [
        "manage_tenant_users",
        "view_tenant_analytics",
        "manage_tenant_settings",
        "manage_tenant_reviews",
        "invite_users",
        "view_tenant_data",
    ],
    UserRole.USER.value: [
        "create_review",
        "view_own_reviews",
        "view_tenant_reviews",
    ],
}


class RoleService(BaseService):

    def _profile(self, user_id: str) -> Profile:
        profile = self.db.session.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            raise RecordNotFoundError("User profile", user_id)
        return profile

    def _denied_without_profile(self):
        return ServiceResponse(
            data={"has_access": False, "user_role": "none", "reason": "User profile not found"},
            error="User profile not found",
            success=False,
            status_code=404,
        )

    @service_method("RoleService.check_user_role")
    def check_user_role(self, user_id: str, required_role: str):
        try:
            required = UserRole(required_role)
        except ValueError:
            raise ValidationFailedError(f"Invalid role: {required_role}")

        profile = self.db.session.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            return self._denied_without_profile()

        has_access = permissions.has_role(profile.role, required)
        return {
            "has_access": has_access,
            "user_role": profile.role,
            "tenant_id": profile.tenant_id,
            "reason": None if has_access else (
                f"Insufficient permissions. Required: {required.value}, Current: {profile.role}"
            ),
        }

    @service_method("RoleService.check_tenant_access")
    def check_tenant_access(self, user_id: str, tenant_id: str):
        profile = self.db.session.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            return self._denied_without_profile()

        has_access = profile.role == UserRole.SUPER_ADMIN.value or (
            profile.tenant_id is not None and profile.tenant_id == tenant_id
        )
        return {
            "has_access": has_access,
            "user_role": profile.role,
            "tenant_id": profile.tenant_id,
            "reason": None if has_access else "Access denied to tenant",
        }

    @service_method("RoleService.check_action_permission")
    def check_action_permission(self, user_id: str, action: str, tenant_id: Optional[str] = None):
        profile = self.db.session.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            return self._denied_without_profile()

        allowed, reason = permissions.check_action(profile.role, profile.tenant_id, action, tenant_id)
        return {
            "has_access": allowed,
            "user_role": profile.role,
            "tenant_id": profile.tenant_id,
            "reason": reason,
        }

    @service_method("RoleService.get_user_permissions")
    def get_user_permissions(self, user_id: str):
        profile = self._profile(user_id)
        return {
            "role": profile.role,
            "tenant_id": profile.tenant_id,
            "permissions": list(ROLE_CAPABILITIES.get(profile.role, [])),
            "actions": permissions.permissions_for(profile.role),
            "assignable_roles": permissions.assignable_roles(profile.role),
        }

    @service_method("RoleService.validate_role_assignment")
    def validate_role_assignment(self, assigner_id: str, target_role: str, target_tenant_id: Optional[str] = None):
        assigner = self.db.session.query(Profile).filter(Profile.id == assigner_id).first()
        if assigner is None:
            return ServiceResponse(data=False, error="Assigner profile not found", success=False, status_code=404)

        allowed, reason = permissions.validate_role_assignment(
            assigner.role, assigner.tenant_id, target_role, target_tenant_id
        )
        if not allowed:
            return ServiceResponse(data=False, error=reason, success=False, status_code=403)
        return True
