"""
User Service

Profile management and staff-created accounts.

Visibility follows the profiles policies: super admins see everyone,
tenant admins see their tenant (minus super admins), users see themselves.
Role and tenant changes are pre-validated against the assignment rules
and then checked again by the policies on write.
"""
from typing import Any, Dict, Optional

from sqlalchemy import func

from crux.core import permissions
from crux.core.exceptions import (
    PermissionDeniedError,
    RecordNotFoundError,
    ValidationFailedError,
)
from crux.core.policies import DELETE, UPDATE
from crux.core.security import get_password_hash
from crux.config import get_settings
from crux.models.tenant import Tenant
from crux.models.user import AuthUser, Profile, UserRole
from crux.services.audit_service import AuditService
from crux.services.base import BaseService, service_method
from crux.services.provisioning import build_auth_user, handle_new_user

settings = get_settings()

PROFILE_FIELDS = ("full_name", "avatar_url", "preferences")
MEMBERSHIP_FIELDS = ("role", "tenant_id")


class UserService(BaseService):

    def _visible_profile(self, user_id: str) -> Profile:
        profile = self.db.get(Profile, user_id)
        if profile is None:
            raise RecordNotFoundError("User", user_id)
        return profile

    def _check_assignment(self, role: str, tenant_id: Optional[str]) -> None:
        try:
            UserRole(role)
        except ValueError:
            raise ValidationFailedError(f"Invalid role: {role}")
        if self.caller.service:
            return
        allowed, reason = permissions.validate_role_assignment(
            self.caller.role, self.caller.tenant_id, role, tenant_id
        )
        if not allowed:
            raise PermissionDeniedError(reason)

    @service_method("UserService.get_users")
    def get_users(
        self,
        tenant_id: Optional[str] = None,
        role: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        query = self.db.query(Profile)
        if tenant_id:
            query = query.filter(Profile.tenant_id == tenant_id)
        if role:
            query = query.filter(Profile.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                func.lower(Profile.email).like(pattern) | func.lower(Profile.full_name).like(pattern)
            )

        total = query.count()
        offset, limit = self.paginate(page, limit)
        users = query.order_by(Profile.created_at.desc()).offset(offset).limit(limit).all()
        return {"users": users, "total": total}

    @service_method("UserService.get_user")
    def get_user(self, user_id: str):
        return self._visible_profile(user_id)

    @service_method("UserService.get_current_profile")
    def get_current_profile(self):
        if not self.caller.is_authenticated:
            raise PermissionDeniedError("Authentication required")
        return self._visible_profile(self.caller.user_id)

    @service_method("UserService.update_user")
    def update_user(self, user_id: str, values: Dict[str, Any]):
        profile = self._visible_profile(user_id)

        changes = {k: v for k, v in values.items() if k in PROFILE_FIELDS + MEMBERSHIP_FIELDS}
        membership_changed = any(
            field in changes and changes[field] != getattr(profile, field)
            for field in MEMBERSHIP_FIELDS
        )
        if membership_changed:
            self._check_assignment(
                changes.get("role", profile.role),
                changes.get("tenant_id", profile.tenant_id),
            )

        self.db.update(profile, changes)
        if membership_changed:
            AuditService(self.db).record(
                "user.role_changed", "profile", profile.id,
                {"role": profile.role, "tenant_id": profile.tenant_id},
                tenant_id=profile.tenant_id,
            )
        self.db.commit()
        return profile

    def update_user_role(self, user_id: str, role: str, tenant_id: Optional[str] = None):
        values = {"role": role}
        if tenant_id is not None:
            values["tenant_id"] = tenant_id
        return self.update_user(user_id, values)

    @service_method("UserService.update_user_password")
    def update_user_password(self, user_id: str, new_password: str):
        """Self-service, or an admin who may update the user's profile."""
        if not new_password or len(new_password) < settings.MIN_PASSWORD_LENGTH:
            raise ValidationFailedError(
                f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
            )
        self.db.require_visible(Profile, user_id, UPDATE)

        auth_user = self.db.session.get(AuthUser, user_id)
        if auth_user is None:
            raise RecordNotFoundError("User", user_id)
        auth_user.hashed_password = get_password_hash(new_password)
        self.db.commit()
        return True

    @service_method("UserService.create_user_with_password")
    def create_user_with_password(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: str = UserRole.USER.value,
        tenant_id: Optional[str] = None,
    ):
        """
        Create an account directly (no invitation): auth identity and
        profile in one transaction. The profile insert is policy-checked.
        """
        tenant_id = tenant_id or self.caller.tenant_id
        if role != UserRole.SUPER_ADMIN.value:
            if not tenant_id:
                raise ValidationFailedError("tenant_id is required")
            if self.db.elevated().get(Tenant, tenant_id) is None:
                raise RecordNotFoundError("Tenant", tenant_id)
        else:
            tenant_id = None
        self._check_assignment(role, tenant_id)

        auth_user = build_auth_user(self.db.session, email, password, full_name=full_name)
        profile = Profile(
            id=auth_user.id,
            email=auth_user.email,
            full_name=full_name,
            role=role,
            tenant_id=tenant_id,
        )
        self.db.add(profile)
        # Provisioning sees the profile and leaves it alone
        handle_new_user(self.db.session, auth_user)

        AuditService(self.db).record(
            "user.created", "profile", profile.id, {"role": role}, tenant_id=tenant_id,
        )
        self.db.commit()
        self.logger.info(f"User created: {auth_user.email}", extra={"tenant_id": tenant_id})
        return profile

    @service_method("UserService.delete_user")
    def delete_user(self, user_id: str):
        """Removes the auth identity; the profile goes with it."""
        if user_id == self.caller.user_id:
            raise ValidationFailedError("Cannot delete your own account")
        profile = self._visible_profile(user_id)
        self.db.require_visible(Profile, user_id, DELETE)

        tenant_id = profile.tenant_id
        admin = self.db.elevated()
        auth_user = admin.get(AuthUser, user_id)
        if auth_user is not None:
            admin.delete(auth_user)
        else:
            self.db.delete(profile)

        AuditService(self.db).record("user.deleted", "profile", user_id, tenant_id=tenant_id)
        self.db.commit()
        return True

    @service_method("UserService.get_available_tenants")
    def get_available_tenants(self):
        rows = self.db.query(Tenant).order_by(Tenant.name).all()
        return [{"id": tenant.id, "name": tenant.name} for tenant in rows]
