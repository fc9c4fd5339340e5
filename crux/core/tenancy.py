"""
Tenancy helper functions

Reads of the profiles table that answer "who is this caller". They run
with definer rights (raw session, no policies), like the SQL helper
functions they replace, and never raise for unknown users.
"""
from typing import Optional

from sqlalchemy.orm import Session

from crux.core.policies import Caller
from crux.models.user import Profile, UserRole


def get_current_tenant_id(db: Session, caller: Caller) -> Optional[str]:
    """
    Tenant of the caller's profile, or None.

    None means deny: anonymous callers, callers without a profile and
    orphan accounts all get None.
    """
    if not caller.is_authenticated:
        return None
    return db.query(Profile.tenant_id).filter(Profile.id == caller.user_id).scalar()


def is_super_admin(db: Session, user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    role = db.query(Profile.role).filter(Profile.id == user_id).scalar()
    return role == UserRole.SUPER_ADMIN.value


def is_tenant_admin(db: Session, user_id: Optional[str], tenant_id: Optional[str]) -> bool:
    if not user_id or not tenant_id:
        return False
    profile = db.query(Profile.role, Profile.tenant_id).filter(Profile.id == user_id).first()
    if profile is None:
        return False
    return profile.role == UserRole.TENANT_ADMIN.value and profile.tenant_id == tenant_id


def resolve_caller(db: Session, user_id: Optional[str], email: Optional[str] = None) -> Caller:
    """Build the Caller snapshot for an authenticated user id."""
    if not user_id:
        return Caller.anonymous()

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        # Authenticated but not provisioned: no role, no tenant
        return Caller(user_id=user_id, email=email)

    tenant_id = None if profile.role == UserRole.SUPER_ADMIN.value else profile.tenant_id
    return Caller(
        user_id=user_id,
        role=profile.role,
        tenant_id=tenant_id,
        email=email or profile.email,
    )
