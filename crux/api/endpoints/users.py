"""
User Management Endpoints

Profiles and staff-created accounts. Which profiles a caller can see or
change is decided by the profiles policies:
- Super admin: everyone
- Tenant admin: own tenant, never super admins
- User: self only (role and tenant locked)
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from crux.api.deps import get_policy_session, require_admin, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.models.user import UserRole
from crux.schemas.user import (
    PasswordUpdate,
    PermissionsResponse,
    ProfileListResponse,
    ProfileResponse,
    ProfileUpdate,
    RoleUpdate,
    TenantOption,
    UserCreate,
)
from crux.services.role_service import RoleService
from crux.services.user_service import UserService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=ProfileListResponse)
def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = Query(None),
    tenant_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """
    List profiles visible to the caller.

    Paginated; filters narrow the visible set, they never widen it.
    """
    result = unwrap(UserService(db).get_users(
        tenant_id=tenant_id,
        role=role.value if role else None,
        search=search,
        page=page,
        limit=page_size,
    ))
    return ProfileListResponse(
        users=result["users"],
        total=result["total"],
        page=page,
        page_size=page_size
    )


@router.get("/me", response_model=ProfileResponse)
def get_me(
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(UserService(db).get_current_profile())


@router.get("/me/permissions", response_model=PermissionsResponse)
def get_my_permissions(
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """Capabilities of the caller's role, for the UI."""
    return unwrap(RoleService(db).get_user_permissions(caller.user_id))


@router.get("/available-tenants", response_model=List[TenantOption])
def get_available_tenants(
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    """Tenants the caller may assign users to."""
    return unwrap(UserService(db).get_available_tenants())


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreate,
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    """
    Create an account directly, without an invitation.

    Tenant admins may only create users in their own tenant and never
    super admins.
    """
    profile = unwrap(UserService(db).create_user_with_password(
        body.email, body.password, body.full_name, body.role.value, body.tenant_id
    ))
    logger.info(f"User created: {profile.id} by {caller.user_id}")
    return profile


@router.get("/{user_id}", response_model=ProfileResponse)
def get_user(
    user_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(UserService(db).get_user(user_id))


@router.patch("/{user_id}", response_model=ProfileResponse)
def update_user(
    user_id: str,
    body: ProfileUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(UserService(db).update_user(user_id, body.model_dump(exclude_unset=True)))


@router.put("/{user_id}/role", response_model=ProfileResponse)
def update_user_role(
    user_id: str,
    body: RoleUpdate,
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    """
    Change a user's role (and optionally tenant).

    SECURITY: Assignment rules are checked first, then the policies
    check the written row again.
    """
    return unwrap(UserService(db).update_user_role(user_id, body.role.value, body.tenant_id))


@router.put("/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def update_user_password(
    user_id: str,
    body: PasswordUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(UserService(db).update_user_password(user_id, body.password))
    return None


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    """
    Delete a user account (auth identity and profile).

    Self-deletion is refused.
    """
    unwrap(UserService(db).delete_user(user_id))
    logger.info(f"User deleted: {user_id} by {caller.user_id}")
    return None
