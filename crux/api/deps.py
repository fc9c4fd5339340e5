"""
API Dependencies

Reusable FastAPI dependencies that turn a request into a Caller and a
caller-bound PolicySession. Authorization itself lives in the row
policies; these dependencies only establish identity.

Identity resolution order:
1. Authorization: Bearer <jwt>  -> authenticated user (role/tenant from profile)
2. apikey / X-Service-Role-Key header matching SERVICE_ROLE_KEY -> service role
3. Anything else -> anonymous

A tenant hint from TenantMiddleware that disagrees with the caller's own
tenant is rejected as a tenant isolation error.
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from crux.database import get_db
from crux.models.user import AuthUser
from crux.core.exceptions import AuthenticationError, TenantIsolationError
from crux.core.policies import ANON, SERVICE_ROLE, Caller, PolicySession
from crux.core.security import decode_access_token, is_service_role_key
from crux.core.tenancy import resolve_caller
from crux.services.base import ServiceResponse
from crux.services.email_service import EmailService
import logging

logger = logging.getLogger(__name__)

# auto_error=False: anonymous requests are legal, policies decide what they see
security = HTTPBearer(auto_error=False)

SERVICE_KEY_HEADERS = ("X-Service-Role-Key", "apikey")


def caller_from_token(db: Session, token: str) -> Caller:
    """
    Resolve a bearer token to a Caller.

    Raises AuthenticationError for invalid tokens and deleted users.
    """
    payload = decode_access_token(token)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    # A deleted account's token must stop working immediately
    auth_user = db.query(AuthUser.id, AuthUser.email).filter(AuthUser.id == user_id).first()
    if auth_user is None:
        logger.warning(f"Token for unknown user: {user_id}")
        raise AuthenticationError("User not found")

    return resolve_caller(db, user_id, auth_user.email)


def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Caller:
    if credentials is not None:
        caller = caller_from_token(db, credentials.credentials)
    else:
        presented = next(
            (request.headers.get(name) for name in SERVICE_KEY_HEADERS if request.headers.get(name)),
            None,
        )
        caller = Caller.service_role() if is_service_role_key(presented) else Caller.anonymous()

    request_tenant_id = getattr(request.state, "tenant_id", None)
    if (
        request_tenant_id
        and caller.tenant_id
        and not caller.is_super_admin
        and caller.tenant_id != request_tenant_id
    ):
        logger.warning(
            f"Tenant mismatch: token={caller.tenant_id}, request={request_tenant_id}",
            extra={"user_id": caller.user_id, "token_tenant": caller.tenant_id, "request_tenant": request_tenant_id}
        )
        raise TenantIsolationError("Token tenant mismatch")

    # Picked up by request logging and the rate limiter
    request.state.caller = caller
    return caller


def get_policy_session(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
) -> PolicySession:
    """The caller-bound session every service receives."""
    return PolicySession(db, caller)


def get_anonymous_session(db: Session = Depends(get_db)) -> PolicySession:
    """Public routes run as anon whatever credentials the request carries."""
    return PolicySession(db, Caller.anonymous())


def require_authenticated(caller: Caller = Depends(get_caller)) -> Caller:
    """Reject anonymous callers. Service role passes."""
    if caller.db_role == ANON:
        raise AuthenticationError("Not authenticated")
    return caller


def require_admin(caller: Caller = Depends(require_authenticated)) -> Caller:
    """
    Require super admin, tenant admin or service role.

    Coarse gate for admin-only screens; row policies still decide which rows.
    """
    if caller.db_role == SERVICE_ROLE or caller.is_super_admin or caller.is_tenant_admin:
        return caller
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Admin privileges required"
    )


def require_super_admin(caller: Caller = Depends(require_authenticated)) -> Caller:
    if caller.db_role == SERVICE_ROLE or caller.is_super_admin:
        return caller
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Super admin privileges required"
    )


def get_email_service() -> EmailService:
    """Overridden in tests with an httpx.MockTransport backed client."""
    return EmailService()


def get_change_feed(request: Request):
    return request.app.state.change_feed


def get_query_cache(request: Request):
    return request.app.state.query_cache


def unwrap(response: ServiceResponse):
    """Return the payload of a successful ServiceResponse or raise its error."""
    if not response.success:
        raise HTTPException(status_code=response.status_code, detail=response.error)
    return response.data
