"""
Custom Exceptions

Two families:
- HTTPException subclasses raised by API dependencies and routers.
  FastAPI converts these to responses directly.
- CruxError subclasses raised inside the data and service layers.
  Services catch them and turn them into ServiceResponse failures,
  so they never cross a service boundary.
"""
from fastapi import HTTPException, status


class TenantNotFoundError(HTTPException):
    """Raised when tenant cannot be found."""

    def __init__(self, tenant_identifier: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant not found: {tenant_identifier}" if tenant_identifier else "Tenant not found"
        )


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class TenantIsolationError(HTTPException):
    """
    Raised when a request tries to reach another tenant's data outside
    the policy engine (e.g. a realtime subscription for a foreign tenant).

    This is a security error and is logged as one.
    """

    def __init__(self, detail: str = "Tenant isolation violation"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class RateLimitExceeded(HTTPException):
    """Raised when rate limit is exceeded."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(retry_after)}
        )


# ============================================================================
# DATA / SERVICE LAYER
# ============================================================================

class CruxError(Exception):
    """Base class for errors raised below the API layer."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
        self.message = message


class PolicyViolationError(CruxError):
    """A write was rejected by the row-level policies of a table."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, table: str, command: str = "INSERT"):
        super().__init__(f'new row violates row-level security policy for table "{table}"')
        self.table = table
        self.command = command


class RecordNotFoundError(CruxError):
    """Row does not exist or is not visible to the caller."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: str = ""):
        super().__init__(f"{resource} not found: {identifier}" if identifier else f"{resource} not found")
        self.resource = resource


class ValidationFailedError(CruxError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(CruxError):
    """Denied by a security-definer style check (e.g. super admin only function)."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(CruxError):
    status_code = status.HTTP_409_CONFLICT


class EmailDeliveryError(CruxError):
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthenticationFailedError(CruxError):
    """Bad credentials. Deliberately unspecific about which part was wrong."""

    status_code = status.HTTP_401_UNAUTHORIZED
