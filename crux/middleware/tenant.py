"""
Tenant Middleware

Resolves an optional tenant hint from the request and exposes it as
request.state.tenant / request.state.tenant_id.

Sources, in order:
1. X-Tenant-Slug header (API clients)
2. Subdomain of the Host header: acme.crux.app -> "acme"

The hint is informational (rate limit bucket, logging context). It never
grants access: data access is decided by the caller's own profile in the
policy engine. Requests without a hint pass through untouched; a hint
that matches no tenant is rejected with 404.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging

from crux.core.exceptions import TenantNotFoundError
from crux.database import SessionLocal
from crux.models.tenant import Tenant

logger = logging.getLogger(__name__)

NON_TENANT_SUBDOMAINS = ("www", "api", "app")


class TenantMiddleware(BaseHTTPMiddleware):

    def __init__(self, app):
        super().__init__(app)
        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

    async def dispatch(self, request: Request, call_next):
        request.state.tenant = None
        request.state.tenant_id = None

        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        tenant_identifier = self._extract_tenant_identifier(request)
        if not tenant_identifier:
            return await call_next(request)

        db = SessionLocal()
        try:
            tenant = self._load_tenant(db, tenant_identifier)
        finally:
            db.close()

        if tenant is None:
            logger.warning(f"Tenant not found: {tenant_identifier}")
            exc = TenantNotFoundError(tenant_identifier)
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "type": "tenant_not_found"}
            )

        if not tenant.is_active:
            logger.warning(f"Inactive tenant attempted access: {tenant_identifier}")
            return JSONResponse(
                status_code=403,
                content={"detail": "Tenant account is inactive"}
            )

        request.state.tenant = tenant
        request.state.tenant_id = tenant.id
        logger.debug(f"Request for tenant: {tenant.slug} ({tenant.id})")

        return await call_next(request)

    def _extract_tenant_identifier(self, request: Request) -> Optional[str]:
        tenant_slug = request.headers.get("X-Tenant-Slug")
        if tenant_slug:
            return tenant_slug.strip()

        host = request.headers.get("Host", "").split(":")[0]
        parts = host.split(".")
        if len(parts) >= 3:  # subdomain.domain.tld
            subdomain = parts[0]
            if subdomain not in NON_TENANT_SUBDOMAINS:
                return subdomain

        return None

    def _load_tenant(self, db: Session, identifier: str) -> Optional[Tenant]:
        """Definer-rights lookup by slug, then by custom domain."""
        tenant = db.query(Tenant).filter(Tenant.slug == identifier).first()
        if tenant:
            return tenant
        return db.query(Tenant).filter(Tenant.domain == identifier).first()
