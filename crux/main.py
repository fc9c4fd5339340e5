"""
Main FastAPI Application

Entry point for the review collection platform.
Configures middleware, routes, error handlers, and startup/shutdown events.

Startup wires the change feed: committed writes on any SessionLocal
session are published to realtime subscribers and invalidate the query
cache.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
from contextlib import asynccontextmanager

from crux.config import get_settings
from crux.database import engine, SessionLocal, init_db
from crux.cache import QueryCache
from crux.realtime import ChangeFeed, capture_changes
from crux.middleware.tenant import TenantMiddleware
from crux.middleware.rate_limit import RateLimitMiddleware
from crux.utils.logging import setup_logging, get_logger
from crux.core.exceptions import (
    AuthenticationError,
    CruxError,
    TenantIsolationError,
)

from crux.api.endpoints import (
    admin,
    auth,
    invitations,
    invoices,
    public,
    realtime,
    review_links,
    reviews,
    settings as settings_router,
    tenants,
    users,
)

settings = get_settings()

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Dev only; deployed databases are managed with `crux apply-migrations`
    if settings.ENVIRONMENT == "development":
        logger.warning("Initializing database tables (dev mode)")
        init_db()

    feed = ChangeFeed()
    capture = capture_changes(SessionLocal, feed)
    cache = QueryCache()
    cache.attach(feed)

    app.state.change_feed = feed
    app.state.query_cache = cache

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    capture.remove()
    engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Crux",
    description="Multi-tenant review collection with row-level tenant isolation",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header to track request duration."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# Middleware added last runs first: tenant resolution must wrap the
# rate limiter so per-plan limits can see the tenant, and CORS wraps
# both so their 404 and 429 responses carry CORS headers.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(TenantMiddleware)

# SECURITY: explicit allow-list only
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Tenant-Slug", "X-Service-Role-Key", "apikey"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(TenantIsolationError)
async def tenant_isolation_error_handler(request: Request, exc: TenantIsolationError):
    """
    Handle tenant isolation violations.

    CRITICAL: These are security events, not user errors.
    """
    logger.error(
        f"TENANT ISOLATION VIOLATION: {exc.detail}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "tenant_id": getattr(request.state, "tenant_id", None)
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "tenant_isolation_error"}
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "authentication_error"},
        headers=exc.headers or {}
    )


@app.exception_handler(CruxError)
async def crux_error_handler(request: Request, exc: CruxError):
    """Domain errors that escaped a service (helpers called directly from routes)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    SECURITY: Don't expose internal errors in production.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "tenant_id": getattr(request.state, "tenant_id", None)
        }
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"}
    )


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check for load balancers. Reports cache availability too."""
    cache = getattr(request.app.state, "query_cache", None)
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": VERSION,
        "cache": "active" if cache is not None and cache.active else "inactive",
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health"
    }


for module in (
    auth,
    tenants,
    users,
    invitations,
    reviews,
    review_links,
    public,
    settings_router,
    invoices,
    admin,
    realtime,
):
    app.include_router(module.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info(settings.APP_NAME)
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info("=" * 80)

    uvicorn.run(
        "crux.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
