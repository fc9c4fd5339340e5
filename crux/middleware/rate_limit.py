"""
Rate Limiting Middleware

Token bucket per tenant (when TenantMiddleware resolved one) or per
client address, stored in Redis.

Plans scale the base limits from settings. Redis being unavailable
disables rate limiting instead of failing requests.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Tuple
import redis
import time
import logging
from crux.config import get_settings
from crux.core.exceptions import RateLimitExceeded
from crux.services.review_limit_service import normalize_plan

logger = logging.getLogger(__name__)
settings = get_settings()

PLAN_MULTIPLIERS = {
    "basic": 1,
    "pro": 2,
    "industry": 5,
}


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, client=None):
        super().__init__(app)
        self.enabled = settings.RATE_LIMIT_ENABLED
        self.redis_client = client
        self.redis_available = client is not None

        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

        if not self.enabled or client is not None:
            return

        try:
            self.redis_client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            self.redis_client.ping()
            self.redis_available = True
            logger.info("Redis connection established for rate limiting")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"Redis connection failed: {e}")
            self.redis_available = False

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        if not self.redis_available:
            return await call_next(request)

        tenant = getattr(request.state, "tenant", None)
        identifier = self._get_client_identifier(request)
        plan = normalize_plan(tenant.plan_type) if tenant is not None else "basic"

        allowed, retry_after = self._check_rate_limit(identifier, plan)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {identifier}",
                extra={"tenant_id": getattr(request.state, "tenant_id", None), "path": request.url.path}
            )
            # Raised exceptions never reach the app handlers from here
            exc = RateLimitExceeded(retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "detail": exc.detail,
                    "type": "rate_limit_exceeded",
                    "retry_after": retry_after
                },
                headers=exc.headers
            )

        return await call_next(request)

    def _check_rate_limit(self, identifier: str, plan: str) -> Tuple[bool, int]:
        """
        Token bucket: holds at most `burst` tokens, refilled at
        `rate_limit` per minute, one token per request.

        Returns (allowed, retry_after_seconds).
        """
        multiplier = PLAN_MULTIPLIERS.get(plan, 1)
        rate_limit = settings.RATE_LIMIT_PER_MINUTE * multiplier
        burst = settings.RATE_LIMIT_BURST * multiplier

        key = f"rate_limit:{identifier}"
        key_timestamp = f"{key}:timestamp"

        try:
            current_tokens = self.redis_client.get(key)
            last_update = self.redis_client.get(key_timestamp)

            now = time.time()

            if current_tokens is None:
                self.redis_client.setex(key, 60, burst - 1)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            current_tokens = float(current_tokens)
            last_update = float(last_update) if last_update else now

            elapsed = now - last_update
            new_tokens = min(burst, current_tokens + elapsed * (rate_limit / 60.0))

            if new_tokens >= 1:
                self.redis_client.setex(key, 60, new_tokens - 1)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            tokens_needed = 1 - new_tokens
            retry_after = int((tokens_needed / (rate_limit / 60.0)) + 1)
            return False, retry_after

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0

    def _get_client_identifier(self, request: Request) -> str:
        tenant_id = getattr(request.state, "tenant_id", None)
        if tenant_id:
            return f"tenant:{tenant_id}"
        client = request.client.host if request.client else "unknown"
        return f"ip:{client}"
