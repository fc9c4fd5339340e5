"""
Query Cache

Redis-backed cache for read endpoints (stats and listings).

Keys are scoped by table and by caller, so one caller never reads
another caller's cached rows:

    crux:cache:<table>:<scope>:<name>

Entries are dropped when the change feed reports a committed change to
their table. If Redis is unavailable, or CACHE_ENABLED is false, every
lookup goes straight to the loader.
"""
from typing import Any, Callable, Optional
import json
import logging

import redis

from crux.config import get_settings
from crux.core.policies import Caller
from crux.realtime import ALL_TABLES, ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)

KEY_PREFIX = "crux:cache"


def caller_scope(caller: Caller) -> str:
    if caller.service:
        return "service"
    if not caller.is_authenticated:
        return "anon"
    return f"{caller.role or 'none'}:{caller.tenant_id or 'all'}:{caller.user_id}"


class QueryCache:

    def __init__(self, client=None, ttl: int = None, enabled: bool = None):
        settings = get_settings()
        self.ttl = ttl or settings.CACHE_TTL_SECONDS
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled
        self.client = client
        self.available = False

        if not self.enabled:
            logger.info("Query cache disabled by configuration")
            return

        if client is not None:
            self.available = True
            return

        try:
            self.client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=2,
            )
            self.client.ping()
            self.available = True
            logger.info("Redis connection established for query cache")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning(f"Query cache disabled - Redis unavailable: {e}")
            self.client = None

    @property
    def active(self) -> bool:
        return self.enabled and self.available

    def key(self, table: str, caller: Caller, name: str) -> str:
        return f"{KEY_PREFIX}:{table}:{caller_scope(caller)}:{name}"

    def get_or_set(self, table: str, caller: Caller, name: str, loader: Callable[[], Any]) -> Any:
        """
        Cached value, or loader() stored for ttl seconds.

        The value must be JSON serializable.
        """
        if not self.active:
            return loader()

        key = self.key(table, caller, name)
        try:
            cached = self.client.get(key)
            if cached is not None:
                return json.loads(cached)
        except redis.RedisError as e:
            logger.error(f"Redis error reading cache: {e}")
            return loader()

        value = loader()
        try:
            self.client.setex(key, self.ttl, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.error(f"Redis error writing cache: {e}")
        return value

    def invalidate(self, table: str) -> int:
        if not self.active:
            return 0
        removed = 0
        try:
            for key in self.client.scan_iter(match=f"{KEY_PREFIX}:{table}:*"):
                self.client.delete(key)
                removed += 1
        except redis.RedisError as e:
            logger.error(f"Redis error invalidating {table}: {e}")
        if removed:
            logger.debug(f"Invalidated {removed} cache entries for {table}", extra={"table": table})
        return removed

    def attach(self, feed: ChangeFeed) -> Optional[Subscription]:
        """Invalidate on every committed change."""
        if not self.active:
            return None

        def on_change(change: ChangeEvent) -> None:
            self.invalidate(change.table)

        return feed.subscribe(ALL_TABLES, on_change)
