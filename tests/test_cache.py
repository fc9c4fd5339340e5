"""Query cache against an in-memory Redis stand-in."""

from fnmatch import fnmatch

import pytest
import redis

from crux.cache import QueryCache, caller_scope
from crux.core.policies import Caller
from crux.realtime import ChangeEvent, ChangeFeed


class FakeRedis:
    """The handful of Redis commands the cache uses."""

    def __init__(self, fail=False):
        self.store = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = str(value)

    def delete(self, key):
        self._check()
        self.store.pop(key, None)

    def scan_iter(self, match="*"):
        self._check()
        return [key for key in list(self.store) if fnmatch(key, match)]


ALICE = Caller(user_id="u1", role="user", tenant_id="t1")
BOB = Caller(user_id="u2", role="user", tenant_id="t2")


def _loader(calls, value):
    def load():
        calls.append(1)
        return value
    return load


def test_caller_scope():
    assert caller_scope(Caller.anonymous()) == "anon"
    assert caller_scope(Caller.service_role()) == "service"
    assert caller_scope(ALICE) == "user:t1:u1"
    assert caller_scope(Caller(user_id="u3", role="super_admin")) == "super_admin:all:u3"


def test_second_read_is_cached():
    cache = QueryCache(client=FakeRedis(), enabled=True)
    calls = []
    assert cache.get_or_set("reviews", ALICE, "stats", _loader(calls, {"total": 3})) == {"total": 3}
    assert cache.get_or_set("reviews", ALICE, "stats", _loader(calls, {"total": 99})) == {"total": 3}
    assert len(calls) == 1


def test_callers_do_not_share_entries():
    cache = QueryCache(client=FakeRedis(), enabled=True)
    cache.get_or_set("reviews", ALICE, "stats", lambda: {"total": 3})
    assert cache.get_or_set("reviews", BOB, "stats", lambda: {"total": 7}) == {"total": 7}


def test_change_feed_invalidates_table():
    client = FakeRedis()
    cache = QueryCache(client=client, enabled=True)
    feed = ChangeFeed()
    cache.attach(feed)

    cache.get_or_set("reviews", ALICE, "stats", lambda: 1)
    cache.get_or_set("invoices", ALICE, "stats", lambda: 2)
    feed.publish(ChangeEvent("reviews", "INSERT", "r1", "t1"))

    assert list(client.store) == ["crux:cache:invoices:user:t1:u1:stats"]


def test_disabled_cache_always_loads():
    cache = QueryCache(client=FakeRedis(), enabled=False)
    calls = []
    cache.get_or_set("reviews", ALICE, "stats", _loader(calls, 1))
    cache.get_or_set("reviews", ALICE, "stats", _loader(calls, 1))
    assert len(calls) == 2
    assert not cache.active
    assert cache.attach(ChangeFeed()) is None


def test_redis_errors_fall_back_to_loader():
    cache = QueryCache(client=FakeRedis(fail=True), enabled=True)
    assert cache.get_or_set("reviews", ALICE, "stats", lambda: {"ok": True}) == {"ok": True}
    assert cache.invalidate("reviews") == 0


def test_failed_loader_is_not_cached():
    client = FakeRedis()
    cache = QueryCache(client=client, enabled=True)

    def broken():
        raise ValueError("no")

    with pytest.raises(ValueError):
        cache.get_or_set("reviews", ALICE, "stats", broken)
    assert client.store == {}
