"""
Change Feed

In-process publish/subscribe of committed row changes.

capture_changes() hooks a sessionmaker: changed rows are collected in
after_flush, published in after_commit and dropped in after_rollback,
so subscribers only ever hear about committed data.

Subscriptions are keyed by (table, tenant_id). tenant_id None receives
every tenant's events and table "*" receives every table. Callbacks are
independent: one that raises is logged and the rest still run.

Events carry identifiers only, never row contents. Consumers that need
the row read it back through their own policy session.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import itertools
import logging
import threading

from sqlalchemy import event

logger = logging.getLogger(__name__)

ALL_TABLES = "*"

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "crux_pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record_id: Optional[str]
    tenant_id: Optional[str]
    committed_at: datetime = field(default_factory=datetime.utcnow, compare=False)

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "event_type": self.event_type,
            "record_id": self.record_id,
            "tenant_id": self.tenant_id,
            "committed_at": self.committed_at.isoformat(),
        }


Callback = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", key: Tuple[str, Optional[str]], ident: int):
        self.feed = feed
        self.key = key
        self.ident = ident

    @property
    def table(self) -> str:
        return self.key[0]

    @property
    def tenant_id(self) -> Optional[str]:
        return self.key[1]

    def unsubscribe(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:

    def __init__(self):
        self._subscribers: Dict[Tuple[str, Optional[str]], Dict[int, Callback]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callback, tenant_id: Optional[str] = None) -> Subscription:
        key = (table, tenant_id)
        with self._lock:
            ident = next(self._ids)
            self._subscribers.setdefault(key, {})[ident] = callback
        logger.debug(f"Subscribed to {table} (tenant={tenant_id or 'all'})")
        return Subscription(self, key, ident)

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            callbacks = self._subscribers.get(subscription.key)
            if callbacks is None:
                return
            callbacks.pop(subscription.ident, None)
            if not callbacks:
                del self._subscribers[subscription.key]

    def subscriber_count(self) -> int:
        with self._lock:
            return sum(len(callbacks) for callbacks in self._subscribers.values())

    def publish(self, change: ChangeEvent) -> None:
        keys = {
            (change.table, change.tenant_id),
            (change.table, None),
            (ALL_TABLES, change.tenant_id),
            (ALL_TABLES, None),
        }
        with self._lock:
            callbacks = [
                callback
                for key in keys
                for callback in self._subscribers.get(key, {}).values()
            ]

        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception(
                    f"Change feed subscriber failed for {change.table}",
                    extra={"table": change.table, "event_type": change.event_type},
                )


def _tenant_of(obj) -> Optional[str]:
    if obj.__tablename__ == "tenants":
        return obj.id
    return getattr(obj, "tenant_id", None)


class ChangeCapture:
    """Session event listeners feeding one ChangeFeed. remove() detaches them."""

    def __init__(self, session_factory, feed: ChangeFeed, skip_tables=("auth_users",)):
        self.session_factory = session_factory
        self.feed = feed
        self.skip_tables = frozenset(skip_tables)

    def install(self) -> "ChangeCapture":
        event.listen(self.session_factory, "after_flush", self.after_flush)
        event.listen(self.session_factory, "after_commit", self.after_commit)
        event.listen(self.session_factory, "after_rollback", self.after_rollback)
        return self

    def remove(self) -> None:
        event.remove(self.session_factory, "after_flush", self.after_flush)
        event.remove(self.session_factory, "after_commit", self.after_commit)
        event.remove(self.session_factory, "after_rollback", self.after_rollback)

    def _record(self, pending: List[ChangeEvent], obj, event_type: str) -> None:
        table = getattr(obj, "__tablename__", None)
        if table is None or table in self.skip_tables:
            return
        pending.append(ChangeEvent(table, event_type, getattr(obj, "id", None), _tenant_of(obj)))

    def after_flush(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            self._record(pending, obj, INSERT)
        for obj in session.dirty:
            if session.is_modified(obj, include_collections=False):
                self._record(pending, obj, UPDATE)
        for obj in session.deleted:
            self._record(pending, obj, DELETE)

    def after_commit(self, session) -> None:
        pending = session.info.pop(_PENDING_KEY, [])
        seen = set()
        for change in pending:
            key = (change.table, change.record_id, change.event_type)
            if key in seen:
                continue
            seen.add(key)
            self.feed.publish(change)

    def after_rollback(self, session) -> None:
        session.info.pop(_PENDING_KEY, None)


def capture_changes(session_factory, feed: ChangeFeed, skip_tables=("auth_users",)) -> ChangeCapture:
    return ChangeCapture(session_factory, feed, skip_tables).install()
