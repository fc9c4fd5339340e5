"""Change feed, commit capture and the realtime WebSocket."""

import time

import pytest
from starlette.websockets import WebSocketDisconnect

from crux.database import SessionLocal
from crux.models import Review
from crux.realtime import ALL_TABLES, ChangeEvent, ChangeFeed, capture_changes


def _event(table="reviews", tenant_id="t1", record_id="r1", event_type="INSERT"):
    return ChangeEvent(table, event_type, record_id, tenant_id)


class TestChangeFeed:
    def test_routing_by_table_and_tenant(self):
        feed = ChangeFeed()
        got = {"t1": [], "t2": [], "all": [], "any_table": []}
        feed.subscribe("reviews", got["t1"].append, "t1")
        feed.subscribe("reviews", got["t2"].append, "t2")
        feed.subscribe("reviews", got["all"].append)
        feed.subscribe(ALL_TABLES, got["any_table"].append, "t1")

        feed.publish(_event(tenant_id="t1"))
        feed.publish(_event(table="invoices", tenant_id="t1"))

        assert len(got["t1"]) == 1
        assert got["t2"] == []
        assert len(got["all"]) == 1
        assert [e.table for e in got["any_table"]] == ["reviews", "invoices"]

    def test_unsubscribe(self):
        feed = ChangeFeed()
        received = []
        subscription = feed.subscribe("reviews", received.append)
        assert feed.subscriber_count() == 1

        subscription.unsubscribe()
        feed.publish(_event())

        assert received == []
        assert feed.subscriber_count() == 0

    def test_failing_subscriber_does_not_stop_others(self):
        feed = ChangeFeed()
        received = []

        def broken(change):
            raise RuntimeError("boom")

        feed.subscribe("reviews", broken)
        feed.subscribe("reviews", received.append)
        feed.publish(_event())

        assert len(received) == 1

    def test_event_payload_has_no_row_data(self):
        payload = _event().to_dict()
        assert set(payload) == {"table", "event_type", "record_id", "tenant_id", "committed_at"}


@pytest.fixture
def feed(db):
    feed = ChangeFeed()
    capture = capture_changes(SessionLocal, feed)
    yield feed
    capture.remove()


class TestCapture:
    def test_publishes_on_commit(self, db, feed, tenant_a):
        received = []
        feed.subscribe("reviews", received.append, tenant_a.id)

        review = Review(tenant_id=tenant_a.id, customer_name="X", rating=5, google_review=True)
        db.add(review)
        db.flush()
        assert received == []

        db.commit()
        assert [(e.event_type, e.record_id, e.tenant_id) for e in received] == [("INSERT", review.id, tenant_a.id)]

    def test_rollback_publishes_nothing(self, db, feed, tenant_a):
        received = []
        feed.subscribe(ALL_TABLES, received.append)

        db.add(Review(tenant_id=tenant_a.id, customer_name="X", rating=5, google_review=True))
        db.flush()
        db.rollback()
        db.commit()

        assert received == []

    def test_update_and_delete(self, db, feed, tenant_a):
        review = Review(tenant_id=tenant_a.id, customer_name="X", rating=5, google_review=True)
        db.add(review)
        db.commit()

        received = []
        feed.subscribe("reviews", received.append)
        review.rating = 3
        db.commit()
        db.delete(review)
        db.commit()

        assert [e.event_type for e in received] == ["UPDATE", "DELETE"]

    def test_tenant_rows_are_keyed_by_their_own_id(self, db, feed, make_tenant):
        received = []
        feed.subscribe("tenants", received.append)
        tenant = make_tenant()
        assert received[0].tenant_id == tenant.id

    def test_auth_users_are_not_published(self, db, feed, make_user):
        received = []
        feed.subscribe(ALL_TABLES, received.append)
        make_user("quiet@example.com")
        assert {e.table for e in received} == {"profiles"}


def _wait_for_subscriber(feed, count=1, timeout=2.0):
    deadline = time.time() + timeout
    while feed.subscriber_count() < count:
        if time.time() > deadline:
            raise AssertionError("subscription was not registered")
        time.sleep(0.01)


class TestWebSocket:
    def test_streams_own_tenant_changes(self, client, db, user_a, tenant_a, tenant_b, headers):
        token = headers(user_a)["Authorization"].split()[1]
        feed = client.app.state.change_feed

        with client.websocket_connect(f"/api/v1/realtime/reviews?token={token}") as ws:
            _wait_for_subscriber(feed)
            db.add(Review(tenant_id=tenant_b.id, customer_name="Other", rating=5, google_review=True))
            db.commit()
            mine = Review(tenant_id=tenant_a.id, customer_name="Mine", rating=4, google_review=True)
            db.add(mine)
            db.commit()

            message = ws.receive_json()

        assert message["table"] == "reviews"
        assert message["event_type"] == "INSERT"
        assert message["record_id"] == mine.id
        assert message["tenant_id"] == tenant_a.id
        assert "customer_name" not in message

    def test_subscription_removed_on_disconnect(self, client, user_a, headers):
        token = headers(user_a)["Authorization"].split()[1]
        feed = client.app.state.change_feed
        with client.websocket_connect(f"/api/v1/realtime/reviews?token={token}"):
            _wait_for_subscriber(feed)

        deadline = time.time() + 2.0
        while feed.subscriber_count() and time.time() < deadline:
            time.sleep(0.01)
        assert feed.subscriber_count() == 0

    def test_missing_token_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/v1/realtime/reviews") as ws:
                ws.receive_json()
        assert exc.value.code == 1008

    def test_unknown_table_rejected(self, client, user_a, headers):
        token = headers(user_a)["Authorization"].split()[1]
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/v1/realtime/auth_users?token={token}") as ws:
                ws.receive_json()

    def test_foreign_tenant_rejected(self, client, user_a, tenant_b, headers):
        token = headers(user_a)["Authorization"].split()[1]
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/v1/realtime/reviews?token={token}&tenant_id={tenant_b.id}") as ws:
                ws.receive_json()

    def test_orphan_rejected(self, client, make_user, headers):
        orphan = make_user("orphan@example.com")
        token = headers(orphan)["Authorization"].split()[1]
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/v1/realtime/reviews?token={token}") as ws:
                ws.receive_json()
