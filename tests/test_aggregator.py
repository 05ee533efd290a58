"""Tests for the merged conversation feed."""
from __future__ import annotations

import threading
import time
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from vitrinex import message_store
from vitrinex.aggregator import Aggregator
from vitrinex.auth import Actor
from vitrinex.conversations import resolve


def _send(kind, ref, actor, content="hello"):
    conversation, participant = resolve(kind, ref, actor)
    return message_store.append(conversation, participant, content)


def _rows(feed):
    return [(v.conversation_id, v.role, v.unread_count) for v in feed.conversations]


def test_owner_and_customer_see_their_own_side(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        owner = as_actor(marketplace.owner_id)
        buyer = as_actor(marketplace.buyer_id)
        for n in range(3):
            _send("order", marketplace.order_id, buyer, f"question {n}")

        aggregator = Aggregator()
        owner_feed = aggregator.get_feed_for(owner)
        buyer_feed = aggregator.get_feed_for(buyer)

        assert _rows(owner_feed) == [("order:10", "owner", 3)]
        assert owner_feed.total_unread == 3
        assert owner_feed.conversations[0].label == "Bruno Buyer"
        assert owner_feed.conversations[0].subject == "Order #10"

        assert _rows(buyer_feed) == [("order:10", "customer", 0)]
        assert buyer_feed.conversations[0].label == "Green Leaf Shop"

        conversation, owner_side = resolve("order", marketplace.order_id, owner)
        message_store.mark_read(conversation, owner_side)

        assert _rows(aggregator.get_feed_for(owner)) == [("order:10", "owner", 0)]
        assert _rows(aggregator.get_feed_for(buyer)) == [("order:10", "customer", 0)]


def test_feed_sorted_by_unread_then_recency_then_id(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        owner = as_actor(marketplace.owner_id)
        buyer = as_actor(marketplace.buyer_id)
        peer = as_actor(marketplace.peer_id)
        walk_in = Actor(user_id=None, email=marketplace.walk_in_email)

        # buyer: other store's order, 1 unread reply (oldest)
        _send("order", marketplace.other_order_id, as_actor(marketplace.other_owner_id), "shipped")
        # buyer: booking, 1 unread reply (newer)
        _send("booking", marketplace.booking_id, owner, "confirmed for 3pm")
        # buyer: direct chat, 2 unread
        _send("direct", marketplace.buyer_id, peer, "hey")
        _send("direct", marketplace.buyer_id, peer, "you around?")
        # buyer: own order, sent by buyer so 0 unread (newest)
        _send("order", marketplace.order_id, buyer, "thanks")
        # unrelated walk-in conversation must not leak into the buyer's feed
        _send("order", marketplace.walk_in_order_id, walk_in, "pickup today?")

        feed = Aggregator().get_feed_for(buyer)

    assert _rows(feed) == [
        ("direct:2-3", "user", 2),
        ("booking:20", "customer", 1),
        ("order:12", "customer", 1),
        ("order:10", "customer", 0),
    ]
    assert feed.total_unread == 4
    assert feed.unread_by_kind() == {"order": 1, "booking": 1, "direct": 2}
    assert feed.conversations[0].label == "Pia Peer"
    assert feed.conversations[0].peer_id == marketplace.peer_id
    assert feed.conversations[1].subject == "Haircut"


def test_equal_unread_and_time_break_ties_by_conversation_id(app, marketplace, as_actor, monkeypatch) -> None:
    from datetime import datetime, timezone

    instant = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("vitrinex.message_store.utc_now", lambda: instant)

    with app.app_context():
        buyer = as_actor(marketplace.buyer_id)
        _send("order", marketplace.order_id, buyer)
        _send("booking", marketplace.booking_id, buyer)

        feed = Aggregator().get_feed_for(as_actor(marketplace.owner_id))

    assert [v.conversation_id for v in feed.conversations] == ["booking:20", "order:10"]


def test_feed_is_stable_without_new_messages(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        buyer = as_actor(marketplace.buyer_id)
        _send("order", marketplace.order_id, buyer)
        _send("booking", marketplace.booking_id, buyer)
        _send("order", marketplace.walk_in_order_id, Actor(user_id=None, email=marketplace.walk_in_email))

        owner = as_actor(marketplace.owner_id)
        first = Aggregator().get_feed_for(owner).to_dict()
        second = Aggregator().get_feed_for(owner).to_dict()

    assert first == second
    assert len(first["conversations"]) == 3


def test_failing_kind_query_degrades_to_partial_feed(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        buyer = as_actor(marketplace.buyer_id)
        owner = as_actor(marketplace.owner_id)
        _send("order", marketplace.order_id, owner, "order update")
        _send("booking", marketplace.booking_id, owner, "booking update")
        _send("direct", marketplace.peer_id, buyer, "hi")

        boom = OperationalError("SELECT ...", {}, Exception("bookings table unavailable"))
        with patch.object(Aggregator, "_booking_rows", side_effect=boom):
            feed = Aggregator().get_feed_for(buyer)

    assert feed.partial is True
    assert [f.to_dict() for f in feed.failures] == [{"kind": "booking", "reason": "query_failed"}]
    assert {v.kind for v in feed.conversations} == {"order", "direct"}


def test_slow_kind_is_dropped_at_deadline_without_delaying_others(app, marketplace, as_actor, fake_clock) -> None:
    release = threading.Event()

    def stalled_orders(actor, store_id):
        release.wait(timeout=10)
        return []

    with app.app_context():
        owner = as_actor(marketplace.owner_id)
        buyer = as_actor(marketplace.buyer_id)
        _send("order", marketplace.order_id, buyer)
        _send("booking", marketplace.booking_id, buyer)
        _send("direct", marketplace.owner_id, as_actor(marketplace.peer_id))

        started = time.monotonic()
        try:
            with patch.object(Aggregator, "_order_rows", side_effect=stalled_orders):
                feed = Aggregator(deadline_seconds=0.5).get_feed_for(owner)
            elapsed = time.monotonic() - started
        finally:
            release.set()

    assert elapsed < 2
    assert [f.to_dict() for f in feed.failures] == [{"kind": "order", "reason": "deadline_exceeded"}]
    assert sorted(v.conversation_id for v in feed.conversations) == ["booking:20", "direct:1-3"]
    assert feed.partial is True


def test_store_filter_limits_feed_to_owned_store(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        buyer = as_actor(marketplace.buyer_id)
        owner = as_actor(marketplace.owner_id)
        _send("order", marketplace.order_id, buyer)
        _send("booking", marketplace.booking_id, buyer)
        _send("order", marketplace.other_order_id, buyer)
        _send("direct", marketplace.owner_id, as_actor(marketplace.peer_id))

        feed = Aggregator().get_feed_for(owner, store_id=marketplace.store_id)

    assert sorted(v.conversation_id for v in feed.conversations) == ["booking:20", "order:10"]
    assert all(v.role == "owner" for v in feed.conversations)


def test_owner_buying_from_own_store_gets_both_roles(app, marketplace, as_actor, fake_clock) -> None:
    from vitrinex.extensions import db
    from vitrinex.models import Order

    with app.app_context():
        db.session.add(Order(
            order_id=30,
            store_id=marketplace.store_id,
            customer_id=marketplace.owner_id,
            customer_name="Olivia Owner",
            customer_email="owner@example.com",
        ))
        db.session.commit()

        owner = as_actor(marketplace.owner_id)
        conversation, as_customer = resolve("order", 30, owner, role_hint="customer")
        message_store.append(conversation, as_customer, "testing my own shop")

        feed = Aggregator().get_feed_for(owner)

    assert _rows(feed) == [("order:30", "owner", 1), ("order:30", "customer", 0)]


def test_anonymous_buyer_feed_matches_by_email(app, marketplace, as_actor, fake_clock) -> None:
    with app.app_context():
        _send("order", marketplace.walk_in_order_id, as_actor(marketplace.owner_id), "ready for pickup")

        feed = Aggregator().get_feed_for(Actor(user_id=None, email=marketplace.walk_in_email))

    assert _rows(feed) == [("order:11", "customer", 1)]
