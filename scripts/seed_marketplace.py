#!/usr/bin/env python3
"""Seed a demo store with an order, a booking and a few conversations."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from vitrinex import create_app, message_store
from vitrinex.auth import Actor
from vitrinex.conversations import resolve
from vitrinex.extensions import db
from vitrinex.models import Booking, Order, Store, User


def _actor(user: User) -> Actor:
    return Actor(user_id=user.user_id, email=user.email, name=user.username)


def seed_marketplace():
    app = create_app()

    with app.app_context():
        db.create_all()

        if User.query.filter_by(email="owner@vitrinex.test").first():
            print("Demo data already present, skipping")
            return

        owner = User(username="Olivia Owner", email="owner@vitrinex.test")
        buyer = User(username="Bruno Buyer", email="buyer@vitrinex.test")
        friend = User(username="Fiona Friend", email="friend@vitrinex.test")
        db.session.add_all([owner, buyer, friend])
        db.session.flush()

        store = Store(owner_id=owner.user_id, name="Green Leaf Shop", mode="both")
        db.session.add(store)
        db.session.flush()

        order = Order(
            store_id=store.store_id,
            customer_id=buyer.user_id,
            customer_name=buyer.username,
            customer_email=buyer.email,
            total_cents=4599,
        )
        walk_in = Order(
            store_id=store.store_id,
            customer_name="Walk-in Wendy",
            customer_email="wendy@example.com",
            total_cents=1250,
        )
        booking = Booking(
            store_id=store.store_id,
            customer_id=buyer.user_id,
            customer_name=buyer.username,
            customer_email=buyer.email,
            service_name="Consultation",
            starts_at=datetime.now(timezone.utc) + timedelta(days=2),
        )
        db.session.add_all([order, walk_in, booking])
        db.session.commit()

        conversations = [
            ("order", order.order_id, _actor(buyer), "Hi! When will my order ship?"),
            ("order", order.order_id, _actor(owner), "It leaves tomorrow morning."),
            ("order", walk_in.order_id, Actor(user_id=None, email="wendy@example.com"), "Can I pick it up today?"),
            ("booking", booking.booking_id, _actor(buyer), "Can we move this to 3pm?"),
            ("direct", friend.user_id, _actor(buyer), "Have you tried Green Leaf Shop?"),
        ]
        for kind, ref, actor, content in conversations:
            conversation, participant = resolve(kind, ref, actor)
            message_store.append(conversation, participant, content)

        print(f"✅ Seeded store {store.store_id} with {len(conversations)} messages")


if __name__ == "__main__":
    seed_marketplace()
