"""pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the project root is available on sys.path so tests can import the vitrinex package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vitrinex import create_app
from vitrinex.auth import Actor, build_token
from vitrinex.extensions import db
from vitrinex.models import Booking, Order, Store, User


@pytest.fixture
def app(tmp_path):
    # File backed so feed queries and concurrent writers each get their own connection.
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'vitrinex.db'}",
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user_id: int) -> dict[str, str]:
        with app.app_context():
            token = build_token({"user_id": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def as_actor():
    """Build an Actor for a user id; call inside an app context."""

    def _as_actor(user_id: int) -> Actor:
        user = db.session.get(User, user_id)
        return Actor(user_id=user.user_id, email=user.email, name=user.username)

    return _as_actor


@pytest.fixture
def fake_clock(monkeypatch):
    """Deterministic timestamps for appended messages, one second apart."""
    state = {"now": datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)}

    def _now() -> datetime:
        state["now"] += timedelta(seconds=1)
        return state["now"]

    monkeypatch.setattr("vitrinex.message_store.utc_now", _now)
    return state


@pytest.fixture
def marketplace(app):
    """Two stores, their owners, a registered buyer, a walk-in buyer and a direct-chat peer."""
    with app.app_context():
        owner = User(user_id=1, username="Olivia Owner", email="owner@example.com")
        buyer = User(user_id=2, username="Bruno Buyer", email="buyer@example.com")
        peer = User(user_id=3, username="Pia Peer", email="peer@example.com")
        other_owner = User(user_id=4, username="Sam Seller", email="sam@example.com")

        store = Store(store_id=1, owner_id=1, name="Green Leaf Shop", mode="both")
        other_store = Store(store_id=2, owner_id=4, name="Other Shop", mode="products")

        order = Order(
            order_id=10,
            store_id=1,
            customer_id=2,
            customer_name="Bruno Buyer",
            customer_email="buyer@example.com",
            total_cents=4599,
        )
        walk_in_order = Order(
            order_id=11,
            store_id=1,
            customer_id=None,
            customer_name="Walk-in Wendy",
            customer_email="Wendy@Example.com",
            total_cents=1250,
        )
        other_order = Order(
            order_id=12,
            store_id=2,
            customer_id=2,
            customer_name="Bruno Buyer",
            customer_email="buyer@example.com",
            total_cents=900,
        )
        booking = Booking(
            booking_id=20,
            store_id=1,
            customer_id=2,
            customer_name="Bruno Buyer",
            customer_email="buyer@example.com",
            service_name="Haircut",
            starts_at=datetime(2025, 3, 5, 15, 0, 0),
        )

        db.session.add_all([owner, buyer, peer, other_owner])
        db.session.flush()
        db.session.add_all([store, other_store])
        db.session.flush()
        db.session.add_all([order, walk_in_order, other_order, booking])
        db.session.commit()

    return SimpleNamespace(
        owner_id=1,
        buyer_id=2,
        peer_id=3,
        other_owner_id=4,
        store_id=1,
        other_store_id=2,
        order_id=10,
        walk_in_order_id=11,
        other_order_id=12,
        booking_id=20,
        walk_in_email="wendy@example.com",
    )
