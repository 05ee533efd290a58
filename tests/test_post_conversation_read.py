"""Tests for POST /conversations/<kind>/<ref>/read."""
from __future__ import annotations

from vitrinex.extensions import db
from vitrinex.models import ConversationSummary, Message


def _send(client, path, content, headers):
    response = client.post(path, json={"content": content}, headers=headers)
    assert response.status_code == 201


def test_mark_read_resets_callers_unread_count_200(app, client, marketplace, auth_headers) -> None:
    path = f"/conversations/order/{marketplace.order_id}"
    for text in ("one", "two", "three"):
        _send(client, f"{path}/messages", text, auth_headers(marketplace.buyer_id))

    response = client.post(f"{path}/read", headers=auth_headers(marketplace.owner_id))
    data = response.get_json()

    assert response.status_code == 200
    assert data == {"conversation_id": "order:10", "marked": 3, "unread_count": 0}
    with app.app_context():
        summary = db.session.get(ConversationSummary, "order:10")
        assert (summary.unread_count_a, summary.unread_count_b) == (0, 0)
        assert Message.query.filter_by(is_read=True).count() == 3
        assert all(m.read_at is not None for m in Message.query.all())


def test_mark_read_twice_is_a_no_op(client, marketplace, auth_headers) -> None:
    path = f"/conversations/booking/{marketplace.booking_id}"
    _send(client, f"{path}/messages", "See you soon", auth_headers(marketplace.owner_id))
    headers = auth_headers(marketplace.buyer_id)

    first = client.post(f"{path}/read", headers=headers).get_json()
    second = client.post(f"{path}/read", headers=headers).get_json()

    assert (first["marked"], first["unread_count"]) == (1, 0)
    assert (second["marked"], second["unread_count"]) == (0, 0)


def test_mark_read_leaves_other_side_untouched(app, client, marketplace, auth_headers) -> None:
    path = f"/conversations/order/{marketplace.order_id}"
    _send(client, f"{path}/messages", "from buyer", auth_headers(marketplace.buyer_id))
    _send(client, f"{path}/messages", "from owner", auth_headers(marketplace.owner_id))

    client.post(f"{path}/read", headers=auth_headers(marketplace.buyer_id))

    with app.app_context():
        summary = db.session.get(ConversationSummary, "order:10")
        assert (summary.unread_count_a, summary.unread_count_b) == (1, 0)


def test_anonymous_buyer_marks_read_with_email(client, marketplace, auth_headers) -> None:
    path = f"/conversations/order/{marketplace.walk_in_order_id}"
    _send(client, f"{path}/messages", "Packed and ready", auth_headers(marketplace.owner_id))

    response = client.post(f"{path}/read", json={"email": "wendy@example.com"})

    assert response.status_code == 200
    assert response.get_json()["marked"] == 1


def test_mark_read_as_outsider_403(client, marketplace, auth_headers) -> None:
    response = client.post(
        f"/conversations/order/{marketplace.order_id}/read",
        headers=auth_headers(marketplace.peer_id),
    )

    assert response.status_code == 403


def test_mark_read_without_identity_401(client, marketplace) -> None:
    response = client.post(f"/conversations/order/{marketplace.order_id}/read")

    assert response.status_code == 401
