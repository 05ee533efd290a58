"""Database models for the Vitrinex conversations backend."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    """Serialize a datetime as ISO-8601, reading naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class ConversationKind(str, enum.Enum):
    ORDER = "order"
    BOOKING = "booking"
    DIRECT = "direct"


class SenderRole(str, enum.Enum):
    OWNER = "owner"
    CUSTOMER = "customer"
    USER = "user"


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class Store(db.Model):
    __tablename__ = "stores"

    store_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    mode = db.Column(
        db.Enum(
            "products",
            "bookings",
            "both",
            name="store_mode",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="both",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class Order(db.Model):
    """A product order placed on a store, possibly by a buyer without an account."""

    __tablename__ = "orders"

    order_id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.store_id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True, index=True)
    customer_name = db.Column(db.String(150), nullable=False)
    customer_email = db.Column(db.String(255), index=True)
    total_cents = db.Column(db.Integer, nullable=False, server_default="0")
    status = db.Column(
        db.Enum(
            "pending",
            "confirmed",
            "fulfilled",
            "cancelled",
            name="order_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    store = db.relationship("Store")


class Booking(db.Model):
    """An appointment booked on a store."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.store_id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True, index=True)
    customer_name = db.Column(db.String(150), nullable=False)
    customer_email = db.Column(db.String(255), index=True)
    service_name = db.Column(db.String(150))
    starts_at = db.Column(db.DateTime)
    status = db.Column(
        db.Enum(
            "pending",
            "confirmed",
            "cancelled",
            name="booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    store = db.relationship("Store")


class Message(db.Model):
    """A single chat message. Rows are append-only; only the read flag changes."""

    __tablename__ = "messages"
    __table_args__ = (
        db.Index("ix_messages_conversation_created", "conversation_id", "created_at", "message_id"),
    )

    message_id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.String(64), nullable=False)
    kind = db.Column(
        db.Enum(
            *[k.value for k in ConversationKind],
            name="conversation_kind",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    # order / booking conversations
    store_id = db.Column(db.Integer, db.ForeignKey("stores.store_id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.order_id"), nullable=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.booking_id"), nullable=True)
    # direct conversations
    from_user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)

    sender_role = db.Column(
        db.Enum(
            *[r.value for r in SenderRole],
            name="sender_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    sender_name = db.Column(db.String(150))
    sender_email = db.Column(db.String(255))
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.message_id,
            "conversation_id": self.conversation_id,
            "kind": self.kind,
            "store_id": self.store_id,
            "order_id": self.order_id,
            "booking_id": self.booking_id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "sender_role": self.sender_role,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "sender_email": self.sender_email,
            "content": self.content,
            "is_read": bool(self.is_read),
            "read_at": isoformat_utc(self.read_at),
            "created_at": isoformat_utc(self.created_at),
        }


class ConversationSummary(db.Model):
    """Read-optimised row per conversation.

    Side A is the store owner (order/booking) or the lower user id (direct);
    side B is the customer or the higher user id. The unread counters are
    only ever changed through SQL expressions in ``conversation_index``.
    """

    __tablename__ = "conversation_summaries"

    conversation_id = db.Column(db.String(64), primary_key=True)
    kind = db.Column(
        db.Enum(
            *[k.value for k in ConversationKind],
            name="summary_kind",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    store_id = db.Column(db.Integer, db.ForeignKey("stores.store_id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.order_id"), nullable=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.booking_id"), nullable=True)
    participant_a_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True, index=True)
    participant_b_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True, index=True)
    customer_email = db.Column(db.String(255), index=True)
    last_message_at = db.Column(db.DateTime, nullable=True)
    last_message_excerpt = db.Column(db.String(255))
    unread_count_a = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    unread_count_b = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)
