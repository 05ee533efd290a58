"""HTTP routes for the Vitrinex conversations backend."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import message_store
from .aggregator import build_aggregator
from .auth import current_actor
from .conversations import parse_kind, resolve
from .errors import Forbidden, NotFound, ValidationError
from .extensions import db
from .models import Store
from .notifications import feed_response, polling_response, unread_count_response

bp = Blueprint("api", __name__)


def register_routes(app: Flask) -> None:
    app.register_blueprint(bp)


def _database_error(action: str, exc: SQLAlchemyError):
    db.session.rollback()
    current_app.logger.exception(action, exc_info=exc)
    return jsonify({"error": "database_error"}), 500


def _role_hint() -> str | None:
    payload = request.get_json(silent=True) if request.is_json else None
    if isinstance(payload, dict) and payload.get("role"):
        return payload["role"]
    return request.args.get("role")


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.post("/conversations/<kind>/<ref>/messages")
def send_conversation_message(kind: str, ref: str):
    """Send a message on an order, booking or direct conversation.
    ---
    tags:
      - Conversations
    parameters:
      - name: kind
        in: path
        type: string
        enum: [order, booking, direct]
        required: true
      - name: ref
        in: path
        type: string
        required: true
        description: Order id, booking id, or the peer's user id for direct chats.
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            content:
              type: string
            email:
              type: string
              description: Buyer email when sending without an account.
          required:
            - content
    responses:
      201:
        description: Message created
      400:
        description: Empty or oversized content, or bad reference
      401:
        description: No identity supplied
      403:
        description: Caller is not a participant
      404:
        description: Order, booking or user not found
      500:
        description: Database error
    """
    try:
        actor = current_actor(allow_anonymous=True)
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("request body must be a JSON object", code="invalid_payload")
        conversation, participant = resolve(kind, ref, actor, _role_hint())
        message = message_store.append(conversation, participant, payload.get("content"))
    except SQLAlchemyError as exc:
        return _database_error("Failed to send message", exc)

    return jsonify({"message": message.to_dict()}), 201


@bp.get("/conversations/<kind>/<ref>/messages")
def list_conversation_messages(kind: str, ref: str):
    """List a conversation's messages, oldest first. Does not mark anything read.
    ---
    tags:
      - Conversations
    parameters:
      - name: after_id
        in: query
        type: integer
        required: false
    responses:
      200:
        description: Ordered messages
      304:
        description: Nothing changed since the ETag in If-None-Match
    """
    after_id = request.args.get("after_id")
    if after_id is not None:
        try:
            after_id = int(after_id)
        except ValueError:
            raise ValidationError("after_id must be an integer", code="invalid_parameters") from None

    try:
        actor = current_actor(allow_anonymous=True)
        conversation, _ = resolve(kind, ref, actor, _role_hint())
        messages = message_store.list_by_conversation(conversation, after_id=after_id)
    except SQLAlchemyError as exc:
        return _database_error("Failed to fetch messages", exc)

    return polling_response({
        "conversation_id": conversation.conversation_id,
        "messages": [m.to_dict() for m in messages],
        "poll_interval_seconds": current_app.config["THREAD_POLL_INTERVAL_SECONDS"],
    })


@bp.post("/conversations/<kind>/<ref>/read")
def mark_conversation_read(kind: str, ref: str):
    """Mark every message from the other side as read.
    ---
    tags:
      - Conversations
    responses:
      200:
        description: Messages marked; unread_count is the caller's remaining count
    """
    try:
        actor = current_actor(allow_anonymous=True)
        conversation, participant = resolve(kind, ref, actor, _role_hint())
        result = message_store.mark_read(conversation, participant)
    except SQLAlchemyError as exc:
        return _database_error("Failed to mark conversation read", exc)

    return jsonify(result.to_dict()), 200


@bp.get("/conversations/<kind>/<ref>")
def get_conversation(kind: str, ref: str):
    """Summary of one conversation from the caller's side.
    ---
    tags:
      - Conversations
    parameters:
      - name: role
        in: query
        type: string
        enum: [owner, customer]
        required: false
        description: Side to view when the caller is both store owner and buyer.
    responses:
      200:
        description: Participant view with unread count and last message
      401:
        description: No identity supplied
      403:
        description: Caller is not a participant
      404:
        description: Conversation has no messages yet, or its order, booking or user is missing
    """
    try:
        actor = current_actor(allow_anonymous=True)
        conversation, participant = resolve(kind, ref, actor, _role_hint())
        view = build_aggregator().view_of(
            actor, parse_kind(kind), conversation.conversation_id, participant.role.value
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to fetch conversation", exc)

    if view is None:
        raise NotFound("conversation has no messages yet", code="conversation_not_found")
    return jsonify({"conversation": view.to_dict()}), 200


@bp.get("/me/conversations")
def list_my_conversations():
    """Merged inbox across orders, bookings and direct chats.
    ---
    tags:
      - Inbox
    responses:
      200:
        description: Sorted feed plus total unread count
      304:
        description: Feed unchanged since the ETag in If-None-Match
      401:
        description: Missing or invalid token
    """
    actor = current_actor()
    feed = build_aggregator().get_feed_for(actor)
    return feed_response(feed)


@bp.get("/me/unread-count")
def my_unread_count():
    """Unread badge counts for the caller, in total and per conversation kind.
    ---
    tags:
      - Inbox
    responses:
      200:
        description: total_unread, by_kind and whether any kind failed to load
      304:
        description: Counts unchanged since the ETag in If-None-Match
      401:
        description: Missing or invalid token
    """
    actor = current_actor()
    feed = build_aggregator().get_feed_for(actor)
    return unread_count_response(feed)


@bp.get("/stores/<int:store_id>/conversations")
def list_store_conversations(store_id: int):
    """Order and booking conversations of one store, for its owner.
    ---
    tags:
      - Inbox
    parameters:
      - name: store_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Sorted store inbox
      403:
        description: Caller does not own the store
      404:
        description: Store not found
    """
    actor = current_actor()
    try:
        store = db.session.get(Store, store_id)
    except SQLAlchemyError as exc:
        return _database_error("Failed to fetch store", exc)

    if store is None:
        raise NotFound("store not found")
    if store.owner_id != actor.user_id:
        raise Forbidden("only the store owner can read its inbox")

    feed = build_aggregator().get_feed_for(actor, store_id=store_id)
    return feed_response(feed)
