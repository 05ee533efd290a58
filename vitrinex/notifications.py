"""Polling responses for inbox badges and feeds.

Clients poll on short intervals. Every polling response carries an ETag so
an unchanged feed costs a ``304 Not Modified`` instead of a full body.
"""
from __future__ import annotations

from flask import Flask, Response, current_app, jsonify, request

from .aggregator import Feed
from .signals import conversation_read, message_appended


def polling_response(payload: dict[str, object]) -> Response:
    response = jsonify(payload)
    response.add_etag()
    response.headers["Cache-Control"] = "no-cache"
    return response.make_conditional(request)


def feed_response(feed: Feed) -> Response:
    payload = feed.to_dict()
    payload["poll_interval_seconds"] = current_app.config["FEED_POLL_INTERVAL_SECONDS"]
    return polling_response(payload)


def unread_count_response(feed: Feed) -> Response:
    return polling_response({
        "total_unread": feed.total_unread,
        "by_kind": feed.unread_by_kind(),
        "partial": feed.partial,
        "poll_interval_seconds": current_app.config["FEED_POLL_INTERVAL_SECONDS"],
    })


def _log_message_appended(app: Flask, message, recipient_ids=(), **extra) -> None:
    app.logger.debug(
        "New message %s in %s for users %s",
        message.message_id,
        message.conversation_id,
        list(recipient_ids),
    )


def _log_conversation_read(app: Flask, conversation_id, reader_id=None, marked=0, **extra) -> None:
    app.logger.debug("User %s read %d message(s) in %s", reader_id, marked, conversation_id)


def init_app(app: Flask) -> None:
    """Attach activity logging; a push channel would subscribe here as well."""
    message_appended.connect(_log_message_appended, sender=app)
    conversation_read.connect(_log_conversation_read, sender=app)
