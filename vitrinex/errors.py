"""Error taxonomy for the conversations API."""
from __future__ import annotations

from flask import Flask, jsonify


class ConversationError(Exception):
    """Base class for errors that map onto a JSON error response."""

    status_code = 500
    code = "server_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class ValidationError(ConversationError):
    status_code = 400
    code = "invalid_request"


class Unauthorized(ConversationError):
    status_code = 401
    code = "unauthorized"


class Forbidden(ConversationError):
    status_code = 403
    code = "forbidden"


class NotFound(ConversationError):
    status_code = 404
    code = "not_found"


class PartialAggregationFailure(Exception):
    """One conversation kind could not be loaded into a feed.

    Collected by the aggregator and reported alongside the feed; never raised
    out of a request.
    """

    def __init__(self, kind: str, reason: str) -> None:
        super().__init__(f"{kind}: {reason}")
        self.kind = kind
        self.reason = reason

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "reason": self.reason}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ConversationError)
    def handle_conversation_error(exc: ConversationError):
        return jsonify(exc.to_dict()), exc.status_code
