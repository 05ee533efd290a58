"""Bearer token identity for the conversations API.

Tokens are issued by the marketplace auth service; this module only verifies
them. Buyers without an account are identified by the email on their order
or booking.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from .errors import Unauthorized
from .extensions import db
from .models import User

TOKEN_SALT = "auth-token"


@dataclass(frozen=True)
class Actor:
    """Whoever is making the request."""

    user_id: int | None
    email: str | None
    name: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(payload: dict[str, object]) -> str:
    return _serializer().dumps(payload)


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing or invalid.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]

    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except BadSignature:
        # Invalid or expired token
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("user_id")


def _request_email() -> str | None:
    email = request.args.get("email")
    if not email and request.is_json:
        body = request.get_json(silent=True) or {}
        email = body.get("email") if isinstance(body, dict) else None
    email = (email or "").strip().lower()
    return email or None


def current_actor(allow_anonymous: bool = False) -> Actor:
    """Resolve the request's actor, raising ``Unauthorized`` when there is none."""
    user_id = get_jwt_identity()
    if user_id is not None:
        user = db.session.get(User, user_id)
        if user is None:
            raise Unauthorized("token refers to an unknown user")
        return Actor(user_id=user.user_id, email=user.email.lower(), name=user.username)

    if allow_anonymous:
        email = _request_email()
        if email:
            return Actor(user_id=None, email=email)

    raise Unauthorized("authentication required")
