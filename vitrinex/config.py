"""Default configuration for the Vitrinex conversations service."""
from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///vitrinex.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Comma separated list; "*" allows any origin.
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 86400))

    MAX_MESSAGE_LENGTH = 4000
    EXCERPT_LENGTH = 120
    FEED_DEADLINE_SECONDS = float(os.environ.get("FEED_DEADLINE_SECONDS", 5.0))

    # Hints returned to clients; they are not enforced server side.
    THREAD_POLL_INTERVAL_SECONDS = 5
    FEED_POLL_INTERVAL_SECONDS = 10


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
