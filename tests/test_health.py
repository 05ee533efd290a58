"""Smoke tests for the health endpoint."""
from __future__ import annotations

from vitrinex import create_app
from vitrinex.config import TestingConfig


def test_health_endpoint() -> None:
    app = create_app(TestingConfig)
    client = app.test_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_health_endpoint_allows_cross_origin_polling() -> None:
    app = create_app(TestingConfig)
    client = app.test_client()

    response = client.get("/health", headers={"Origin": "http://localhost:5173"})

    assert response.status_code == 200
    assert "Access-Control-Allow-Origin" in response.headers
