"""Tests for /health and /ready observability endpoints.

Uses FastAPI TestClient with a real SQLite database to verify liveness and
readiness probes without external dependencies.
"""

from __future__ import annotations

import sqlite3

from fastapi import FastAPI
from fastapi.testclient import TestClient

from negotiation_engine.health import register_health_routes
from negotiation_engine.storage.database import Database

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(services: dict | None = None) -> FastAPI:
    """Create a minimal FastAPI app with health routes and given services."""
    app = FastAPI()
    app.state.services = services or {}
    register_health_routes(app)
    return app


class _BrokenDatabase:
    def ping(self) -> None:
        raise sqlite3.OperationalError("unable to open database file")


# ---------------------------------------------------------------------------
# /health (liveness)
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    """GET /health liveness probe."""

    def test_health_returns_200(self) -> None:
        client = TestClient(_make_app())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# /ready (readiness)
# ---------------------------------------------------------------------------


class TestReadyEndpoint:
    """GET /ready readiness probe."""

    def test_ready_returns_200_when_database_ok(self, database: Database) -> None:
        client = TestClient(_make_app({"database": database}))

        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "checks": {"database": "ok"}}

    def test_ready_returns_503_when_database_missing(self) -> None:
        client = TestClient(_make_app({}))

        response = client.get("/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        assert body["checks"]["database"] == "fail"

    def test_ready_returns_503_when_database_broken(self) -> None:
        client = TestClient(_make_app({"database": _BrokenDatabase()}))

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["database"] == "fail"
