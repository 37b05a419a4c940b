"""Health and readiness endpoints for container orchestration.

- ``GET /health``: liveness probe, 200 while the process runs.
- ``GET /ready``: readiness probe, 200 only when the database answers
  ``SELECT 1``; 503 with per-check details otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        database = services.get("database")
        if database is not None:
            try:
                await asyncio.to_thread(database.ping)
                checks["database"] = "ok"
            except sqlite3.Error:
                logger.warning("readiness_database_failed", exc_info=True)
                checks["database"] = "fail"
        else:
            checks["database"] = "fail"

        all_ok = all(v == "ok" for v in checks.values())
        return JSONResponse(
            content={"status": "ready" if all_ok else "not_ready", "checks": checks},
            status_code=200 if all_ok else 503,
        )
