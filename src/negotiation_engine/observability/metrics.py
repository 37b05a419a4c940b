"""Prometheus metrics for the negotiation engine.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI
  app, exposing ``/metrics`` with HTTP request duration/count plus the
  business counters below.
- Business counters and the ``ACTIVE_NEGOTIATIONS`` gauge, updated by the
  service after each unit of work commits (never from inside it, so a
  rolled-back mutation is never counted).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

NEGOTIATIONS_OPENED: Counter = Counter(
    "negotiation_opened_total",
    "Total number of negotiations opened",
    ["type"],
)

OFFERS_SUBMITTED: Counter = Counter(
    "negotiation_offers_submitted_total",
    "Total number of offers and counter-offers placed",
)

DEALS_CLOSED: Counter = Counter(
    "negotiation_deals_closed_total",
    "Total number of negotiations reaching ACCEPTED state",
)

NEGOTIATIONS_CANCELLED: Counter = Counter(
    "negotiation_cancelled_total",
    "Total number of negotiations cancelled by a participant",
)

TRANSACTIONS_MINTED: Counter = Counter(
    "negotiation_transactions_minted_total",
    "Total number of settlement transactions created",
)

ACTIVE_NEGOTIATIONS: Gauge = Gauge(
    "negotiation_active_total",
    "Number of currently active (non-terminal) negotiations",
)

DOMAIN_ERRORS: Counter = Counter(
    "negotiation_domain_errors_total",
    "Requests refused by a domain rule, by error code",
    ["code"],
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
