"""
SkyFare - Prometheus Metrics
Request latency, upstream API health, reference-data cache efficiency

Metrics:
- skyfare_http_requests_total: API requests by route template and status
- skyfare_http_request_duration_seconds: API latency by route template
- skyfare_external_api_calls_total: Upstream calls by outcome
- skyfare_external_api_duration_seconds: Upstream call latency
- skyfare_reference_lookups_total: Airport/airline lookups by cache result
- skyfare_rate_limit_events_total: 429 responses observed
"""

import time
import logging
from typing import Callable, Dict
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("SkyFare-Metrics")

SLOW_UPSTREAM_CALL_S = 5.0

# ═══════════════════════════════════════════════════════════════════
# METRIC DEFINITIONS
# ═══════════════════════════════════════════════════════════════════

API_REQUESTS = Counter(
    "skyfare_http_requests_total",
    "SkyFare API requests",
    ["method", "route", "status"]
)

# pricing = upstream pricing + enrichment, so the tail is long
API_LATENCY = Histogram(
    "skyfare_http_request_duration_seconds",
    "SkyFare API request duration in seconds",
    ["method", "route"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 15.0, 30.0]
)

UPSTREAM_LATENCY = Histogram(
    "skyfare_external_api_duration_seconds",
    "Upstream call duration in seconds",
    ["service"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0]
)

UPSTREAM_CALLS = Counter(
    "skyfare_external_api_calls_total",
    "Upstream calls by HTTP status (or 'error' for transport failures)",
    ["service", "status"]
)

REFERENCE_LOOKUPS = Counter(
    "skyfare_reference_lookups_total",
    "Airport and airline lookups by cache outcome",
    ["kind", "result"]  # result: hit, miss, fallback
)

RATE_LIMIT_EVENTS = Counter(
    "skyfare_rate_limit_events_total",
    "HTTP 429 responses received from Amadeus"
)


# ═══════════════════════════════════════════════════════════════════
# MIDDLEWARE
# ═══════════════════════════════════════════════════════════════════

def _route_template(request: Request) -> str:
    # /api/v1/flights/{id} instead of one label per id; unmatched paths share a label
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Counts and times every API request except /metrics itself."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            # route is only resolved once the router has run
            route = _route_template(request)
            API_REQUESTS.labels(method=request.method, route=route, status=status).inc()
            API_LATENCY.labels(method=request.method, route=route).observe(
                time.perf_counter() - started
            )


# ═══════════════════════════════════════════════════════════════════
# RECORDERS
# ═══════════════════════════════════════════════════════════════════

@contextmanager
def track_external_api(service: str):
    """
    Time an upstream call and count it by outcome.

    Usage:
        with track_external_api("amadeus-reference") as call:
            response = await client.get(...)
            call["status"] = str(response.status_code)
    """
    started = time.perf_counter()
    call: Dict[str, str] = {"status": "success"}

    try:
        yield call
    except Exception:
        call["status"] = "error"
        raise
    finally:
        elapsed = time.perf_counter() - started
        UPSTREAM_LATENCY.labels(service=service).observe(elapsed)
        UPSTREAM_CALLS.labels(service=service, status=call["status"]).inc()

        if elapsed > SLOW_UPSTREAM_CALL_S:
            logger.warning(f"⚠️ Slow upstream call: {service} took {elapsed:.2f}s")


def record_reference_lookup(kind: str, result: str):
    REFERENCE_LOOKUPS.labels(kind=kind, result=result).inc()


def record_rate_limit_event():
    RATE_LIMIT_EVENTS.inc()


# ═══════════════════════════════════════════════════════════════════
# EXPOSITION
# ═══════════════════════════════════════════════════════════════════

async def metrics_endpoint():
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


def setup_metrics(app):
    """Install the request middleware and mount GET /metrics on the app."""
    app.add_middleware(PrometheusMiddleware)
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])

    logger.info("✅ Prometheus metrics enabled at /metrics")
