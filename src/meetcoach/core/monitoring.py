"""Prometheus metrics, Sentry integration, and pipeline run tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Pipeline metrics: run outcomes, durations, per-branch failures
- track_pipeline_run(): Context manager timing one pipeline run
- init_sentry(): Initialize Sentry with session-aware before_send callback
- get_metrics_response(): Prometheus exposition for /metrics
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Pipeline Metrics ─────────────────────────────────────────────────────────

pipeline_runs_total = Counter(
    "meet_pipeline_runs_total",
    "Evaluation pipeline runs by terminal status",
    ["status"],
)

pipeline_duration_seconds = Histogram(
    "meet_pipeline_duration_seconds",
    "Evaluation pipeline run duration in seconds",
    buckets=(5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0),
)

pipeline_branch_failures_total = Counter(
    "meet_pipeline_branch_failures_total",
    "Failed pipeline branches (scorer, notes, fan-out emitters)",
    ["branch"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Records request count and duration per method/endpoint. Skips the
    /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        # Use the route path pattern if available, otherwise the raw path
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Pipeline Metrics Helper ─────────────────────────────────────────────────


@asynccontextmanager
async def track_pipeline_run() -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that records one pipeline run.

    Usage:
        async with track_pipeline_run() as tracker:
            outcome = await run(...)
            tracker["status"] = outcome.status

    The status defaults to "error" when the body raises.
    """
    tracker: dict[str, Any] = {"status": "unknown"}
    start_time = time.perf_counter()

    try:
        yield tracker
    except Exception:
        tracker["status"] = "error"
        raise
    finally:
        pipeline_duration_seconds.observe(time.perf_counter() - start_time)
        pipeline_runs_total.labels(status=str(tracker["status"])).inc()


def record_branch_failure(branch: str) -> None:
    """Count one failed pipeline branch."""
    pipeline_branch_failures_total.labels(branch=branch).inc()


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with session-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Promote the bound session id (structlog contextvars) to a tag."""
        import structlog

        session_id = structlog.contextvars.get_contextvars().get("session_id")
        if session_id:
            event.setdefault("tags", {})["session_id"] = session_id
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
