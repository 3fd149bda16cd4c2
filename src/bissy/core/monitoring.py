"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- query cache counters and the execution latency histogram
- track_execution(): context manager recording one backend execution
- init_sentry(): Initialize Sentry with principal-aware before_send callback
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
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

# ── Query Cache Metrics ──────────────────────────────────────────────────────

querycache_lookups_total = Counter(
    "querycache_lookups_total",
    "Result requests by cache outcome",
    ["outcome"],  # hit, miss, stale
)

querycache_executions_total = Counter(
    "querycache_executions_total",
    "Backend query executions",
    ["kind", "status"],
)

querycache_execution_duration_seconds = Histogram(
    "querycache_execution_duration_seconds",
    "Backend query execution duration in seconds",
    ["kind"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
)

querycache_write_failures_total = Counter(
    "querycache_write_failures_total",
    "Best-effort writes that failed after a successful execution",
    ["target"],  # cache, last_refresh
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Uses the matched route template as the endpoint label so ids in paths
    do not explode cardinality. Skips the /metrics endpoint itself.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

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


# ── Execution Metrics Helper ─────────────────────────────────────────────────


@asynccontextmanager
async def track_execution(kind: str) -> AsyncGenerator[None, None]:
    """Record count, status and duration of one backend execution.

    Usage:
        async with track_execution(datasource.kind):
            result = await executor.execute(query)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except BaseException:
        status = "error"
        raise
    finally:
        querycache_executions_total.labels(kind=kind, status=status).inc()
        querycache_execution_duration_seconds.labels(kind=kind).observe(
            time.perf_counter() - start_time
        )


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with principal-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Add the requesting user to Sentry events."""
        try:
            from src.bissy.core.principal import get_current_principal

            principal = get_current_principal()
            event.setdefault("tags", {})["user_id"] = principal.user_id
        except RuntimeError:
            pass
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
