"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes the
application-level counters for access decisions and mutations.
"""

import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "brokerdesk_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "brokerdesk_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# ── Access metrics ───────────────────────────────────────────────────────────

access_decisions_total = Counter(
    "brokerdesk_access_decisions_total",
    "Access decisions by kind (page, scope, capability) and outcome",
    ["kind", "outcome"],
)

mutations_total = Counter(
    "brokerdesk_mutations_total",
    "Resource mutations by resource and action",
    ["resource", "action"],
)

_ID_SEGMENT = re.compile(r"^\d+$")


def _normalize_path(path: str) -> str:
    """Collapse numeric path parameters to reduce cardinality.

    e.g. /api/policies/42/status → /api/policies/{id}/status
    """
    parts = path.strip("/").split("/")
    return "/" + "/".join("{id}" if _ID_SEGMENT.match(p) else p for p in parts)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(duration)

        return response
