from __future__ import annotations

"""Prometheus metrics for the assistant API.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for the intent pipeline and upstream generation failures.
"""

import logging
import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "assistant_request_latency_seconds",
    "HTTP request latency in seconds (time to first byte for streams)",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

INTENT_OUTCOMES = Counter(
    "assistant_intents_total",
    "Tool invocations processed by the executor, by tool and outcome",
    labelnames=("tool", "outcome"),
)

EXTRACTION_FAILURES = Counter(
    "assistant_extraction_failures_total",
    "Intent extraction calls that failed and were treated as no intents",
)

UPSTREAM_ERRORS = Counter(
    "assistant_upstream_errors_total",
    "Generation requests rejected by the upstream model gateway",
    labelnames=("kind",),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths to their first two static segments."""
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    return "/" + "/".join(segs[:2])


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except ValueError:
            logger.debug("latency_metric_dropped", extra={"path": request.url.path})
        return response

    return middleware
