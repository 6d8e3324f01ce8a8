"""
Prometheus Metrics
==================

Verification metrics for monitoring and alerting.
"""

import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

# Create a custom registry for this application
REGISTRY = CollectorRegistry()

APP_INFO = Info(
    "query_verifier",
    "Query verifier application information",
    registry=REGISTRY,
)

# Verification metrics
VERIFICATIONS_TOTAL = Counter(
    "query_verifier_verifications_total",
    "Completed verifications by outcome",
    ["outcome"],  # match, regression, known_issue, inconclusive
    registry=REGISTRY,
)

VERIFICATION_DURATION = Histogram(
    "query_verifier_verification_duration_seconds",
    "End-to-end verification duration in seconds",
    buckets=[1, 5, 15, 30, 60, 120, 300, 600, 1800],
    registry=REGISTRY,
)

RESUBMISSIONS_TOTAL = Counter(
    "query_verifier_resubmissions_total",
    "Resubmitted operations by matching predicate",
    ["predicate"],
    registry=REGISTRY,
)

DETERMINISM_ANALYSES_TOTAL = Counter(
    "query_verifier_determinism_analyses_total",
    "Determinism analyses by result",
    ["analysis"],
    registry=REGISTRY,
)

RESOLVED_FAILURES_TOTAL = Counter(
    "query_verifier_resolved_failures_total",
    "Failures explained as known issues, by resolver",
    ["resolver"],
    registry=REGISTRY,
)

ACTIVE_VERIFICATIONS = Gauge(
    "query_verifier_active_verifications",
    "Number of verifications currently in flight",
    registry=REGISTRY,
)

# HTTP metrics
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 30.0],
    registry=REGISTRY,
)


def setup_metrics(app: FastAPI, version: str) -> None:
    """
    Set up Prometheus metrics for the FastAPI application.

    Args:
        app: FastAPI application instance
        version: Application version reported in the info metric
    """
    APP_INFO.info({"version": version})

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next: Callable) -> Response:
        """Middleware to track HTTP metrics."""
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        HTTP_REQUESTS_TOTAL.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
        ).inc()
        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=request.url.path,
        ).observe(duration)
        return response


def track_verification(outcome: str, duration_seconds: float) -> None:
    """
    Track metrics for a completed verification.

    Args:
        outcome: Final VerificationOutcome value
        duration_seconds: Total verification time
    """
    VERIFICATIONS_TOTAL.labels(outcome=outcome).inc()
    VERIFICATION_DURATION.observe(duration_seconds)


def track_resubmission(predicate: str) -> None:
    RESUBMISSIONS_TOTAL.labels(predicate=predicate).inc()


def track_determinism(analysis: str) -> None:
    DETERMINISM_ANALYSES_TOTAL.labels(analysis=analysis).inc()


def track_resolution(resolver: str) -> None:
    RESOLVED_FAILURES_TOTAL.labels(resolver=resolver).inc()


async def metrics_endpoint(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    # Handle multiprocess mode if using gunicorn
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        metrics = generate_latest(registry)
    except ValueError:
        # Not in multiprocess mode
        metrics = generate_latest(REGISTRY)

    return Response(
        content=metrics,
        media_type=CONTENT_TYPE_LATEST,
    )
