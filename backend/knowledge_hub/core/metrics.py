"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

REGISTRY = CollectorRegistry()

UPLOAD_COUNT = Counter(
    "kbh_uploads_total",
    "Knowledge file uploads by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CALLBACK_COUNT = Counter(
    "kbh_processing_callbacks_total",
    "Processing callbacks received by reported status",
    labelnames=("status",),
    registry=REGISTRY,
)

WEBHOOK_COUNT = Counter(
    "kbh_webhook_invocations_total",
    "Processing webhook invocations by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CHUNK_OPS = Counter(
    "kbh_chunk_operations_total",
    "Chunk editor operations",
    labelnames=("operation",),
    registry=REGISTRY,
)

SUBSCRIBERS = Gauge(
    "kbh_event_subscribers",
    "Live change-notification subscriptions",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "UPLOAD_COUNT",
    "CALLBACK_COUNT",
    "WEBHOOK_COUNT",
    "CHUNK_OPS",
    "SUBSCRIBERS",
    "metrics_response",
]
