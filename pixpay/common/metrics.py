"""Prometheus metric definitions for the orchestrator."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total create-payment requests", ["service"])
payment_failure_total = Counter("payment_failure_total", "Create-payment calls aborted by an error", ["service", "kind"])
payment_latency_seconds = Histogram("payment_latency_seconds", "Create-payment latency seconds", ["service"])
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
provider_requests_total = Counter(
    "provider_requests_total",
    "Outbound provider calls by operation and outcome",
    ["service", "operation", "outcome"],
)
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Outbound provider call duration seconds",
    ["service", "operation"],
)
token_refresh_total = Counter("token_refresh_total", "Provider token refreshes", ["service", "outcome"])
webhook_registration_failures_total = Counter(
    "webhook_registration_failures_total",
    "QR codes issued whose webhook subscription failed",
    ["service"],
)
webhook_events_total = Counter("webhook_events_total", "Inbound webhook events", ["service", "outcome"])
status_queries_total = Counter("status_queries_total", "Payment status lookups", ["service", "outcome"])
idempotent_replays_total = Counter(
    "idempotent_replays_total",
    "Create-payment responses served from the idempotency cache",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
