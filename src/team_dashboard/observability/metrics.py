from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

ticket_fetch_total = Counter(
    "ticket_fetch_total",
    "Number of ticket fetch attempts, by outcome.",
    labelnames=("outcome",),
)
ticket_fetch_seconds = Histogram(
    "ticket_fetch_seconds",
    "Seconds spent fetching and transforming the ticket feed.",
)
cached_tickets = Gauge(
    "cached_tickets",
    "Number of tickets in the current cached collection.",
)

upstream_requests_total = Counter(
    "upstream_requests_total",
    "Number of requests forwarded to the issue tracker, by outcome.",
    labelnames=("outcome",),
)
upstream_request_seconds = Histogram(
    "upstream_request_seconds",
    "Seconds spent waiting on the issue tracker.",
)

credential_lookups_total = Counter(
    "credential_lookups_total",
    "Number of credential resolutions, by where the credentials came from.",
    labelnames=("source",),
)


def render_latest(*, registry=REGISTRY) -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
