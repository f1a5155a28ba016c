"""Prometheus metrics for the messaging service."""

from prometheus_client import CollectorRegistry, Counter, Gauge

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("messaging_requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("messaging_errors_total", "Total failed HTTP requests", registry=CUSTOM_REGISTRY)
MESSAGES_SENT = Counter("messaging_messages_sent_total", "Messages persisted", registry=CUSTOM_REGISTRY)
DELIVERIES = Counter(
    "messaging_broadcast_deliveries_total",
    "Events pushed to live connections",
    ["event"],
    registry=CUSTOM_REGISTRY,
)
OPEN_SOCKETS = Gauge("messaging_open_sockets", "Currently open WebSocket connections", registry=CUSTOM_REGISTRY)
