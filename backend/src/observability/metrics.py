"""Prometheus metrics for the order communications backend.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram

# Inbound webhook metrics
inbound_emails_total = Counter(
    "ordercomms_inbound_emails_total",
    "Total inbound email webhook calls by outcome",
    ["outcome"]  # outcome: recorded|missing_to_address|unrecognized_token|...
)

inbound_attachments_total = Counter(
    "ordercomms_inbound_attachments_total",
    "Inbound email attachments by storage result",
    ["status"]  # status: saved|failed
)

inbound_processing_seconds = Histogram(
    "ordercomms_inbound_processing_seconds",
    "Time spent processing an inbound email webhook call",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Outbound metrics
outbound_messages_total = Counter(
    "ordercomms_outbound_messages_total",
    "Total outbound order messages recorded"
)
